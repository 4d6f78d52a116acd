"""tracker モジュールのテスト (検索 API はモック)."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

from src.db import AppRegistry, KeywordRegistry, ScanStore
from src.errors import StoreError, TransportError
from src.models import HistoryRow
from src.tracker import (
    DOWN,
    FETCH_FAILED,
    NEW_RANK,
    SAME,
    SKIPPED,
    STORE_FAILED,
    UP,
    RankTracker,
    group_history,
    trend,
)

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def _response(name: str) -> MagicMock:
    resp = MagicMock()
    resp.json.return_value = json.loads((FIXTURES_DIR / name).read_text(encoding="utf-8"))
    resp.raise_for_status.return_value = None
    return resp


class TestRunRankCheck:
    """RankTracker.run_rank_check のテスト."""

    @patch("src.search.requests.get")
    def test_example_flow(self, mock_get, db, app):
        """3番目に出れば 3 位、出なければ圏外、圏外の繰り返しはスキップされること."""
        tracker = RankTracker(db, wait=False)
        coffee = app.keyword_list[0]

        mock_get.return_value = _response("search_coffee.json")
        first = tracker.check_keyword(app, coffee)
        assert (first.status, first.rank) == (NEW_RANK, 3)

        mock_get.return_value = _response("search_tea.json")
        second = tracker.check_keyword(app, coffee)
        assert (second.status, second.rank) == (NEW_RANK, None)

        third = tracker.check_keyword(app, coffee)
        assert (third.status, third.rank) == (SKIPPED, None)

        ranks = [r.rank for r in tracker.get_history(app)["coffee"]]
        assert ranks == [3, None]

    @patch("src.search.rank")
    def test_sequential_per_keyword(self, mock_rank, db, app):
        """キーワードの順に1件ずつ検索すること."""
        mock_rank.side_effect = [3, None]
        outcomes = RankTracker(db, wait=False).run_rank_check(app)

        assert [c.args for c in mock_rank.call_args_list] == [
            ("coffee", "us", "999"),
            ("tea", "us", "999"),
        ]
        assert [(o.keyword, o.status, o.rank) for o in outcomes] == [
            ("coffee", NEW_RANK, 3),
            ("tea", NEW_RANK, None),
        ]

    @patch("src.search.rank")
    def test_fetch_failure_does_not_abort(self, mock_rank, db, app):
        """1件の検索失敗で残りのキーワードが止まらないこと."""
        mock_rank.side_effect = [TransportError("timeout"), 12]
        outcomes = RankTracker(db, wait=False).run_rank_check(app)

        assert outcomes[0].status == FETCH_FAILED
        assert outcomes[0].rank is None
        assert "timeout" in outcomes[0].error
        assert (outcomes[1].status, outcomes[1].rank) == (NEW_RANK, 12)
        assert ScanStore(db).list_unscanned_keywords(app.id, app.keywords) == ["coffee"]

    @patch("src.search.requests.get")
    def test_malformed_results_do_not_abort(self, mock_get, db, app):
        """不正なレスポンスでも残りのキーワードの順位チェックを続けること."""
        bad = MagicMock()
        bad.raise_for_status.return_value = None
        bad.json.return_value = {"results": "oops"}
        partial = MagicMock()
        partial.raise_for_status.return_value = None
        partial.json.return_value = {"results": [None, {"trackId": 999}]}
        mock_get.side_effect = [bad, partial]

        outcomes = RankTracker(db, wait=False).run_rank_check(app)

        assert [(o.keyword, o.status, o.rank) for o in outcomes] == [
            ("coffee", FETCH_FAILED, None),
            ("tea", NEW_RANK, 2),
        ]

    @patch("src.search.rank")
    def test_store_failure_does_not_abort(self, mock_rank, db, app):
        mock_rank.side_effect = [3, 4]
        tracker = RankTracker(db, wait=False)
        with patch.object(tracker.scans, "record_scan", side_effect=[StoreError("disk I/O error"), MagicMock(skipped=False)]):
            outcomes = tracker.run_rank_check(app)

        assert outcomes[0].status == STORE_FAILED
        assert outcomes[0].rank == 3
        assert outcomes[1].status == NEW_RANK

    @patch("src.search.wait_interval")
    @patch("src.search.rank", return_value=1)
    def test_waits_between_keywords(self, mock_rank, mock_wait, db, app):
        RankTracker(db).run_rank_check(app)
        assert mock_wait.call_count == 1

    @patch("src.search.rank", return_value=5)
    def test_updated_keywords_used(self, mock_rank, db, app):
        apps = AppRegistry(db)
        apps.update_keywords(app.id, "latte")
        outcomes = RankTracker(db, wait=False).run_rank_check(apps.get(app.id))

        assert [o.keyword for o in outcomes] == ["latte"]


class TestGetHistory:
    """履歴取得と表示用の並べ替えのテスト."""

    def test_grouped_ascending(self, db, app):
        keywords = KeywordRegistry(db)
        store = ScanStore(db)
        tea = keywords.resolve(app.id, "tea", "us")
        coffee = keywords.resolve(app.id, "coffee", "us")
        store.record_scan(app.id, coffee, 9, scanned_at="2026-01-01 00:00:00.000000")
        store.record_scan(app.id, tea, 2, scanned_at="2026-01-01 00:00:00.000000")
        store.record_scan(app.id, coffee, 4, scanned_at="2026-01-02 00:00:00.000000")
        store.record_scan(app.id, tea, None, scanned_at="2026-01-03 00:00:00.000000")

        history = RankTracker(db, wait=False).get_history(app)

        assert list(history) == ["coffee", "tea"]
        assert [r.rank for r in history["coffee"]] == [9, 4]
        assert [r.rank for r in history["tea"]] == [2, None]

    def test_empty(self, db, app):
        assert RankTracker(db, wait=False).get_history(app) == {}


class TestGroupHistory:
    """group_history のテスト (保存順 → 表示順)."""

    def test_resort_ascending(self):
        rows = [
            HistoryRow("coffee", "2026-01-03 00:00:00.000000", 1),
            HistoryRow("coffee", "2026-01-01 00:00:00.000000", 5),
            HistoryRow("tea", "2026-01-02 00:00:00.000000", 7),
        ]
        grouped = group_history(rows)

        assert list(grouped) == ["coffee", "tea"]
        assert [r.scanned_at for r in grouped["coffee"]] == [
            "2026-01-01 00:00:00.000000",
            "2026-01-03 00:00:00.000000",
        ]


class TestTrend:
    """trend のテスト."""

    def test_marks(self):
        rows = [
            HistoryRow("coffee", "t1", 5),
            HistoryRow("coffee", "t2", 3),
            HistoryRow("coffee", "t3", 8),
            HistoryRow("coffee", "t4", None),
            HistoryRow("coffee", "t5", 8),
        ]
        assert trend(rows) == [None, UP, DOWN, DOWN, UP]

    def test_same(self):
        rows = [HistoryRow("coffee", "t1", 2), HistoryRow("coffee", "t2", 2)]
        assert trend(rows) == [None, SAME]
