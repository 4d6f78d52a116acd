"""順位チェックと履歴表示用のサービス層.

処理フロー (run_rank_check):
  1. アプリのキーワードリストを取得
  2. キーワードごとに順番に App Store 検索を実行（並列にしない）
  3. 順位を keyword id 解決 → scans に記録（前回と同順位ならスキップ）
  4. 1件の失敗で残りのキーワードを止めない
"""

from __future__ import annotations

import logging
from collections import defaultdict

from src import search
from src.db import Database, KeywordRegistry, ScanStore
from src.errors import StoreError, TransportError
from src.models import App, HistoryRow, KeywordOutcome

logger = logging.getLogger(__name__)

NEW_RANK = "new_rank"
SKIPPED = "skipped"
FETCH_FAILED = "fetch_failed"
STORE_FAILED = "store_failed"

UP = "up"
DOWN = "down"
SAME = "same"


class RankTracker:
    """フロントエンド (メニュー) から呼ばれる順位チェック API."""

    def __init__(self, db: Database, wait: bool = True):
        self.keywords = KeywordRegistry(db)
        self.scans = ScanStore(db)
        self.wait = wait

    def check_keyword(self, app: App, keyword: str) -> KeywordOutcome:
        """キーワード1件の順位を取得して記録する."""
        try:
            rank = search.rank(keyword, app.country, app.app_id)
        except TransportError as e:
            logger.warning("スキップ: keyword=%s, 検索失敗", keyword)
            return KeywordOutcome(keyword=keyword, status=FETCH_FAILED, error=str(e))

        status = f"{rank}位" if rank else "圏外"
        logger.info("  %s → %s", keyword, status)

        try:
            keyword_id = self.keywords.resolve(app.id, keyword, app.country)
            result = self.scans.record_scan(app.id, keyword_id, rank)
        except StoreError as e:
            logger.error("順位の記録に失敗: keyword=%s, error=%s", keyword, e)
            return KeywordOutcome(keyword=keyword, status=STORE_FAILED, rank=rank, error=str(e))

        if result.skipped:
            return KeywordOutcome(keyword=keyword, status=SKIPPED, rank=rank)
        return KeywordOutcome(keyword=keyword, status=NEW_RANK, rank=rank)

    def run_rank_check(self, app: App) -> list[KeywordOutcome]:
        """アプリの全キーワードについて順位チェックを行う."""
        keywords = app.keyword_list
        logger.info("順位チェック開始: %s (%s), キーワード %d 件", app.name, app.country, len(keywords))

        outcomes: list[KeywordOutcome] = []
        for i, keyword in enumerate(keywords):
            if i > 0 and self.wait:
                search.wait_interval()
            outcomes.append(self.check_keyword(app, keyword))

        failed = sum(1 for o in outcomes if o.status in (FETCH_FAILED, STORE_FAILED))
        logger.info("順位チェック完了: %s, 新順位 %d 件, スキップ %d 件, エラー %d 件",
                    app.name,
                    sum(1 for o in outcomes if o.status == NEW_RANK),
                    sum(1 for o in outcomes if o.status == SKIPPED),
                    failed)
        return outcomes

    def get_history(self, app: App) -> dict[str, list[HistoryRow]]:
        """表示用にキーワードごとにまとめた履歴 (各キーワード内は古い順)."""
        return group_history(self.scans.list_history(app.id))

    def unscanned_keywords(self, app: App) -> list[str]:
        return self.scans.list_unscanned_keywords(app.id, app.keyword_list)


def group_history(rows: list[HistoryRow]) -> dict[str, list[HistoryRow]]:
    """履歴行をキーワードでグルーピングし、各グループを時刻の昇順に並べ替える.

    キーワードの並びは入力 (キーワード昇順) の出現順を保つ。
    """
    grouped: dict[str, list[HistoryRow]] = defaultdict(list)
    for row in rows:
        grouped[row.keyword].append(row)
    # 同時刻は保存順 (新しい順) の逆で古い順にする
    return {k: sorted(reversed(v), key=lambda r: r.scanned_at) for k, v in grouped.items()}


def _rank_value(rank: int | None) -> float:
    # 圏外はどの順位よりも悪い
    return float("inf") if rank is None else rank


def trend(rows: list[HistoryRow]) -> list[str | None]:
    """古い順の履歴に対し、前回比の推移 (up / down / same) を返す. 先頭は None."""
    marks: list[str | None] = []
    for i, row in enumerate(rows):
        if i == 0:
            marks.append(None)
            continue
        prev, cur = _rank_value(rows[i - 1].rank), _rank_value(row.rank)
        if cur < prev:
            marks.append(UP)
        elif cur > prev:
            marks.append(DOWN)
        else:
            marks.append(SAME)
    return marks
