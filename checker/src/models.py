"""データモデル定義."""

from __future__ import annotations

from dataclasses import dataclass


def parse_keywords(keywords: str) -> list[str]:
    """カンマ区切りのキーワード文字列をリストにする（前後空白除去・空要素は除外）."""
    return [k.strip() for k in keywords.split(",") if k.strip()]


def join_keywords(keywords: list[str]) -> str:
    """キーワードのリストを DB 保存用のカンマ区切り文字列にする."""
    return ", ".join(k.strip() for k in keywords if k.strip())


@dataclass
class SearchResult:
    """検索結果の1アプリを表す."""

    position: int  # 検索結果内の順位（1始まり）
    track_id: str  # App Store の trackId（文字列で比較）
    name: str  # アプリ名


@dataclass
class App:
    """順位を追跡するアプリ (apps テーブル)."""

    id: int  # サロゲートキー
    app_id: str  # App Store のアプリ ID (例: 999)
    name: str
    country: str  # ストアの国コード (例: us, jp)
    keywords: str  # カンマ区切り

    @property
    def keyword_list(self) -> list[str]:
        return parse_keywords(self.keywords)


@dataclass
class Keyword:
    """アプリ × キーワード × 国 の組 (keywords テーブル)."""

    id: int
    app_id: int  # apps.id
    keyword: str
    country_code: str


@dataclass
class Scan:
    """1回分の順位観測 (scans テーブル)."""

    id: int
    keyword_id: int
    app_id: int  # apps.id（keywords.app_id と一致する）
    rank: int | None  # None = 圏外
    scanned_at: str  # ISO 8601 (UTC)


@dataclass
class ScanResult:
    """record_scan の結果. 前回と同順位なら skipped=True で scan は None."""

    scan: Scan | None = None
    skipped: bool = False


@dataclass
class HistoryRow:
    """順位履歴の1行."""

    keyword: str
    scanned_at: str
    rank: int | None


@dataclass
class KeywordOutcome:
    """キーワード1件分の順位チェック結果."""

    keyword: str
    status: str  # new_rank / skipped / fetch_failed / store_failed
    rank: int | None = None
    error: str | None = None
