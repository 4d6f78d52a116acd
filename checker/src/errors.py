"""例外定義.

「圏外」(検索結果に対象アプリが無い) はエラーではなく None で表す。
"""


class RankCheckerError(Exception):
    """順位チェッカーの例外の基底クラス."""


class TransportError(RankCheckerError):
    """App Store 検索 API の呼び出し失敗（通信エラー・非 2xx・不正な JSON）."""


class StoreError(RankCheckerError):
    """SQLite 操作の失敗（制約違反・I/O エラーなど）."""


class AppNotFound(StoreError):
    """指定 id のアプリが apps テーブルに存在しない."""
