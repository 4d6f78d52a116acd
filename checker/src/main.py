"""App Store 検索順位チェッカー — メインエントリーポイント.

メニュー:
  1) アプリ追加
  2) アプリを選んで順位チェック
  3) アプリのキーワード編集
  4) 順位履歴の表示
  5) 終了
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime

from src.config import DB_PATH, LOG_DIR, LOG_LEVEL
from src.db import AppRegistry, Database
from src.errors import RankCheckerError, StoreError
from src.models import App
from src.tracker import DOWN, FETCH_FAILED, NEW_RANK, SKIPPED, UP, RankTracker, trend

logger = logging.getLogger(__name__)

SEPARATOR = "-" * 66
_TREND_MARKS = {UP: "↑", DOWN: "↓"}


def setup_logging() -> None:
    """ロギングの初期設定."""
    log_file = LOG_DIR / f"checker_{datetime.now().strftime('%Y%m%d')}.log"
    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )


def format_rank(rank: int | None) -> str:
    return str(rank) if rank is not None else "圏外"


def select_app(apps: AppRegistry, prompt: str) -> App | None:
    """アプリ一覧を表示して番号で選ばせる. 無効な入力なら None."""
    app_list = apps.list()
    if not app_list:
        print("アプリが登録されていません。先にアプリを追加してください。")
        return None

    print("\n登録済みアプリ:")
    for i, app in enumerate(app_list, start=1):
        print(f"{i}) {app.name} (ID: {app.app_id} 国: {app.country})")

    number = input(prompt).strip()
    if not number.isdigit() or not 1 <= int(number) <= len(app_list):
        print("無効な選択です。")
        return None
    return app_list[int(number) - 1]


def add_app(apps: AppRegistry) -> None:
    app_id = input("アプリ ID: ")
    name = input("アプリ名: ")
    country = input("国コード (例: us, jp): ")
    keywords = input("キーワード (カンマ区切り): ")
    app = apps.create(app_id, name, country, keywords)
    print(f"アプリを追加しました (id={app.id})")


def edit_keywords(apps: AppRegistry) -> None:
    app = select_app(apps, "編集するアプリの番号: ")
    if app is None:
        return
    print(f"現在のキーワード ({app.name}): {app.keywords}")
    new_keywords = input("新しいキーワード (空 Enter で変更なし): ").strip()
    if not new_keywords:
        return
    apps.update_keywords(app.id, new_keywords)
    print(f"キーワードを更新しました: {app.name}")


def print_history(tracker: RankTracker, app: App) -> None:
    history = tracker.get_history(app)
    if not history:
        print(f"{app.name} のスキャン履歴はありません。")
        return

    print(f"キーワード順位データ: {app.name} ({app.country})")
    print(SEPARATOR)
    for keyword, rows in history.items():
        print(f'"{keyword}"')
        for row, mark in zip(rows, trend(rows)):
            print(f"\t{row.scanned_at}  順位: {format_rank(row.rank)} {_TREND_MARKS.get(mark, '')}".rstrip())
        print(SEPARATOR)

    unscanned = tracker.unscanned_keywords(app)
    if unscanned:
        print(f"未スキャンのキーワード: {', '.join(unscanned)}")


def check_ranks(tracker: RankTracker, app: App) -> None:
    print(f"\n順位チェック: {app.name} ({app.country})")
    print(f"キーワード: {', '.join(app.keyword_list)}\n")
    for outcome in tracker.run_rank_check(app):
        if outcome.status == FETCH_FAILED:
            print(f'"{outcome.keyword}" の検索に失敗: {outcome.error}')
            continue
        if outcome.status not in (NEW_RANK, SKIPPED):
            print(f'"{outcome.keyword}" の記録に失敗: {outcome.error}')
            continue
        found = f"{outcome.rank}位" if outcome.rank is not None else "圏外"
        suffix = " => 新しい順位" if outcome.status == NEW_RANK else " => 前回と同じ順位のためスキップ"
        print(f'"{outcome.keyword}": {found}{suffix}')
    print(SEPARATOR)
    print_history(tracker, app)


def menu(db: Database) -> None:
    """対話メニューのループ."""
    apps = AppRegistry(db)
    tracker = RankTracker(db)

    while True:
        print("\nメニュー:")
        print("1) アプリ追加")
        print("2) 順位チェック")
        print("3) キーワード編集")
        print("4) 順位履歴の表示")
        print("5) 終了")
        choice = input("番号を入力: ").strip()

        try:
            if choice == "1":
                add_app(apps)
            elif choice == "2":
                app = select_app(apps, "順位チェックするアプリの番号: ")
                if app is not None:
                    check_ranks(tracker, app)
            elif choice == "3":
                edit_keywords(apps)
            elif choice == "4":
                app = select_app(apps, "履歴を表示するアプリの番号: ")
                if app is not None:
                    print_history(tracker, app)
            elif choice == "5":
                print("終了します。")
                return
            else:
                print("無効な選択です。")
        except RankCheckerError as e:
            logger.error("操作に失敗しました: %s", e)


def run() -> None:
    """メイン処理."""
    setup_logging()
    logger.info("=== App Store 順位チェッカー 起動 ===")

    db = Database(DB_PATH)
    try:
        db.init_db()
    except StoreError as e:
        logger.error("DB の初期化に失敗しました: %s", e)
        sys.exit(1)

    try:
        menu(db)
    except (EOFError, KeyboardInterrupt):
        print()
    logger.info("=== App Store 順位チェッカー 終了 ===")


if __name__ == "__main__":
    run()
