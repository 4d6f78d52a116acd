"""keywords・scans テーブルを全削除するスクリプト (apps は残す)."""

from __future__ import annotations

import logging
import sys

from src.config import DB_PATH
from src.db import Database
from src.errors import StoreError
from src.main import setup_logging


def run() -> None:
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        Database(DB_PATH).clear()
    except StoreError as e:
        logger.error("DB のクリアに失敗しました: %s", e)
        sys.exit(1)
    logger.info("DB をクリアしました。")


if __name__ == "__main__":
    run()
