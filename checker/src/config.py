"""設定モジュール — 環境変数・定数定義."""

import os
from pathlib import Path

from dotenv import load_dotenv

# .env はプロジェクトルートに配置
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# --- SQLite ---
DB_PATH = Path(os.environ.get("RANK_DB_PATH", _PROJECT_ROOT / "mydb.sqlite3"))

# --- App Store 検索 (iTunes Search API) ---
SEARCH_URL = "https://itunes.apple.com/search"
SEARCH_ENTITY = "software"
SEARCH_LIMIT = 200  # API の上限

# --- User-Agent ---
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.5 Safari/605.1.15"
)

# --- リクエスト設定 ---
REQUEST_INTERVAL_MIN = float(os.environ.get("REQUEST_INTERVAL_MIN", "1.0"))
REQUEST_INTERVAL_MAX = float(os.environ.get("REQUEST_INTERVAL_MAX", "3.0"))
REQUEST_TIMEOUT = 15  # 秒

# --- ログ ---
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
LOG_DIR.mkdir(exist_ok=True)
