"""SQLite データベース操作モジュール.

テーブル:
  apps      追跡対象アプリ
  keywords  アプリ × キーワード × 国 (初回スキャン時に自動作成)
  scans     順位の観測履歴 (追記のみ・前回と同順位なら書き込まない)

グローバルな接続は持たない。Database を明示的に生成して各レジストリに渡す。
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from src.config import DB_PATH
from src.errors import AppNotFound, StoreError
from src.models import App, HistoryRow, Keyword, Scan, ScanResult, join_keywords, parse_keywords

logger = logging.getLogger(__name__)

_DDL = """
CREATE TABLE IF NOT EXISTS apps (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    app_id       TEXT NOT NULL,
    app_name     TEXT NOT NULL,
    app_country  TEXT NOT NULL,
    app_keywords TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS keywords (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    app_id       INTEGER NOT NULL,
    keyword      TEXT NOT NULL,
    country_code TEXT NOT NULL,
    FOREIGN KEY (app_id) REFERENCES apps (id)
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_keywords_app_keyword_country
ON keywords (app_id, keyword, country_code);

CREATE TABLE IF NOT EXISTS scans (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    keyword_id       INTEGER NOT NULL,
    app_id           INTEGER NOT NULL,
    ranking_position INTEGER CHECK (ranking_position IS NULL OR ranking_position > 0),
    date_of_scan     TEXT NOT NULL,
    FOREIGN KEY (keyword_id) REFERENCES keywords (id),
    FOREIGN KEY (app_id) REFERENCES apps (id)
);

CREATE INDEX IF NOT EXISTS idx_scans_app_keyword_date
ON scans (app_id, keyword_id, date_of_scan);
"""


def _now() -> str:
    """スキャン時刻 (UTC). 文字列比較で時系列順になる形式."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")


def _to_app(row: sqlite3.Row) -> App:
    return App(
        id=row["id"],
        app_id=row["app_id"],
        name=row["app_name"],
        country=row["app_country"],
        keywords=row["app_keywords"],
    )


def _to_scan(row: sqlite3.Row) -> Scan:
    return Scan(
        id=row["id"],
        keyword_id=row["keyword_id"],
        app_id=row["app_id"],
        rank=row["ranking_position"],
        scanned_at=row["date_of_scan"],
    )


class Database:
    """SQLite ファイルへの接続とテーブル管理."""

    def __init__(self, db_path: Path | str = DB_PATH):
        self.db_path = Path(db_path)

    @contextmanager
    def connect(self, immediate: bool = False):
        """接続を開き、成功時 commit・失敗時 rollback する.

        Args:
            immediate: True なら BEGIN IMMEDIATE で書き込みロックを先に取る
                （読み取り → 条件付き書き込みを1操作にまとめるため）。

        Raises:
            StoreError: sqlite3 の操作に失敗した場合。
        """
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            logger.error("DB 接続失敗: path=%s, error=%s", self.db_path, e)
            raise StoreError(f"cannot open {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("DB 操作失敗: %s", e)
            raise StoreError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(self) -> None:
        """テーブルを作成する（既存なら何もしない）."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            conn.executescript(_DDL)
        logger.info("DB 初期化完了: %s", self.db_path)

    def clear(self) -> None:
        """keywords・scans の全行を削除し、両テーブルの連番をリセットする.

        apps テーブルとその連番はそのまま残す。
        """
        with self.connect(immediate=True) as conn:
            scans = conn.execute("DELETE FROM scans").rowcount
            keywords = conn.execute("DELETE FROM keywords").rowcount
            conn.execute("DELETE FROM sqlite_sequence WHERE name IN ('keywords', 'scans')")
        logger.info("DB クリア: keywords=%d 件, scans=%d 件を削除", keywords, scans)


class AppRegistry:
    """追跡対象アプリの登録・参照・キーワード更新."""

    def __init__(self, db: Database):
        self._db = db

    def create(self, app_id: str, name: str, country: str, keywords: str | list[str]) -> App:
        """アプリを登録する. keywords はカンマ区切り文字列またはリスト."""
        if isinstance(keywords, str):
            keywords = parse_keywords(keywords)
        app_keywords = join_keywords(keywords)
        with self._db.connect() as conn:
            cur = conn.execute(
                "INSERT INTO apps (app_id, app_name, app_country, app_keywords) VALUES (?, ?, ?, ?)",
                (app_id.strip(), name.strip(), country.strip(), app_keywords),
            )
            app = App(
                id=cur.lastrowid,
                app_id=app_id.strip(),
                name=name.strip(),
                country=country.strip(),
                keywords=app_keywords,
            )
        logger.info("アプリ登録: id=%d, app_id=%s, name=%s", app.id, app.app_id, app.name)
        return app

    def list(self) -> list[App]:
        with self._db.connect() as conn:
            rows = conn.execute("SELECT * FROM apps ORDER BY id").fetchall()
        return [_to_app(r) for r in rows]

    def get(self, app_pk: int) -> App:
        """apps.id でアプリを取得する. 存在しなければ AppNotFound."""
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM apps WHERE id = ?", (app_pk,)).fetchone()
        if row is None:
            raise AppNotFound(f"app {app_pk} not found")
        return _to_app(row)

    def update_keywords(self, app_pk: int, keywords: str | list[str]) -> None:
        if isinstance(keywords, str):
            keywords = parse_keywords(keywords)
        with self._db.connect() as conn:
            cur = conn.execute(
                "UPDATE apps SET app_keywords = ? WHERE id = ?",
                (join_keywords(keywords), app_pk),
            )
            if cur.rowcount == 0:
                raise AppNotFound(f"app {app_pk} not found")
        logger.info("キーワード更新: id=%d, keywords=%s", app_pk, join_keywords(keywords))


class KeywordRegistry:
    """(アプリ, キーワード, 国) → keywords.id の解決."""

    def __init__(self, db: Database):
        self._db = db

    def resolve(self, app_id: int, keyword: str, country: str) -> int:
        """組に対応する keyword id を返す. 無ければ作成する.

        検索と作成は1トランザクション内で行い、UNIQUE インデックスでも重複を防ぐ。
        keyword は呼び出し側で前後空白を除去済みであること（大文字小文字は区別する）。
        """
        with self._db.connect(immediate=True) as conn:
            row = conn.execute(
                "SELECT id FROM keywords WHERE app_id = ? AND keyword = ? AND country_code = ?",
                (app_id, keyword, country),
            ).fetchone()
            if row is not None:
                return row["id"]
            cur = conn.execute(
                "INSERT INTO keywords (app_id, keyword, country_code) VALUES (?, ?, ?)",
                (app_id, keyword, country),
            )
            keyword_id = cur.lastrowid
        logger.info("キーワード作成: id=%d, app=%d, keyword=%s, country=%s",
                    keyword_id, app_id, keyword, country)
        return keyword_id

    def list(self, app_id: int) -> list[Keyword]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM keywords WHERE app_id = ? ORDER BY id", (app_id,)
            ).fetchall()
        return [
            Keyword(id=r["id"], app_id=r["app_id"], keyword=r["keyword"], country_code=r["country_code"])
            for r in rows
        ]


class ScanStore:
    """順位観測の追記と履歴取得."""

    def __init__(self, db: Database):
        self._db = db

    @staticmethod
    def _latest(conn: sqlite3.Connection, app_id: int, keyword_id: int) -> Scan | None:
        row = conn.execute(
            "SELECT * FROM scans WHERE app_id = ? AND keyword_id = ?"
            " ORDER BY date_of_scan DESC, id DESC LIMIT 1",
            (app_id, keyword_id),
        ).fetchone()
        return _to_scan(row) if row else None

    def latest_scan(self, app_id: int, keyword_id: int) -> Scan | None:
        with self._db.connect() as conn:
            return self._latest(conn, app_id, keyword_id)

    def record_scan(
        self,
        app_id: int,
        keyword_id: int,
        rank: int | None,
        scanned_at: str | None = None,
    ) -> ScanResult:
        """順位を記録する. 直近のスキャンと同順位なら書き込まずに skipped を返す.

        圏外 (None) 同士も同順位として扱う。

        Raises:
            StoreError: keyword が存在しない・別アプリのものだった場合、
                または scanned_at が直近のスキャンより古い場合など。
        """
        with self._db.connect(immediate=True) as conn:
            owner = conn.execute("SELECT app_id FROM keywords WHERE id = ?", (keyword_id,)).fetchone()
            if owner is None or owner["app_id"] != app_id:
                raise StoreError(f"keyword {keyword_id} does not belong to app {app_id}")

            scanned_at = scanned_at or _now()
            last = self._latest(conn, app_id, keyword_id)
            if last is not None and scanned_at < last.scanned_at:
                raise StoreError(
                    f"scan time {scanned_at} is older than latest scan {last.scanned_at}"
                    f" for keyword {keyword_id}"
                )
            if last is not None and last.rank == rank:
                logger.info("スキップ: keyword_id=%d, 前回と同順位 (%s)", keyword_id, rank)
                return ScanResult(skipped=True)

            cur = conn.execute(
                "INSERT INTO scans (app_id, keyword_id, ranking_position, date_of_scan)"
                " VALUES (?, ?, ?, ?)",
                (app_id, keyword_id, rank, scanned_at),
            )
            scan = Scan(
                id=cur.lastrowid,
                keyword_id=keyword_id,
                app_id=app_id,
                rank=rank,
                scanned_at=scanned_at,
            )
        logger.info("scans に挿入: id=%d, keyword_id=%d, rank=%s", scan.id, keyword_id, rank)
        return ScanResult(scan=scan)

    def list_history(self, app_id: int) -> list[HistoryRow]:
        """アプリの全スキャンをキーワード昇順・キーワード内は新しい順で返す."""
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT k.keyword, s.date_of_scan, s.ranking_position
                FROM keywords AS k
                INNER JOIN scans AS s ON k.id = s.keyword_id
                WHERE k.app_id = ? AND s.app_id = ?
                ORDER BY k.keyword ASC, s.date_of_scan DESC, s.id DESC
                """,
                (app_id, app_id),
            ).fetchall()
        return [
            HistoryRow(keyword=r["keyword"], scanned_at=r["date_of_scan"], rank=r["ranking_position"])
            for r in rows
        ]

    def list_unscanned_keywords(self, app_id: int, expected: str | list[str]) -> list[str]:
        """expected のうち、まだ keywords テーブルに行が無いキーワードを返す（入力順）."""
        if isinstance(expected, str):
            expected = parse_keywords(expected)
        with self._db.connect() as conn:
            rows = conn.execute("SELECT keyword FROM keywords WHERE app_id = ?", (app_id,)).fetchall()
        known = {r["keyword"].strip() for r in rows}
        missing = [k.strip() for k in expected if k.strip() and k.strip() not in known]
        logger.debug("未スキャンのキーワード: app=%d, %s", app_id, missing)
        return missing
