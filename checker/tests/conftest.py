import pytest

from src.db import AppRegistry, Database


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "rank.sqlite3")
    database.init_db()
    return database


@pytest.fixture
def app(db):
    return AppRegistry(db).create("999", "Cafe Finder", "us", "coffee, tea")
