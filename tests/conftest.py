"""Pytest configuration and shared fixtures for quiz_analytics tests."""

import pytest

from quiz_analytics.app import create_app
from quiz_analytics.db import Store, connect
from quiz_analytics.timekeys import format_instant, to_instant

ADMIN_KEY = "test-admin-key"

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
IPAD_UA = (
    "Mozilla/5.0 (iPad; CPU OS 16_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.0 Mobile/15E148 Safari/604.1"
)
ANDROID_UA = (
    "Mozilla/5.0 (Linux; Android 13; Pixel 7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/116.0.0.0 Mobile Safari/537.36"
)
WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
MAC_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Safari/605.1.15"
)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "analytics.sqlite3")


@pytest.fixture
def app(db_path):
    return create_app({"DB_PATH": db_path, "ADMIN_API_KEY": ADMIN_KEY, "TESTING": True})


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers():
    return {"x-api-key": ADMIN_KEY}


@pytest.fixture
def store(db_path):
    """Direct store handle on the same SQLite file the app uses."""
    db = connect(db_path)
    yield Store(db)
    db.close()


@pytest.fixture
def seed(store):
    """Insert a row with an explicit created_at (UTC ISO string or datetime)."""

    def _seed(table, created_at, **values):
        values["created_at"] = format_instant(to_instant(created_at))
        return store.insert(table, values)

    return _seed
