import os
import sqlite3
from datetime import date, timedelta

import pytest

# Tests always run against a throwaway SQLite file
os.environ.pop("DATABASE_URL", None)

import app as app_module
import setup_database

START = date(2024, 1, 1)

COMPANIES = [
    {"symbol": "ALPHA.NS", "name": "Alpha Industries", "sector": "Energy", "market_cap": 100},
    {"symbol": "BETA.NS", "name": "Beta Bank", "sector": "Banking", "market_cap": 200},
    {"symbol": "GAMMA.NS", "name": "Gamma Motors", "sector": "Automotive", "market_cap": None},
]


def rising_bars(count, start=START, base=100):
    """`count` daily bars with close = base + i."""
    bars = []
    for i in range(count):
        close = base + i
        bars.append({
            "date": (start + timedelta(days=i)).isoformat(),
            "open": close - 0.5,
            "high": close + 1,
            "low": close - 1.5,
            "close": close,
            "volume": 1000 * (i + 1),
        })
    return bars


BETA_BARS = [
    {"date": "2024-01-01", "open": 6, "high": 6.5, "low": 5.5, "close": 6, "volume": 500},
    {"date": "2024-01-02", "open": 6, "high": 6.2, "low": 4.8, "close": 5, "volume": 700},
]


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "test_stocks.db")
    conn = sqlite3.connect(path)
    setup_database.create_tables(conn)
    conn.close()
    return path


@pytest.fixture
def seeded_db(db_path):
    """Alpha (60 rising bars), Beta (two bars, falling) and Gamma (no bars)."""
    conn = sqlite3.connect(db_path)
    setup_database.seed_companies(conn, COMPANIES)
    setup_database.upsert_bars(conn, 1, rising_bars(60))
    setup_database.upsert_bars(conn, 2, BETA_BARS)
    conn.close()
    return db_path


@pytest.fixture
def app(seeded_db, monkeypatch):
    monkeypatch.setattr(app_module, "DB_PATH", seeded_db)
    monkeypatch.setattr(app_module, "YF_AVAILABLE", False)
    app_module.app.config.update({"TESTING": True})
    yield app_module.app


@pytest.fixture
def client(app):
    return app.test_client()
