"""
setup_database.py -- create the companies / stock_data tables and seed them.

Uses Postgres if DATABASE_URL is set, otherwise SQLite.

Usage:
    python setup_database.py [db_path] [--no-sample-data]
"""
import os
import random
import sqlite3
import sys
from datetime import date, timedelta

DATABASE_URL = os.environ.get("DATABASE_URL")
DB_PATH = os.environ.get("DB_PATH", "stocks.db")
USE_POSTGRES = DATABASE_URL is not None

if USE_POSTGRES:
    import psycopg2

SQLITE_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS companies (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        symbol TEXT UNIQUE NOT NULL,
        name TEXT NOT NULL,
        sector TEXT NOT NULL,
        exchange TEXT DEFAULT 'NSE',
        market_cap INTEGER,
        description TEXT,
        website TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stock_data (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        company_id INTEGER REFERENCES companies(id) ON DELETE CASCADE,
        date DATE NOT NULL,
        open_price REAL NOT NULL,
        high_price REAL NOT NULL,
        low_price REAL NOT NULL,
        close_price REAL NOT NULL,
        adj_close_price REAL,
        volume INTEGER NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(company_id, date)
    )
    """,
]

POSTGRES_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS companies (
        id SERIAL PRIMARY KEY,
        symbol VARCHAR(20) UNIQUE NOT NULL,
        name VARCHAR(255) NOT NULL,
        sector VARCHAR(100) NOT NULL,
        exchange VARCHAR(10) DEFAULT 'NSE',
        market_cap BIGINT,
        description TEXT,
        website VARCHAR(255),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stock_data (
        id SERIAL PRIMARY KEY,
        company_id INTEGER REFERENCES companies(id) ON DELETE CASCADE,
        date DATE NOT NULL,
        open_price DECIMAL(10,2) NOT NULL,
        high_price DECIMAL(10,2) NOT NULL,
        low_price DECIMAL(10,2) NOT NULL,
        close_price DECIMAL(10,2) NOT NULL,
        adj_close_price DECIMAL(10,2),
        volume BIGINT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(company_id, date)
    )
    """,
]

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_companies_sector ON companies(sector)",
    "CREATE INDEX IF NOT EXISTS idx_stock_data_company ON stock_data(company_id)",
    "CREATE INDEX IF NOT EXISTS idx_stock_data_date ON stock_data(date)",
]

SAMPLE_COMPANIES = [
    {"symbol": "RELIANCE.NS", "name": "Reliance Industries Ltd.", "sector": "Energy",
     "market_cap": 1800000000000, "website": "https://www.ril.com",
     "description": "Reliance Industries Limited is an Indian multinational conglomerate, headquartered in Mumbai, Maharashtra, India."},
    {"symbol": "TCS.NS", "name": "Tata Consultancy Services", "sector": "IT",
     "market_cap": 1300000000000, "website": "https://www.tcs.com",
     "description": "Tata Consultancy Services is an Indian multinational information technology services and consulting company."},
    {"symbol": "HDFCBANK.NS", "name": "HDFC Bank Limited", "sector": "Banking",
     "market_cap": 900000000000, "website": "https://www.hdfcbank.com",
     "description": "HDFC Bank Limited is an Indian banking and financial services company."},
    {"symbol": "INFY.NS", "name": "Infosys Limited", "sector": "IT",
     "market_cap": 700000000000, "website": "https://www.infosys.com",
     "description": "Infosys Limited is an Indian multinational information technology company."},
    {"symbol": "ICICIBANK.NS", "name": "ICICI Bank Limited", "sector": "Banking",
     "market_cap": 650000000000, "website": "https://www.icicibank.com",
     "description": "ICICI Bank Limited is an Indian multinational bank and financial services company."},
    {"symbol": "HINDUNILVR.NS", "name": "Hindustan Unilever Ltd.", "sector": "FMCG",
     "market_cap": 600000000000, "website": "https://www.hul.co.in",
     "description": "Hindustan Unilever Limited is an Indian consumer goods company."},
    {"symbol": "ITC.NS", "name": "ITC Limited", "sector": "FMCG",
     "market_cap": 550000000000, "website": "https://www.itcportal.com",
     "description": "ITC Limited is an Indian conglomerate company headquartered in Kolkata, West Bengal."},
    {"symbol": "SBIN.NS", "name": "State Bank of India", "sector": "Banking",
     "market_cap": 500000000000, "website": "https://www.sbi.co.in",
     "description": "State Bank of India is an Indian multinational public sector bank."},
    {"symbol": "BHARTIARTL.NS", "name": "Bharti Airtel Limited", "sector": "Telecom",
     "market_cap": 450000000000, "website": "https://www.airtel.in",
     "description": "Bharti Airtel Limited is an Indian multinational telecommunications services company."},
    {"symbol": "ASIANPAINT.NS", "name": "Asian Paints Limited", "sector": "Paints",
     "market_cap": 300000000000, "website": "https://www.asianpaints.com",
     "description": "Asian Paints Limited is an Indian multinational paint company."},
    {"symbol": "MARUTI.NS", "name": "Maruti Suzuki India Ltd.", "sector": "Automotive",
     "market_cap": 280000000000, "website": "https://www.marutisuzuki.com",
     "description": "Maruti Suzuki India Limited is an Indian automobile manufacturer."},
    {"symbol": "BAJFINANCE.NS", "name": "Bajaj Finance Limited", "sector": "Finance",
     "market_cap": 400000000000, "website": "https://www.bajajfinserv.in",
     "description": "Bajaj Finance Limited is an Indian non-banking financial company."},
]

# Starting close for the synthetic price walk
BASE_PRICES = {
    "RELIANCE.NS": 2400,
    "TCS.NS": 3200,
    "HDFCBANK.NS": 1600,
    "INFY.NS": 1400,
    "ICICIBANK.NS": 900,
    "HINDUNILVR.NS": 2600,
    "ITC.NS": 450,
    "SBIN.NS": 550,
    "BHARTIARTL.NS": 800,
    "ASIANPAINT.NS": 3100,
    "MARUTI.NS": 9500,
    "BAJFINANCE.NS": 6800,
}
DEFAULT_BASE_PRICE = 1000


def connect(db_path=None):
    if USE_POSTGRES:
        return psycopg2.connect(DATABASE_URL)
    return sqlite3.connect(db_path or DB_PATH)


def placeholder():
    return '%s' if USE_POSTGRES else '?'


def create_tables(conn):
    cursor = conn.cursor()
    for stmt in (POSTGRES_SCHEMA if USE_POSTGRES else SQLITE_SCHEMA):
        cursor.execute(stmt)
    for idx in INDEXES:
        cursor.execute(idx)
    conn.commit()


def seed_companies(conn, companies=None):
    """Insert sample companies, skipping symbols that already exist."""
    P = placeholder()
    cursor = conn.cursor()
    for company in (companies or SAMPLE_COMPANIES):
        cursor.execute(
            f"""INSERT INTO companies (symbol, name, sector, exchange, market_cap, description, website)
                VALUES ({P}, {P}, {P}, {P}, {P}, {P}, {P})
                ON CONFLICT (symbol) DO NOTHING""",
            (company["symbol"], company["name"], company["sector"],
             company.get("exchange") or "NSE", company.get("market_cap"),
             company.get("description"), company.get("website")),
        )
    conn.commit()


def upsert_bars(conn, company_id, bars):
    """Insert or update daily bars for one company. Returns rows written."""
    P = placeholder()
    cursor = conn.cursor()
    written = 0
    for bar in bars:
        cursor.execute(
            f"""INSERT INTO stock_data
                (company_id, date, open_price, high_price, low_price, close_price, adj_close_price, volume)
                VALUES ({P}, {P}, {P}, {P}, {P}, {P}, {P}, {P})
                ON CONFLICT (company_id, date) DO UPDATE SET
                    open_price = EXCLUDED.open_price,
                    high_price = EXCLUDED.high_price,
                    low_price = EXCLUDED.low_price,
                    close_price = EXCLUDED.close_price,
                    adj_close_price = EXCLUDED.adj_close_price,
                    volume = EXCLUDED.volume""",
            (company_id, str(bar["date"]), bar["open"], bar["high"], bar["low"],
             bar["close"], bar.get("adj_close", bar["close"]), int(bar["volume"])),
        )
        written += 1
    conn.commit()
    return written


def generate_bars(base_price, days=90, end=None, rng=None):
    """Random-walk OHLCV bars for the last `days` calendar days, weekdays only.

    Daily move is within +/-3%, wicks extend up to 2% past the body, and
    volume grows with the size of the move.
    """
    rng = rng or random.Random()
    end = end or date.today()
    price = base_price
    bars = []

    for offset in range(days, -1, -1):
        day = end - timedelta(days=offset)
        if day.weekday() >= 5:
            continue

        change_pct = (rng.random() - 0.5) * 0.06
        open_ = price
        close = open_ * (1 + change_pct)
        high = max(open_, close) * (1 + rng.random() * 0.02)
        low = min(open_, close) * (1 - rng.random() * 0.02)
        base_volume = 100000 + rng.random() * 500000
        volume = int(base_volume * (1 + abs(change_pct) * 10))

        # Round the body first so the wicks still enclose it after rounding
        open_r, close_r = round(open_, 2), round(close, 2)
        bars.append({
            "date": day.isoformat(),
            "open": open_r,
            "high": max(round(high, 2), open_r, close_r),
            "low": min(round(low, 2), open_r, close_r),
            "close": close_r,
            "volume": volume,
        })
        price = close

    return bars


def generate_stock_data(conn, days=90, rng=None):
    """Generate sample bars for every company in the database."""
    cursor = conn.cursor()
    cursor.execute("SELECT id, symbol FROM companies ORDER BY id")
    companies = cursor.fetchall()

    for company_id, symbol in companies:
        base = BASE_PRICES.get(symbol, DEFAULT_BASE_PRICE)
        bars = generate_bars(base, days=days, rng=rng)
        upsert_bars(conn, company_id, bars)
        print(f"Generated {len(bars)} bars for {symbol}")

    return len(companies)


def create_database(db_path=None, sample_data=True):
    conn = connect(db_path)
    try:
        create_tables(conn)
        if sample_data:
            seed_companies(conn)
            generate_stock_data(conn)
    finally:
        conn.close()
    print(f"Database ready: {'Postgres' if USE_POSTGRES else (db_path or DB_PATH)}")


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    create_database(args[0] if args else None, sample_data="--no-sample-data" not in sys.argv)
