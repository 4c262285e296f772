#!/usr/bin/env python3
"""
cron_refresh.py -- Triggered by cron to pull fresh daily bars from Yahoo Finance.

Uses Postgres if DATABASE_URL is set, otherwise SQLite.

Cron setup:
  - Schedule: 30 11 * * 1-5   (weekdays, after NSE close)
  - Command:  python cron_refresh.py
"""
import logging
import os
import sys
import time
from datetime import datetime

import yfinance as yf

from setup_database import DB_PATH, USE_POSTGRES, connect, upsert_bars
from validation import is_valid_bar

REFRESH_PERIOD = os.environ.get("REFRESH_PERIOD", "3mo")
REFRESH_DELAY = float(os.environ.get("REFRESH_DELAY", "1.0"))


def get_companies(conn):
    """(id, symbol) for every company in the database."""
    cur = conn.cursor()
    cur.execute("SELECT id, symbol FROM companies ORDER BY symbol")
    return cur.fetchall()


def history_to_bars(hist):
    """Convert a yfinance history DataFrame into PriceBar dicts, dropping bad rows."""
    bars = []
    skipped = 0
    for idx, row in hist.iterrows():
        day = idx.date() if hasattr(idx, 'date') else idx
        try:
            bar = {
                "date": day.isoformat(),
                "open": round(float(row["Open"]), 2),
                "high": round(float(row["High"]), 2),
                "low": round(float(row["Low"]), 2),
                "close": round(float(row["Close"]), 2),
                "volume": int(row["Volume"]) if row["Volume"] == row["Volume"] else 0,
            }
        except (TypeError, ValueError):
            skipped += 1
            continue
        if is_valid_bar(bar):
            bars.append(bar)
        else:
            skipped += 1
    if skipped:
        logging.warning(f"Skipped {skipped} invalid rows")
    return bars


def fetch_bars(symbol, period=REFRESH_PERIOD):
    hist = yf.Ticker(symbol).history(period=period, interval="1d")
    if hist.empty:
        return []
    return history_to_bars(hist)


def refresh(conn, period=REFRESH_PERIOD, delay=REFRESH_DELAY):
    """Refresh every company. Returns (companies_updated, bars_written)."""
    companies = get_companies(conn)
    updated = 0
    written = 0

    for i, (company_id, symbol) in enumerate(companies):
        try:
            bars = fetch_bars(symbol, period)
        except Exception as e:
            logging.error(f"yfinance history failed for {symbol}: {e}")
            continue

        if not bars:
            print(f"  {symbol}: no data")
            continue

        written += upsert_bars(conn, company_id, bars)
        updated += 1
        print(f"  {symbol}: {len(bars)} bars")

        if delay and i < len(companies) - 1:
            time.sleep(delay)

    return updated, written


def main():
    db_type = "Postgres" if USE_POSTGRES else f"SQLite ({DB_PATH})"
    print(f"{'='*60}")
    print(f"  Price Refresh — {datetime.now().isoformat()}")
    print(f"  Database: {db_type}")
    print(f"{'='*60}")

    conn = connect()
    try:
        companies = get_companies(conn)
        if not companies:
            print("ERROR: No companies found! Run setup_database.py first.")
            sys.exit(1)

        print(f"Refreshing {len(companies)} companies (period={REFRESH_PERIOD})")
        start = datetime.now()
        updated, written = refresh(conn)
        duration = datetime.now() - start
    finally:
        conn.close()

    print(f"\nUpdated {updated}/{len(companies)} companies, {written} bars in {duration}")
    print(f"{'='*60}")


if __name__ == "__main__":
    main()
