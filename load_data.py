"""
load_data.py -- load companies and daily price bars from a JSON file.

Expected shape:
    {"companies": [{"symbol": "TCS.NS", "name": "...", "sector": "IT",
                    "exchange": "NSE", "market_cap": 1300000000000,
                    "prices": [{"date": "2024-01-02", "open": ..., "high": ...,
                                "low": ..., "close": ..., "volume": ...}]}]}

Usage:
    python load_data.py [json_file] [db_path]
"""
import json
import sys

from setup_database import connect, create_tables, placeholder, seed_companies, upsert_bars
from validation import is_valid_bar, parse_bar_date


def clean_value(value):
    if value is None or value == '' or value == 'N/A':
        return None
    if isinstance(value, str):
        value = value.replace(',', '').strip()
        try:
            return float(value) if '.' in value else int(value)
        except ValueError:
            return value
    return value


def clean_company_name(name):
    if not name:
        return None
    return ' '.join(name.replace('\r', ' ').replace('\n', ' ').split())


def clean_bar(raw):
    """Normalise one price record; numbers parsed, date as 'YYYY-MM-DD'."""
    bar = {key: clean_value(raw.get(key)) for key in ("open", "high", "low", "close", "volume")}
    parsed = parse_bar_date(raw.get("date"))
    bar["date"] = parsed.isoformat() if parsed else raw.get("date")
    return bar


def load_data(json_file='stock_data.json', db_path=None):
    with open(json_file, 'r') as f:
        data = json.load(f)

    companies = data.get('companies', [])
    conn = connect(db_path)
    create_tables(conn)
    P = placeholder()

    print(f"Loading {len(companies)} companies...")
    loaded_bars = 0
    skipped_bars = 0

    try:
        for company in companies:
            symbol = (company.get('symbol') or '').strip()
            if not symbol:
                continue

            seed_companies(conn, [{
                "symbol": symbol,
                "name": clean_company_name(company.get('name')) or symbol,
                "sector": company.get('sector') or 'Unknown',
                "exchange": company.get('exchange'),
                "market_cap": clean_value(company.get('market_cap')),
                "description": company.get('description'),
                "website": company.get('website'),
            }])

            cursor = conn.cursor()
            cursor.execute(f"SELECT id FROM companies WHERE symbol = {P}", (symbol,))
            company_id = cursor.fetchone()[0]

            bars = []
            for raw in company.get('prices', []):
                bar = clean_bar(raw)
                if is_valid_bar(bar):
                    bars.append(bar)
                else:
                    skipped_bars += 1

            loaded_bars += upsert_bars(conn, company_id, bars)
            print(f"  {symbol}: {len(bars)} bars")
    finally:
        conn.close()

    print(f"Complete: {loaded_bars} bars loaded, {skipped_bars} invalid bars skipped")
    return loaded_bars, skipped_bars


if __name__ == "__main__":
    load_data(sys.argv[1] if len(sys.argv) > 1 else 'stock_data.json',
              sys.argv[2] if len(sys.argv) > 2 else None)
