"""
Stock Market Dashboard -- Flask Backend
Supports Postgres (DATABASE_URL) and SQLite (local dev).
"""
import os
import logging
import sqlite3
from flask import Flask, jsonify, request, g
from flask_cors import CORS

from metrics import (
    market_summary, moving_average, period_change, price_change,
    price_range_stats, technical_indicators,
)
from setup_database import upsert_bars
from validation import parse_bar_date, validate_company_id, validate_stock_data

try:
    import yfinance as yf
    YF_AVAILABLE = True
except ImportError:
    YF_AVAILABLE = False
    logging.warning("yfinance not installed. Live quotes unavailable. pip install yfinance")

app = Flask(__name__)
CORS(app)

# ── Database config ────────────────────────────────────────
# If DATABASE_URL is set, use Postgres. Otherwise fall back to SQLite.
DATABASE_URL = os.environ.get("DATABASE_URL")
DB_PATH = os.environ.get("DB_PATH", "stocks.db")
DEFAULT_DAYS = int(os.environ.get("DEFAULT_HISTORY_DAYS", "30"))

USE_POSTGRES = DATABASE_URL is not None

if USE_POSTGRES:
    import psycopg2
    print("[DB] Using Postgres")
else:
    print(f"[DB] Using SQLite: {DB_PATH}")


# ── Database helpers ───────────────────────────────────────

def get_db():
    if 'db' not in g:
        if USE_POSTGRES:
            g.db = psycopg2.connect(DATABASE_URL)
        else:
            g.db = sqlite3.connect(DB_PATH)
    return g.db


@app.teardown_appcontext
def close_db(exc):
    db = g.pop('db', None)
    if db:
        db.close()


def db_execute(query, params=None):
    """Execute a query, returning (columns, rows)."""
    cur = get_db().cursor()
    cur.execute(query, params or ())
    columns = [desc[0] for desc in cur.description] if cur.description else []
    return columns, cur.fetchall()


def db_fetchone(query, params=None):
    cur = get_db().cursor()
    cur.execute(query, params or ())
    columns = [desc[0] for desc in cur.description] if cur.description else []
    return columns, cur.fetchone()


def _p():
    return '%s' if USE_POSTGRES else '?'


def _like():
    return 'ILIKE' if USE_POSTGRES else 'LIKE'


def _clean(val):
    """Decimal -> float, date -> 'YYYY-MM-DD' for JSON."""
    if hasattr(val, 'as_tuple'):
        return float(val)
    if hasattr(val, 'isoformat'):
        return val.isoformat()[:10]
    return val


def row_to_dict(columns, row):
    return {col: _clean(row[i]) for i, col in enumerate(columns)}


def _round(value, digits=2):
    return round(value, digits) if value is not None else None


def _days_arg():
    try:
        days = int(request.args.get("days", DEFAULT_DAYS))
    except ValueError:
        return None
    return days if days > 0 else None


# ── Queries ────────────────────────────────────────────────

# Latest and second-latest close per company, portable across Postgres and SQLite
COMPANY_WITH_PRICES_SQL = """
    SELECT c.id, c.symbol, c.name, c.sector, c.exchange, c.market_cap,
        (SELECT close_price FROM stock_data sd WHERE sd.company_id = c.id
            ORDER BY sd.date DESC LIMIT 1) AS current_price,
        (SELECT close_price FROM stock_data sd WHERE sd.company_id = c.id
            ORDER BY sd.date DESC LIMIT 1 OFFSET 1) AS previous_close,
        (SELECT volume FROM stock_data sd WHERE sd.company_id = c.id
            ORDER BY sd.date DESC LIMIT 1) AS volume,
        (SELECT date FROM stock_data sd WHERE sd.company_id = c.id
            ORDER BY sd.date DESC LIMIT 1) AS last_update
    FROM companies c
"""


def fetch_company(company_id):
    P = _p()
    columns, row = db_fetchone(
        f"""SELECT id, symbol, name, sector, exchange, market_cap, description, website
            FROM companies WHERE id = {P}""",
        (company_id,),
    )
    return row_to_dict(columns, row) if row else None


def fetch_bars(company_id, days):
    """Last `days` bars for a company, oldest first."""
    P = _p()
    columns, rows = db_execute(
        f"""SELECT date, open_price, high_price, low_price, close_price, adj_close_price, volume
            FROM stock_data WHERE company_id = {P}
            ORDER BY date DESC LIMIT {P}""",
        (company_id, days),
    )
    bars = []
    for row in reversed(rows):
        d = row_to_dict(columns, row)
        bars.append({
            "date": d["date"],
            "open": d["open_price"],
            "high": d["high_price"],
            "low": d["low_price"],
            "close": d["close_price"],
            "adj_close": d["adj_close_price"],
            "volume": int(d["volume"]) if d["volume"] is not None else 0,
        })
    return bars


def fetch_companies_with_prices():
    columns, rows = db_execute(COMPANY_WITH_PRICES_SQL + " ORDER BY c.name")
    return [row_to_dict(columns, r) for r in rows]


# ── Routes ─────────────────────────────────────────────────

@app.route("/api/health")
def api_health():
    try:
        db_execute("SELECT 1")
        return jsonify({"status": "healthy", "database": "connected"})
    except Exception as e:
        logging.error(f"Health check failed: {e}")
        return jsonify({"status": "unhealthy", "database": "disconnected"}), 500


@app.route("/api/companies")
def api_companies():
    return jsonify(fetch_companies_with_prices())


@app.route("/api/companies/<company_id>")
def api_company(company_id):
    error = validate_company_id(company_id)
    if error:
        return jsonify({"error": error}), 400

    company = fetch_company(int(company_id))
    if not company:
        return jsonify({"error": "Company not found"}), 404
    return jsonify(company)


@app.route("/api/companies/<company_id>/stock-data", methods=["GET"])
def api_stock_data(company_id):
    error = validate_company_id(company_id)
    if error:
        return jsonify({"error": error}), 400
    days = _days_arg()
    if days is None:
        return jsonify({"error": "days must be a positive integer"}), 400

    bars = fetch_bars(int(company_id), days)
    for bar in bars:
        bar.pop("adj_close", None)
    return jsonify(bars)


@app.route("/api/companies/<company_id>/stock-data", methods=["POST"])
def api_add_stock_data(company_id):
    error = validate_company_id(company_id)
    if error:
        return jsonify({"error": error}), 400

    body = request.get_json(silent=True)
    error = validate_stock_data(body)
    if error:
        return jsonify({"error": error}), 400

    company_id = int(company_id)
    if not fetch_company(company_id):
        return jsonify({"error": "Company not found"}), 404

    bar = {
        "date": parse_bar_date(body["date"]).isoformat(),
        "open": float(body["open"]),
        "high": float(body["high"]),
        "low": float(body["low"]),
        "close": float(body["close"]),
        "volume": round(float(body["volume"])),
    }
    try:
        upsert_bars(get_db(), company_id, [bar])
    except Exception as e:
        get_db().rollback()
        logging.error(f"Error adding stock data for company {company_id}: {e}")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Stock data added successfully", "data": bar}), 201


@app.route("/api/companies/<company_id>/latest-price")
def api_latest_price(company_id):
    error = validate_company_id(company_id)
    if error:
        return jsonify({"error": error}), 400

    bars = fetch_bars(int(company_id), 2)
    if not bars:
        return jsonify({"error": "No stock data found"}), 404

    latest = bars[-1]
    # A single bar is compared against itself
    previous = bars[0]
    change = price_change(latest["close"], previous["close"])
    return jsonify({
        "price": latest["close"],
        "change": _round(change["absolute"]),
        "change_percent": _round(change["percentage"]),
        "date": latest["date"],
        "volume": latest["volume"],
    })


@app.route("/api/companies/<company_id>/quote")
def api_quote(company_id):
    """Live quote from yfinance, falling back to the latest two DB closes."""
    error = validate_company_id(company_id)
    if error:
        return jsonify({"error": error}), 400

    company = fetch_company(int(company_id))
    if not company:
        return jsonify({"error": "Company not found"}), 404

    live = _get_live_quote(company["symbol"])
    if live:
        return jsonify(live)

    bars = fetch_bars(company["id"], 2)
    if not bars:
        return jsonify({"error": "No stock data found"}), 404
    price = bars[-1]["close"]
    prev_close = bars[0]["close"] if len(bars) > 1 else None
    change = price_change(price, prev_close)
    return jsonify({
        "price": price,
        "prev_close": prev_close,
        "change": _round(change["absolute"]),
        "change_pct": _round(change["percentage"]),
        "source": "database",
    })


@app.route("/api/companies/<company_id>/stats")
def api_company_stats(company_id):
    """Chart statistics and moving averages over the last `days` bars."""
    error = validate_company_id(company_id)
    if error:
        return jsonify({"error": error}), 400
    days = _days_arg()
    if days is None:
        return jsonify({"error": "days must be a positive integer"}), 400

    bars = fetch_bars(int(company_id), days)
    change = period_change(bars)
    stats = price_range_stats(bars)
    indicators = technical_indicators(bars)

    if stats:
        stats = {k: _round(v) for k, v in stats.items()}
    if indicators:
        indicators = {k: _round(v) for k, v in indicators.items()}

    return jsonify({
        "company_id": int(company_id),
        "data_points": len(bars),
        "change": _round(change["absolute"]),
        "change_pct": _round(change["percentage"]),
        "is_positive": change["is_positive"],
        "stats": stats,
        "indicators": indicators,
        "sma20": [{"date": p["date"], "value": _round(p["value"])} for p in moving_average(bars, 20)],
        "sma50": [{"date": p["date"], "value": _round(p["value"])} for p in moving_average(bars, 50)],
    })


@app.route("/api/search/companies")
def api_search_companies():
    q = request.args.get("q", "").strip()
    if not q:
        return jsonify({"error": "Search query required"}), 400

    P, LIKE = _p(), _like()
    pattern = f"%{q}%"
    columns, rows = db_execute(
        f"""SELECT id, symbol, name, sector, exchange FROM companies
            WHERE name {LIKE} {P} OR symbol {LIKE} {P} OR sector {LIKE} {P}
            ORDER BY name""",
        (pattern, pattern, pattern),
    )
    return jsonify([row_to_dict(columns, r) for r in rows])


@app.route("/api/market-summary")
def api_market_summary():
    companies = fetch_companies_with_prices()
    rows = []
    for c in companies:
        change = price_change(c["current_price"], c["previous_close"])
        rows.append({
            "id": c["id"],
            "symbol": c["symbol"],
            "name": c["name"],
            "sector": c["sector"],
            "market_cap": c["market_cap"],
            "current_price": c["current_price"],
            "previous_close": c["previous_close"],
            "change": _round(change["absolute"]),
            "change_percent": _round(change["percentage"]),
            "volume": c["volume"],
            "last_update": c["last_update"],
        })

    return jsonify({
        "summary": market_summary(companies),
        "companies": rows,
    })


@app.route("/api/market/sectors")
def api_market_sectors():
    columns, rows = db_execute(
        """SELECT sub.sector, COUNT(sub.id) AS company_count,
                  AVG(sub.current_price) AS average_price,
                  SUM(sub.market_cap) AS total_market_cap
           FROM (""" + COMPANY_WITH_PRICES_SQL + """) sub
           GROUP BY sub.sector
           ORDER BY SUM(sub.market_cap) IS NULL, SUM(sub.market_cap) DESC"""
    )
    result = []
    for row in rows:
        d = row_to_dict(columns, row)
        result.append({
            "sector": d["sector"],
            "company_count": int(d["company_count"]),
            "average_price": _round(d["average_price"]),
            "total_market_cap": int(d["total_market_cap"]) if d["total_market_cap"] is not None else None,
        })
    return jsonify(result)


# ── Errors ─────────────────────────────────────────────────

@app.errorhandler(404)
def not_found(e):
    return jsonify({"error": "Endpoint not found"}), 404


@app.errorhandler(500)
def server_error(e):
    logging.error(f"Unhandled error: {e}")
    return jsonify({"error": "Internal server error"}), 500


# ── Live quote (yfinance) ──────────────────────────────────

def _get_live_quote(symbol):
    """Fetch live price data from yfinance. Returns dict or None."""
    if not YF_AVAILABLE:
        return None
    try:
        info = yf.Ticker(symbol).fast_info
        current_price = getattr(info, 'last_price', None)
        prev_close = getattr(info, 'previous_close', None)
        if current_price is None:
            return None
        change = price_change(current_price, prev_close)
        return {
            "price": round(current_price, 2),
            "prev_close": round(prev_close, 2) if prev_close else None,
            "change": round(change["absolute"], 2),
            "change_pct": round(change["percentage"], 2),
            "source": "live",
        }
    except Exception as e:
        logging.warning(f"yfinance quote failed for {symbol}: {e}")
        return None


# ── Entry point ────────────────────────────────────────────

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "false").lower() == "true"
    app.run(host="0.0.0.0", port=port, debug=debug)
