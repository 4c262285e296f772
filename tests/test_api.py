import sqlite3

import app as app_module
import setup_database


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "healthy", "database": "connected"}


def test_health_reports_database_failure(client, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("database is locked")
    monkeypatch.setattr(app_module, "db_execute", broken)
    response = client.get("/api/health")
    assert response.status_code == 500
    assert response.get_json()["status"] == "unhealthy"


def test_unknown_endpoint(client):
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Endpoint not found"}


# ── Companies ──────────────────────────────────────────────

def test_companies_include_latest_prices(client):
    data = client.get("/api/companies").get_json()
    assert [c["symbol"] for c in data] == ["ALPHA.NS", "BETA.NS", "GAMMA.NS"]
    alpha, beta, gamma = data
    assert alpha["current_price"] == 159
    assert alpha["previous_close"] == 158
    assert alpha["last_update"] == "2024-02-29"
    assert beta["current_price"] == 5
    assert beta["previous_close"] == 6
    assert gamma["current_price"] is None
    assert gamma["previous_close"] is None


def test_company_detail(client):
    response = client.get("/api/companies/2")
    assert response.status_code == 200
    company = response.get_json()
    assert company["symbol"] == "BETA.NS"
    assert company["exchange"] == "NSE"


def test_company_bad_id(client):
    response = client.get("/api/companies/abc")
    assert response.status_code == 400
    assert response.get_json() == {"error": "Valid company ID is required"}


def test_company_not_found(client):
    response = client.get("/api/companies/999")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Company not found"}


def test_search(client):
    data = client.get("/api/search/companies?q=bank").get_json()
    assert [c["symbol"] for c in data] == ["BETA.NS"]
    data = client.get("/api/search/companies?q=.NS").get_json()
    assert len(data) == 3


def test_search_requires_query(client):
    response = client.get("/api/search/companies?q=  ")
    assert response.status_code == 400
    assert response.get_json() == {"error": "Search query required"}


# ── Stock data ─────────────────────────────────────────────

def test_stock_data_defaults_to_thirty_days(client):
    bars = client.get("/api/companies/1/stock-data").get_json()
    assert len(bars) == 30
    assert bars[0]["date"] == "2024-01-31"
    assert bars[-1]["date"] == "2024-02-29"
    assert set(bars[0]) == {"date", "open", "high", "low", "close", "volume"}


def test_stock_data_days_param(client):
    bars = client.get("/api/companies/1/stock-data?days=5").get_json()
    assert [b["close"] for b in bars] == [155, 156, 157, 158, 159]
    assert client.get("/api/companies/3/stock-data").get_json() == []


def test_stock_data_bad_days(client):
    assert client.get("/api/companies/1/stock-data?days=0").status_code == 400
    assert client.get("/api/companies/1/stock-data?days=ten").status_code == 400


def test_add_stock_data(client):
    bar = {"date": "2024-03-01", "open": 50, "high": 55, "low": 49, "close": 54, "volume": 1500}
    response = client.post("/api/companies/3/stock-data", json=bar)
    assert response.status_code == 201
    body = response.get_json()
    assert body["message"] == "Stock data added successfully"
    assert body["data"]["close"] == 54

    bars = client.get("/api/companies/3/stock-data").get_json()
    assert len(bars) == 1
    assert bars[0]["date"] == "2024-03-01"


def test_add_stock_data_replaces_same_day(client):
    bar = {"date": "2024-01-02", "open": 6, "high": 7, "low": 5, "close": 7, "volume": 900}
    assert client.post("/api/companies/2/stock-data", json=bar).status_code == 201
    bars = client.get("/api/companies/2/stock-data").get_json()
    assert len(bars) == 2
    assert bars[-1]["close"] == 7
    assert bars[-1]["volume"] == 900


def test_add_stock_data_rejects_bad_ohlc(client):
    bar = {"date": "2024-03-01", "open": 50, "high": 45, "low": 40, "close": 48, "volume": 10}
    response = client.post("/api/companies/1/stock-data", json=bar)
    assert response.status_code == 400
    assert response.get_json()["error"].startswith("Invalid OHLC data")


def test_add_stock_data_missing_fields(client):
    response = client.post("/api/companies/1/stock-data", json={"date": "2024-03-01"})
    assert response.status_code == 400
    assert response.get_json()["error"].startswith("Missing required fields")


def test_add_stock_data_unknown_company(client):
    bar = {"date": "2024-03-01", "open": 50, "high": 55, "low": 49, "close": 54, "volume": 1500}
    response = client.post("/api/companies/999/stock-data", json=bar)
    assert response.status_code == 404


# ── Prices ─────────────────────────────────────────────────

def test_latest_price_gain(client):
    data = client.get("/api/companies/1/latest-price").get_json()
    assert data == {"price": 159, "change": 1.0, "change_percent": 0.63,
                    "date": "2024-02-29", "volume": 60000}


def test_latest_price_loss(client):
    data = client.get("/api/companies/2/latest-price").get_json()
    assert data["change"] == -1
    assert data["change_percent"] == -16.67


def test_latest_price_single_bar_is_flat(client):
    bar = {"date": "2024-03-01", "open": 50, "high": 55, "low": 49, "close": 54, "volume": 1500}
    client.post("/api/companies/3/stock-data", json=bar)
    data = client.get("/api/companies/3/latest-price").get_json()
    assert data["price"] == 54
    assert data["change"] == 0
    assert data["change_percent"] == 0


def test_latest_price_without_data(client):
    response = client.get("/api/companies/3/latest-price")
    assert response.status_code == 404
    assert response.get_json() == {"error": "No stock data found"}


def test_quote_falls_back_to_database(client):
    data = client.get("/api/companies/1/quote").get_json()
    assert data == {"price": 159, "prev_close": 158, "change": 1.0,
                    "change_pct": 0.63, "source": "database"}


def test_quote_prefers_live_price(client, monkeypatch):
    live = {"price": 161.2, "prev_close": 159.0, "change": 2.2, "change_pct": 1.38, "source": "live"}
    seen = []

    def fake_quote(symbol):
        seen.append(symbol)
        return live
    monkeypatch.setattr(app_module, "_get_live_quote", fake_quote)

    assert client.get("/api/companies/1/quote").get_json() == live
    assert seen == ["ALPHA.NS"]


def test_live_quote_disabled_without_yfinance(app):
    assert app_module._get_live_quote("ALPHA.NS") is None


# ── Stats ──────────────────────────────────────────────────

def test_stats_full_window(client):
    data = client.get("/api/companies/1/stats?days=60").get_json()
    assert data["data_points"] == 60
    assert data["change"] == 59
    assert data["change_pct"] == 59.0
    assert data["is_positive"] is True
    assert data["stats"] == {"high": 160, "low": 98.5, "avg_volume": 30500, "range": 61.5}
    assert data["indicators"] == {"sma20": 149.5, "sma50": 134.5}
    assert len(data["sma20"]) == 41
    assert len(data["sma50"]) == 11
    assert data["sma20"][0] == {"date": "2024-01-20", "value": 109.5}


def test_stats_short_window(client):
    data = client.get("/api/companies/1/stats").get_json()
    assert data["data_points"] == 30
    assert data["indicators"]["sma50"] is None
    assert data["sma50"] == []
    assert len(data["sma20"]) == 11


def test_stats_without_data(client):
    data = client.get("/api/companies/3/stats").get_json()
    assert data["data_points"] == 0
    assert data["stats"] is None
    assert data["indicators"] is None
    assert data["change"] == 0
    assert data["sma20"] == []


# ── Market ─────────────────────────────────────────────────

def test_market_summary(client):
    data = client.get("/api/market-summary").get_json()
    assert data["summary"] == {"total_market_cap": 300, "gainers": 1, "losers": 1, "unchanged": 1}
    rows = {c["symbol"]: c for c in data["companies"]}
    assert rows["ALPHA.NS"]["change"] == 1.0
    assert rows["BETA.NS"]["change_percent"] == -16.67
    assert rows["GAMMA.NS"]["change"] == 0


def test_market_summary_empty_database(client, tmp_path, monkeypatch):
    empty = str(tmp_path / "empty.db")
    conn = sqlite3.connect(empty)
    setup_database.create_tables(conn)
    conn.close()
    monkeypatch.setattr(app_module, "DB_PATH", empty)
    data = client.get("/api/market-summary").get_json()
    assert data == {
        "summary": {"total_market_cap": 0, "gainers": 0, "losers": 0, "unchanged": 0},
        "companies": [],
    }


def test_sectors(client):
    data = client.get("/api/market/sectors").get_json()
    assert [s["sector"] for s in data] == ["Banking", "Energy", "Automotive"]
    banking, energy, automotive = data
    assert banking == {"sector": "Banking", "company_count": 1, "average_price": 5.0,
                       "total_market_cap": 200}
    assert energy["average_price"] == 159.0
    assert automotive["total_market_cap"] is None
    assert automotive["average_price"] is None


def test_add_stock_data_rejects_negative_prices(client):
    bar = {"date": "2024-03-01", "open": -10, "high": -5, "low": -12, "close": -6, "volume": -100}
    response = client.post("/api/companies/3/stock-data", json=bar)
    assert response.status_code == 400
    assert response.get_json() == {"error": "Prices must be positive and volume non-negative"}
    assert client.get("/api/companies/3/stock-data").get_json() == []


def test_add_stock_data_rejects_fractional_volume(client):
    bar = {"date": "2024-03-01", "open": 50, "high": 55, "low": 49, "close": 54, "volume": 10.5}
    response = client.post("/api/companies/3/stock-data", json=bar)
    assert response.status_code == 400
    assert response.get_json() == {"error": "Volume must be a whole number"}
