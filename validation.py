"""
Input checks for price bars and company ids posted to the API.

Each validator returns an error message (str) or None when the input is fine.
"""
import math
from datetime import date

REQUIRED_BAR_FIELDS = ("date", "open", "high", "low", "close", "volume")
PRICE_FIELDS = ("open", "high", "low", "close")


def _to_float(value):
    if isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return num if math.isfinite(num) else None


def parse_bar_date(value):
    """Parse 'YYYY-MM-DD' (or a date) into a date, None if invalid."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def validate_stock_data(body):
    """Validate a posted OHLCV bar."""
    if not isinstance(body, dict):
        return "Request body must be a JSON object"

    # Zero counts as missing, same as an absent key
    if any(not body.get(field) for field in REQUIRED_BAR_FIELDS):
        return "Missing required fields: date, open, high, low, close, volume"

    numbers = {field: _to_float(body[field]) for field in PRICE_FIELDS + ("volume",)}
    if any(v is None for v in numbers.values()):
        return "Price and volume values must be numbers"

    if parse_bar_date(body["date"]) is None:
        return "Invalid date format. Use YYYY-MM-DD"

    if any(numbers[f] <= 0 for f in PRICE_FIELDS) or numbers["volume"] < 0:
        return "Prices must be positive and volume non-negative"
    if not numbers["volume"].is_integer():
        return "Volume must be a whole number"

    o, h, l, c = (numbers[f] for f in PRICE_FIELDS)
    if h < max(o, c) or l > min(o, c):
        return "Invalid OHLC data: high must be >= open/close, low must be <= open/close"

    return None


def is_valid_bar(bar):
    return validate_stock_data(bar) is None


def validate_company_id(company_id):
    if company_id is None:
        return "Valid company ID is required"
    try:
        int(str(company_id).strip())
    except ValueError:
        return "Valid company ID is required"
    return None
