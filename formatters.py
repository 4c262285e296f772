"""
Display formatting for financial, numeric and date values.

Indian conventions throughout: rupee symbol, lakh/crore digit grouping
(12,34,567) and compact K / L / Cr suffixes. Every formatter returns a
best-effort string; bad input gives a zero-equivalent value, never an error.
"""
import math
import numbers
import re
from datetime import date, datetime
from decimal import Context, Decimal, ROUND_HALF_UP

from metrics import price_change

RUPEE = "₹"

# (threshold, divisor, suffix) -- checked top down
COMPACT_STEPS = [
    (10000000, 10000000, "Cr"),  # 1 crore
    (100000, 100000, "L"),       # 1 lakh
    (1000, 1000, "K"),
]

_DECIMAL_CTX = Context(prec=60)


# ── Helpers ────────────────────────────────────────────────

def _coerce(value):
    """Return a finite int/float, or None for anything unusable (None, NaN, inf, junk)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        value = float(value)
    elif isinstance(value, str):
        try:
            value = float(value.replace(",", "").strip())
        except ValueError:
            return None
    elif not isinstance(value, (int, float)):
        if not isinstance(value, numbers.Real):
            return None
        value = float(value)
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _to_fixed(value, digits):
    """Fixed-point string, half-up on the exact binary value (like JS toFixed)."""
    quantum = Decimal(1).scaleb(-digits)
    if value == 0:
        # -0.0 prints unsigned
        value = 0
    fixed = Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP, context=_DECIMAL_CTX)
    return format(fixed, "f")


def _group_indian(digits):
    """'1234567' -> '12,34,567'"""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def _format_indian(value, decimals, prefix=""):
    fixed = _to_fixed(abs(value), decimals)
    whole, _, fraction = fixed.partition(".")
    sign = "-" if value < 0 else ""
    text = _group_indian(whole)
    if fraction:
        text = f"{text}.{fraction}"
    return f"{sign}{prefix}{text}"


def _compact(value, symbol=""):
    for threshold, divisor, suffix in COMPACT_STEPS:
        if value >= threshold:
            return f"{symbol}{_to_fixed(value / divisor, 1)}{suffix}"
    return None


# ── Currency / numbers ─────────────────────────────────────

def format_currency(value, compact=False, hide_symbol=False, decimals=2):
    """Rupee amount, e.g. 1234567.5 -> '₹12,34,567.50', compact -> '₹12.3L'."""
    value = _coerce(value)
    if value is None:
        return f"{RUPEE}0.00"

    symbol = "" if hide_symbol else RUPEE

    if compact:
        short = _compact(value, symbol)
        if short:
            return short

    return _format_indian(value, decimals, prefix=symbol)


def format_percentage(value, is_decimal=False, decimals=2):
    """'12.34%'. With is_decimal the input is a fraction (0.05 -> '5.00%')."""
    value = _coerce(value)
    if value is None:
        return "0.00%"

    percentage = value * 100 if is_decimal else value
    return f"{_to_fixed(percentage, decimals)}%"


def format_number(value, compact=False, decimals=0):
    value = _coerce(value)
    if value is None:
        return "0"

    if compact:
        short = _compact(value)
        if short:
            return short

    return _format_indian(value, decimals)


def format_volume(volume):
    volume = _coerce(volume)
    if not volume:
        return "0"

    short = _compact(volume)
    if short:
        return short

    # Plain figure: up to 3 fraction digits, trailing zeros dropped
    if float(volume).is_integer():
        return _format_indian(volume, 0)
    text = _format_indian(volume, 3)
    return text.rstrip("0").rstrip(".")


def format_market_cap(market_cap):
    """Market cap in crore-based wording, e.g. '₹1.80 Lakh Cr'."""
    market_cap = _coerce(market_cap)
    if not market_cap:
        return f"{RUPEE}0"

    if market_cap >= 1000000000000:
        # 1 lakh crore
        return f"{RUPEE}{_to_fixed(market_cap / 1000000000000, 2)} Lakh Cr"
    if market_cap >= 10000000000:
        # 1000 crore
        return f"{RUPEE}{_to_fixed(market_cap / 10000000000, 0)} Thousand Cr"
    if market_cap >= 10000000:
        return f"{RUPEE}{_to_fixed(market_cap / 10000000, 0)} Cr"
    if market_cap >= 100000:
        return f"{RUPEE}{_to_fixed(market_cap / 100000, 1)} L"

    return format_currency(market_cap, compact=True)


def format_price_change(current, previous):
    """Signed display strings for a price move plus the direction flags."""
    change = price_change(current, previous)
    sign = "+" if change["is_positive"] and not change["is_neutral"] else ""
    return {
        "absolute": f"{sign}{format_currency(change['absolute'])}",
        "percentage": f"{sign}{format_percentage(change['percentage'])}",
        "is_positive": change["is_positive"],
        "is_neutral": change["is_neutral"],
    }


_RE_LEADING_NUMBER = re.compile(r'^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)')


def sanitize_number(value, fallback=0):
    """Parse the leading number out of `value` ('45abc' -> 45.0), else fallback."""
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else fallback

    match = _RE_LEADING_NUMBER.match(str(value))
    if not match:
        return fallback
    num = float(match.group(1))
    return num if math.isfinite(num) else fallback


# ── Dates / durations ──────────────────────────────────────

def _parse_datetime(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def format_date(value, short=False, time=False):
    """'5 January 2024'; short -> '5 Jan'; time appends ', 02:30 PM'."""
    if not value:
        return "N/A"

    dt = _parse_datetime(value)
    if dt is None:
        return "Invalid Date"

    if short:
        return f"{dt.day} {dt.strftime('%b')}"

    text = f"{dt.day} {dt.strftime('%B')} {dt.year}"
    if time:
        text += f", {dt.strftime('%I:%M %p')}"
    return text


def format_duration(milliseconds):
    """Milliseconds -> '1d 2h', '1h 1m', '1m 1s' or '5s'."""
    milliseconds = _coerce(milliseconds)
    if not milliseconds or milliseconds < 0:
        return "0s"

    seconds = int(milliseconds // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


# ── Labels ─────────────────────────────────────────────────

MARKET_STATUS = {
    "OPEN": {"text": "Market Open", "color": "text-green-600"},
    "CLOSED": {"text": "Market Closed", "color": "text-red-600"},
    "PRE_OPEN": {"text": "Pre-Open", "color": "text-yellow-600"},
    "POST_CLOSE": {"text": "After Hours", "color": "text-blue-600"},
}

EXCHANGES = {
    "NSE": "National Stock Exchange",
    "BSE": "Bombay Stock Exchange",
    "MCX": "Multi Commodity Exchange",
}


def format_market_status(status):
    label = MARKET_STATUS.get(status)
    if label:
        return dict(label)
    return {"text": status, "color": "text-gray-600"}


def format_exchange(exchange):
    return EXCHANGES.get(exchange, exchange)
