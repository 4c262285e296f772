"""
Market metrics -- derived figures for the dashboard.

Every function here is a pure transform over plain dicts as they come out of
the API (Company and PriceBar rows). Nothing is rounded here; rounding is a
display / response concern.
"""
import math

# ── Missing-value policy ───────────────────────────────────
# None, NaN and 0 all count as "no price". A real zero previous close is
# therefore treated the same as missing data.


def _is_missing(value):
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return value == 0


def _number(value):
    """Numeric value or 0 for None/NaN."""
    if value is None:
        return 0
    if isinstance(value, float) and math.isnan(value):
        return 0
    return value


NEUTRAL_CHANGE = {
    "absolute": 0,
    "percentage": 0,
    "is_positive": True,
    "is_neutral": True,
}


# ── Price change ───────────────────────────────────────────

def price_change(current, previous):
    """Absolute and percentage change of `current` against `previous`.

    Returns a dict with absolute, percentage, is_positive, is_neutral.
    Missing or zero inputs give the neutral default instead of raising.
    """
    if _is_missing(current) or _is_missing(previous):
        return dict(NEUTRAL_CHANGE)

    absolute = current - previous
    percentage = (absolute / previous) * 100
    return {
        "absolute": absolute,
        "percentage": percentage,
        "is_positive": absolute >= 0,
        "is_neutral": absolute == 0,
    }


def classify_change(current, previous):
    """'gainer', 'loser' or 'unchanged'."""
    change = price_change(current, previous)
    if change["is_neutral"]:
        return "unchanged"
    return "gainer" if change["is_positive"] else "loser"


def period_change(bars, field="close"):
    """Change from the first bar's close to the last bar's close."""
    if not bars:
        return dict(NEUTRAL_CHANGE)
    return price_change(bars[-1].get(field), bars[0].get(field))


# ── Market summary ─────────────────────────────────────────

def market_summary(companies):
    """Total market cap plus gainer/loser/unchanged counts.

    An empty list gives a zero-valued summary, never None.
    """
    summary = {
        "total_market_cap": 0,
        "gainers": 0,
        "losers": 0,
        "unchanged": 0,
    }
    buckets = {"gainer": "gainers", "loser": "losers", "unchanged": "unchanged"}

    for company in companies:
        summary["total_market_cap"] += _number(company.get("market_cap"))
        kind = classify_change(company.get("current_price"), company.get("previous_close"))
        summary[buckets[kind]] += 1

    return summary


# ── Moving averages ────────────────────────────────────────

def iter_moving_average(bars, period, field="close"):
    """Yield {date, value} for each full trailing window of `period` bars.

    `bars` must be oldest first. Yields nothing when there are fewer bars
    than `period`. A period below 1 raises ValueError at call time.
    """
    _check_period(period)
    return _sma_windows(bars, period, field)


def _check_period(period):
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")


def _sma_windows(bars, period, field):
    values = [_number(bar.get(field)) for bar in bars]
    for i in range(period - 1, len(values)):
        window = values[i - period + 1:i + 1]
        yield {
            "date": bars[i].get("date"),
            "value": sum(window) / period,
        }


def moving_average(bars, period, field="close"):
    return list(iter_moving_average(bars, period, field))


def latest_moving_average(bars, period, field="close"):
    """SMA of the last `period` bars, or None if the series is too short."""
    _check_period(period)
    if len(bars) < period:
        return None
    tail = bars[-period:]
    return sum(_number(bar.get(field)) for bar in tail) / period


def technical_indicators(bars):
    """SMA-20 and SMA-50 of the most recent closes.

    None when there are fewer than 20 bars; sma50 is None below 50 bars.
    """
    if len(bars) < 20:
        return None
    return {
        "sma20": latest_moving_average(bars, 20),
        "sma50": latest_moving_average(bars, 50),
    }


# ── Chart statistics ───────────────────────────────────────

def price_range_stats(bars):
    """High, low, average volume and high-low range of a series."""
    if not bars:
        return None

    high = max(_number(bar.get("high")) for bar in bars)
    low = min(_number(bar.get("low")) for bar in bars)
    avg_volume = sum(_number(bar.get("volume")) for bar in bars) / len(bars)
    return {
        "high": high,
        "low": low,
        "avg_volume": avg_volume,
        "range": high - low,
    }
