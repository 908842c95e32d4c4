"""
price_metrics.py -- Summary statistics computed from a normalized price series.

All values are percentages except the price levels and sampleCount. The
functions never raise: degenerate inputs (zero prices, one-day windows)
yield 0, None, or a non-finite float, which the API renders as null.
"""
import math

TRADING_DAYS = 252
DAY_MS = 24 * 60 * 60 * 1000
YEAR_MS = 365 * DAY_MS
MOMENTUM_WINDOWS = {"momentum90d": 90, "momentum365d": 365}


def _divide(a, b):
    # IEEE semantics instead of ZeroDivisionError
    if b == 0:
        return math.nan if a == 0 else math.copysign(math.inf, a)
    return a / b


def pct_change(start, end):
    return _divide(end - start, start) * 100


def high_low(closes):
    high = closes[0]
    low = closes[0]
    for price in closes:
        if price > high:
            high = price
        if price < low:
            low = price
    return high, low


def max_drawdown(closes):
    """Most negative (close - running peak) / running peak, in percent. Always <= 0."""
    peak = closes[0]
    worst = 0.0
    for price in closes:
        if price > peak:
            peak = price
        dd = pct_change(peak, price)
        if dd < worst:
            worst = dd
    return worst


def range_change(series, days):
    """Percent change across the trailing `days` calendar days, or None.

    The window is every point with timestamp >= last timestamp - days.
    """
    cutoff = series[-1]["timestamp"] - days * DAY_MS
    window = [p for p in series if p["timestamp"] >= cutoff]
    if len(window) < 2:
        return None
    start = window[0]["close"]
    end = window[-1]["close"]
    if not math.isfinite(start) or start == 0:
        return None
    return (end - start) / start * 100


def _log_return(prev, cur):
    ratio = cur / prev
    if ratio > 0:
        return math.log(ratio)
    return -math.inf if ratio == 0 else math.nan


def annualized_volatility(closes):
    """Population std-dev of daily log returns, scaled by sqrt(252), in percent."""
    returns = []
    for i in range(1, len(closes)):
        if closes[i - 1] > 0:
            returns.append(_log_return(closes[i - 1], closes[i]))

    count = len(returns) or 1
    total = 0.0
    for r in returns:
        total += r
    mean = total / count

    squares = 0.0
    for r in returns:
        squares += (r - mean) ** 2
    variance = squares / count

    return math.sqrt(variance) * math.sqrt(TRADING_DAYS) * 100


def compound_growth(series):
    """CAGR in percent over the full span of the series; 0 for a zero-length span."""
    span_years = (series[-1]["timestamp"] - series[0]["timestamp"]) / YEAR_MS
    if span_years <= 0:
        return 0.0
    ratio = _divide(series[-1]["close"], series[0]["close"])
    try:
        growth = math.pow(ratio, 1 / span_years)
    except OverflowError:
        growth = math.inf
    except ValueError:
        # negative base with a fractional exponent
        growth = math.nan
    return (growth - 1) * 100


def calculate_metrics(series):
    """Metrics dict for a series of at least two points, ascending by timestamp.

    Keys are camelCase because the dict is served to the dashboard as-is.
    """
    closes = [p["close"] for p in series]
    latest = closes[-1]
    previous = closes[-2]
    change_pct = (latest - previous) / previous * 100 if previous else 0.0
    year_high, year_low = high_low(closes)

    metrics = {
        "latestClose": latest,
        "previousClose": previous,
        "changePct": change_pct,
        "yearHigh": year_high,
        "yearLow": year_low,
        "maxDrawdown": max_drawdown(closes),
        "volatility": annualized_volatility(closes),
        "cagr": compound_growth(series),
    }
    for key, days in MOMENTUM_WINDOWS.items():
        metrics[key] = range_change(series, days)
    metrics["sampleCount"] = len(series)
    return metrics
