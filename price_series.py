"""
price_series.py -- Turn a cached provider chart document into a normalized asset.

Source files are Yahoo-style chart envelopes:

    {"chart": {"result": [{"meta": {...},
                           "timestamp": [...],
                           "indicators": {"quote": [{"close": [...]}],
                                          "adjclose": [{"adjclose": [...]}]}}]}}

extract_payload() flattens that envelope, normalize_asset() builds the
asset dict served by the API (metrics included).
"""
import json
import logging
import math
import os
from datetime import datetime, timezone

from price_metrics import calculate_metrics

logger = logging.getLogger(__name__)

MIN_POINTS = 2
DEFAULT_EXCHANGE = "Unknown exchange"
DEFAULT_CURRENCY = "USD"


def is_finite_number(value):
    """True for real ints/floats that are not NaN or +/-inf (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints too large for a float
        return False


def utc_date(epoch_ms):
    """'YYYY-MM-DD' for a millisecond epoch, in UTC."""
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).date().isoformat()


def symbol_from_filename(filename):
    return os.path.splitext(os.path.basename(filename))[0]


# ── Envelope ───────────────────────────────────────────────

def _first(items):
    if isinstance(items, list) and items:
        return items[0]
    return None


def _as_list(value):
    return value if isinstance(value, list) else []


def extract_payload(document):
    """Flatten chart.result[0] into {meta, timestamps, closes, adjustedCloses}.

    Returns None when the envelope itself is missing.
    """
    if not isinstance(document, dict):
        return None
    chart = document.get("chart")
    if not isinstance(chart, dict):
        return None
    result = _first(chart.get("result"))
    if not isinstance(result, dict):
        return None

    indicators = result.get("indicators")
    if not isinstance(indicators, dict):
        indicators = {}
    quote = _first(indicators.get("quote"))
    adjclose = _first(indicators.get("adjclose"))

    meta = result.get("meta")
    return {
        "meta": meta if isinstance(meta, dict) else {},
        "timestamps": _as_list(result.get("timestamp")),
        "closes": _as_list(quote.get("close")) if isinstance(quote, dict) else [],
        "adjustedCloses": _as_list(adjclose.get("adjclose")) if isinstance(adjclose, dict) else [],
    }


# ── Series ─────────────────────────────────────────────────

def to_series(payload):
    """Pair timestamps with closes, dropping gaps, sorted by timestamp.

    No interpolation: an index with a missing or non-finite close (or
    timestamp) is simply left out.
    """
    timestamps = _as_list(payload.get("timestamps"))
    closes = _as_list(payload.get("closes"))
    adjusted = _as_list(payload.get("adjustedCloses"))

    series = []
    for i, raw_ts in enumerate(timestamps):
        close = closes[i] if i < len(closes) else None
        if not is_finite_number(close) or not is_finite_number(raw_ts):
            continue

        ts = int(raw_ts * 1000)
        try:
            date = utc_date(ts)
        except (OverflowError, OSError, ValueError):
            continue

        adj = adjusted[i] if i < len(adjusted) else None
        series.append({
            "timestamp": ts,
            "date": date,
            "close": float(close),
            "adjustedClose": float(adj) if is_finite_number(adj) else float(close),
        })

    # sorted() is stable, so equal timestamps keep their source order
    return sorted(series, key=lambda p: p["timestamp"])


def _clean_text(value):
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _first_trade_date(meta):
    raw = meta.get("firstTradeDate")
    if not raw or not is_finite_number(raw):
        return None
    try:
        return utc_date(raw * 1000)
    except (OverflowError, OSError, ValueError):
        return None


def normalize_asset(payload, fallback_symbol):
    """Build a normalized asset dict, or None if the payload is unusable."""
    if not isinstance(payload, dict):
        return None

    series = to_series(payload)
    if len(series) < MIN_POINTS:
        return None

    meta = payload.get("meta")
    if not isinstance(meta, dict):
        meta = {}

    symbol = (_clean_text(meta.get("symbol")) or str(fallback_symbol or "").strip()).upper()
    if not symbol:
        return None
    name = _clean_text(meta.get("longName")) or _clean_text(meta.get("shortName")) or symbol

    return {
        "symbol": symbol,
        "name": name,
        "exchange": _clean_text(meta.get("exchangeName")) or DEFAULT_EXCHANGE,
        "currency": _clean_text(meta.get("currency")) or DEFAULT_CURRENCY,
        "firstTradeDate": _first_trade_date(meta),
        "lastUpdated": series[-1]["date"],
        "metrics": calculate_metrics(series),
        "series": series,
    }


def load_document(path):
    """Read one source file and normalize it. Raises on unreadable/invalid JSON."""
    with open(path, "r", encoding="utf-8") as f:
        document = json.load(f)

    payload = extract_payload(document)
    if payload is None:
        logger.debug(f"{path}: no chart.result[0] envelope")
        return None
    return normalize_asset(payload, symbol_from_filename(path))
