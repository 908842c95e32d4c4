"""
catalog.py -- In-memory, read-only catalog of normalized assets.

Built once from the JSON files in a data directory; the Flask app receives
the Catalog instance and only ever reads from it. Picking up newly synced
files requires building a new catalog (i.e. restarting the server).
"""
import logging
import math
import os
import re
from datetime import datetime, timezone
from types import MappingProxyType

from price_series import load_document

logger = logging.getLogger(__name__)

DEFAULT_SERIES_LIMIT = 240
LEADER_COUNT = 3

# Files whose names start with this prefix hold symbol lists / asset
# metadata (e.g. symbols_alpaca.json), not price series.
METADATA_PREFIX = "symbol"

# leader name -> (metric key, direction)
LEADER_BOARDS = {
    "momentum": ("momentum90d", "desc"),
    "growth": ("cagr", "desc"),
    "stability": ("maxDrawdown", "asc"),
    "intraday": ("changePct", "desc"),
}

SUMMARY_FIELDS = ("symbol", "name", "exchange", "currency", "lastUpdated")


def canonical_symbol(symbol):
    return str(symbol).strip().upper()


def last_timestamp(asset):
    return asset["series"][-1]["timestamp"]


def iso_timestamp(epoch_ms):
    """Millisecond epoch -> '2024-01-31T00:00:00.000Z'."""
    dt = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


# ── Query helpers ──────────────────────────────────────────

_RE_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_limit(raw, default=DEFAULT_SERIES_LIMIT):
    """Parse a ?limit= value. Leading digits count ('12abc' -> 12); anything
    without them falls back to the default."""
    if raw is None:
        return default
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    m = _RE_LEADING_INT.match(str(raw))
    if not m:
        return default
    return int(m.group(1))


def truncate_series(series, limit):
    """Trailing `limit` points; limit <= 0 means the full series."""
    if limit > 0:
        return list(series[-limit:])
    return list(series)


def summarize(asset):
    summary = {field: asset[field] for field in SUMMARY_FIELDS}
    summary.update(asset["metrics"])
    return summary


def top_n(items, key, n, direction="desc"):
    """Top n items by items[key] as [{symbol, name, value}].

    Sorting is stable, so ties keep their input order in either direction.
    """
    ranked = sorted(items, key=lambda item: item[key], reverse=(direction == "desc"))
    return [
        {"symbol": item["symbol"], "name": item["name"], "value": item[key]}
        for item in ranked[:n]
    ]


def _is_finite(value):
    return isinstance(value, (int, float)) and math.isfinite(value)


# ── Catalog ────────────────────────────────────────────────

class Catalog:
    """Read-only symbol -> asset mapping with the API's query projections."""

    def __init__(self, assets=None):
        self._assets = MappingProxyType(dict(assets or {}))

    def __len__(self):
        return len(self._assets)

    def __contains__(self, symbol):
        return canonical_symbol(symbol) in self._assets

    def get(self, symbol):
        return self._assets.get(canonical_symbol(symbol))

    def symbols(self):
        return list(self._assets.keys())

    def summaries(self):
        return sorted((summarize(a) for a in self._assets.values()), key=lambda s: s["symbol"])

    def last_updated(self):
        latest = 0
        for asset in self._assets.values():
            ts = last_timestamp(asset)
            if ts > latest:
                latest = ts
        return iso_timestamp(latest) if latest else None

    def detail(self, symbol, limit=DEFAULT_SERIES_LIMIT):
        asset = self.get(symbol)
        if asset is None:
            return None
        return {**asset, "series": truncate_series(asset["series"], limit)}

    def series(self, symbol, limit=DEFAULT_SERIES_LIMIT):
        asset = self.get(symbol)
        if asset is None:
            return None
        return truncate_series(asset["series"], limit)

    def leaders(self, n=LEADER_COUNT):
        summaries = self.summaries()
        boards = {}
        for board, (key, direction) in LEADER_BOARDS.items():
            candidates = [s for s in summaries if _is_finite(s[key])]
            boards[board] = top_n(candidates, key, n, direction)
        return boards

    def insights(self):
        return {
            "datasets": len(self),
            "lastUpdated": self.last_updated(),
            "leaders": self.leaders(),
        }


# ── Loading ────────────────────────────────────────────────

def list_source_files(data_dir):
    files = []
    for name in sorted(os.listdir(data_dir)):
        lower = name.lower()
        if not lower.endswith(".json") or lower.startswith(METADATA_PREFIX):
            continue
        files.append(os.path.join(data_dir, name))
    return files


def add_asset(assets, asset):
    """Insert asset unless an entry for the same symbol has an equal-or-newer
    last point. Returns True if the asset was kept."""
    key = canonical_symbol(asset["symbol"])
    existing = assets.get(key)
    if existing is not None and last_timestamp(asset) <= last_timestamp(existing):
        return False
    assets[key] = asset
    return True


def build_catalog(data_dir):
    """Load every source file in data_dir into a Catalog.

    Unreadable or malformed files are logged and skipped; payloads with
    fewer than two usable points are dropped silently.
    """
    if not os.path.isdir(data_dir):
        logger.warning(f"Data directory {data_dir} not found; serving an empty catalog")
        return Catalog()

    assets = {}
    for path in list_source_files(data_dir):
        try:
            asset = load_document(path)
        except Exception as e:
            logger.warning(f"Skipping {os.path.basename(path)}: {e}")
            continue
        if asset is None:
            continue
        add_asset(assets, asset)

    logger.info(f"Loaded {len(assets)} assets from {data_dir}")
    return Catalog(assets)
