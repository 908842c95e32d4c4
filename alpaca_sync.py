"""
alpaca_sync.py -- Pull asset metadata and daily bars from Alpaca into DATA_DIR.

Each synced symbol is written as alpaca_<SYMBOL>.json in the same chart
envelope the catalog reads, so the next server start picks it up (a newer
last bar wins over an older cached file). Asset metadata for the run goes
to symbols_alpaca.json, which the catalog loader skips.

Runs one symbol at a time with a fixed delay; failures are counted, never
retried.
"""
import os
import json
import time
import logging
from datetime import datetime, timedelta, timezone

import requests

logger = logging.getLogger(__name__)

ALPACA_KEY_ID = os.environ.get("ALPACA_KEY_ID")
ALPACA_SECRET_KEY = os.environ.get("ALPACA_SECRET_KEY")
ALPACA_TRADING_URL = os.environ.get("ALPACA_TRADING_URL", "https://paper-api.alpaca.markets")
ALPACA_DATA_URL = os.environ.get("ALPACA_DATA_URL", "https://data.alpaca.markets")
SYNC_DELAY_MS = int(os.environ.get("ALPACA_SYNC_DELAY_MS", "350"))
LOOKBACK_DAYS = int(os.environ.get("ALPACA_LOOKBACK_DAYS", "730"))
REQUEST_TIMEOUT = 15

FILE_PREFIX = "alpaca_"
METADATA_FILE = "symbols_alpaca.json"
BARS_PAGE_LIMIT = 10000


class SyncError(Exception):
    """A symbol's response could not be turned into a price file."""


# ── Client ─────────────────────────────────────────────────

class AlpacaClient:
    def __init__(self, key_id, secret_key, trading_url=ALPACA_TRADING_URL,
                 data_url=ALPACA_DATA_URL, timeout=REQUEST_TIMEOUT):
        self.trading_url = trading_url.rstrip("/")
        self.data_url = data_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "APCA-API-KEY-ID": key_id,
            "APCA-API-SECRET-KEY": secret_key,
            "Accept": "application/json",
        })

    def _get(self, url, params=None):
        response = self.session.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def get_asset(self, symbol):
        return self._get(f"{self.trading_url}/v2/assets/{symbol}")

    def get_bars(self, symbol, start):
        """All daily bars since `start` (a datetime), following pagination."""
        params = {
            "timeframe": "1Day",
            "start": start.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "limit": BARS_PAGE_LIMIT,
            "adjustment": "raw",
        }
        bars = []
        while True:
            page = self._get(f"{self.data_url}/v2/stocks/{symbol}/bars", params=params)
            if not isinstance(page, dict):
                raise SyncError(f"unexpected bars response for {symbol}")
            bars.extend(page.get("bars") or [])
            token = page.get("next_page_token")
            if not token:
                return bars
            params["page_token"] = token


def client_from_env():
    """AlpacaClient from ALPACA_* env vars, or None when keys are missing."""
    if not ALPACA_KEY_ID or not ALPACA_SECRET_KEY:
        return None
    return AlpacaClient(ALPACA_KEY_ID, ALPACA_SECRET_KEY)


# ── Conversion ─────────────────────────────────────────────

def parse_bar_time(value):
    """RFC-3339 bar time ('2024-01-02T05:00:00Z') -> epoch seconds."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def bars_to_document(symbol, asset, bars):
    """Wrap Alpaca bars in a chart envelope the catalog can load."""
    timestamps = []
    closes = []
    for bar in bars:
        try:
            timestamps.append(parse_bar_time(bar["t"]))
            closes.append(bar["c"])
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise SyncError(f"malformed bar for {symbol}: {bar!r} ({e})") from e

    if not isinstance(asset, dict):
        asset = {}
    return {
        "chart": {
            "result": [{
                "meta": {
                    "symbol": symbol,
                    "longName": asset.get("name"),
                    "exchangeName": asset.get("exchange"),
                    "currency": "USD",
                    "dataSource": "alpaca",
                },
                "timestamp": timestamps,
                "indicators": {
                    "quote": [{"close": closes}],
                    "adjclose": [{"adjclose": list(closes)}],
                },
            }],
            "error": None,
        }
    }


def _write_json(path, data):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f)


# ── Sync ───────────────────────────────────────────────────

def sync_symbol(client, symbol, data_dir, start):
    """Fetch one symbol and write its price file. Returns the asset metadata."""
    asset = client.get_asset(symbol)
    bars = client.get_bars(symbol, start)
    if len(bars) < 2:
        raise SyncError(f"only {len(bars)} bars returned for {symbol}")

    document = bars_to_document(symbol, asset, bars)
    _write_json(os.path.join(data_dir, f"{FILE_PREFIX}{symbol}.json"), document)
    return asset


def sync_symbols(client, symbols, data_dir, delay_ms=SYNC_DELAY_MS, lookback_days=LOOKBACK_DAYS):
    """Sync each symbol in turn and return a run summary.

    A failing symbol is logged and counted; the run always finishes.
    """
    os.makedirs(data_dir, exist_ok=True)
    start = datetime.now(timezone.utc) - timedelta(days=lookback_days)
    symbols = [s.strip().upper() for s in symbols if s and s.strip()]

    fetched = 0
    failures = []
    assets = []
    for i, symbol in enumerate(symbols, 1):
        try:
            asset = sync_symbol(client, symbol, data_dir, start)
            assets.append(asset)
            fetched += 1
            logger.info(f"[{i}/{len(symbols)}] {symbol} synced")
        except (requests.RequestException, SyncError, OSError, ValueError) as e:
            failures.append({"symbol": symbol, "error": str(e)})
            logger.warning(f"[{i}/{len(symbols)}] {symbol} failed: {e}")

        if i < len(symbols) and delay_ms > 0:
            time.sleep(delay_ms / 1000)

    if assets:
        try:
            _write_json(os.path.join(data_dir, METADATA_FILE), {
                "synced_at": datetime.now(timezone.utc).isoformat(),
                "assets": assets,
            })
        except OSError as e:
            logger.warning(f"Could not write {METADATA_FILE}: {e}")

    return {
        "total": len(symbols),
        "fetched": fetched,
        "failed": len(failures),
        "delayMs": delay_ms,
        "failures": failures,
    }
