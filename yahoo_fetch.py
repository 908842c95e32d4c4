"""
yahoo_fetch.py -- Populate DATA_DIR with daily price history from Yahoo Finance.

Usage:
    python yahoo_fetch.py tickers.csv [-y]

Writes one <SYMBOL>.json chart envelope per ticker (the format the catalog
loads). Tickers are fetched one at a time with FETCH_DELAY seconds between
requests.
"""
import os
import csv
import json
import math
import time
import numbers
import logging
from datetime import datetime

import yfinance as yf

logger = logging.getLogger(__name__)

DATA_DIR = os.environ.get("DATA_DIR", "data")
FETCH_DELAY = float(os.environ.get("FETCH_DELAY", "1.0"))
FETCH_PERIOD = os.environ.get("FETCH_PERIOD", "5y")

META_FIELDS = ("longName", "shortName", "exchangeName", "currency", "firstTradeDate")


def _clean_price(value):
    if value is None:
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def _meta_value(value):
    """JSON-safe form of a history_metadata value, or None to drop it.

    yfinance hands back firstTradeDate as a tz-aware pd.Timestamp; the chart
    envelope stores epoch seconds.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, numbers.Real):
        value = float(value)
        return value if math.isfinite(value) else None
    if hasattr(value, "timestamp"):
        try:
            return int(value.timestamp())
        except (TypeError, ValueError, OverflowError, OSError):
            return None
    return None


def history_to_document(symbol, hist, metadata=None):
    """Convert a yfinance history DataFrame into a chart envelope."""
    metadata = metadata or {}
    timestamps = [int(ts.timestamp()) for ts in hist.index]
    closes = [_clean_price(v) for v in hist["Close"]]
    if "Adj Close" in hist.columns:
        adjusted = [_clean_price(v) for v in hist["Adj Close"]]
    else:
        adjusted = list(closes)

    meta = {"symbol": _meta_value(metadata.get("symbol")) or symbol}
    for field in META_FIELDS:
        value = _meta_value(metadata.get(field))
        if value is not None:
            meta[field] = value

    return {
        "chart": {
            "result": [{
                "meta": meta,
                "timestamp": timestamps,
                "indicators": {
                    "quote": [{"close": closes}],
                    "adjclose": [{"adjclose": adjusted}],
                },
            }],
            "error": None,
        }
    }


class YahooFetcher:
    def __init__(self, data_dir=DATA_DIR, period=FETCH_PERIOD):
        self.data_dir = data_dir
        self.period = period

    def fetch_ticker(self, symbol):
        """Download one ticker and write its file. Returns the path, or None."""
        try:
            tk = yf.Ticker(symbol)
            hist = tk.history(period=self.period, interval="1d", auto_adjust=False)
            if hist is None or hist.empty:
                logger.warning(f"{symbol}: no price history returned")
                return None
            document = history_to_document(symbol, hist, getattr(tk, "history_metadata", None))
            text = json.dumps(document)
        except Exception as e:
            logger.warning(f"{symbol}: download failed: {e}")
            return None

        # write-then-rename so a failed write never leaves a partial file
        path = os.path.join(self.data_dir, f"{symbol}.json")
        tmp_path = path + ".tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.warning(f"{symbol}: could not write {path}: {e}")
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            return None
        return path

    def fetch_multiple(self, symbols, delay=FETCH_DELAY):
        os.makedirs(self.data_dir, exist_ok=True)
        written = []
        failed = []
        for i, symbol in enumerate(symbols, 1):
            print(f"[{i}/{len(symbols)}] {symbol} ", end=" ")
            if self.fetch_ticker(symbol):
                written.append(symbol)
                print("✓")
            else:
                failed.append(symbol)
                print("✗")

            if i < len(symbols):
                time.sleep(delay)

        return written, failed


def load_csv(csv_path="tickers.csv"):
    """Ticker column may be 'Exchange:Ticker', 'Ticker' or 'ticker'."""
    tickers = []
    try:
        with open(csv_path, "r", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            for row in reader:
                raw = (row.get("Exchange:Ticker") or row.get("Ticker") or row.get("ticker") or "").strip()
                ticker = raw.split(":")[-1].strip().upper()
                if ticker:
                    tickers.append(ticker)
        return tickers
    except OSError as e:
        print(f"Error: {e}")
        return []


def fetch_all(csv_path="tickers.csv", data_dir=DATA_DIR, delay=FETCH_DELAY, confirm=True):
    tickers = load_csv(csv_path)

    if not tickers:
        print("No tickers")
        return None

    est_minutes = len(tickers) * delay / 60
    print(f"{len(tickers)} tickers, ~{est_minutes:.1f} min")

    if confirm:
        resp = input("Continue? (y/n): ").lower()
        if resp != "y":
            print("Cancelled")
            return None

    start = datetime.now()
    fetcher = YahooFetcher(data_dir=data_dir)
    written, failed = fetcher.fetch_multiple(tickers, delay=delay)
    duration = datetime.now() - start

    print(f"\n{len(written)}/{len(tickers)} tickers written to {data_dir} ({len(failed)} failed)")
    print(f"Duration: {duration}")
    return {"total": len(tickers), "fetched": len(written), "failed": len(failed)}


if __name__ == "__main__":
    import sys
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = [a for a in sys.argv[1:] if a != "-y"]
    csv_path = args[0] if args else "tickers.csv"
    fetch_all(csv_path, confirm="-y" not in sys.argv[1:])
