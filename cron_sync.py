#!/usr/bin/env python3
"""
cron_sync.py — One-shot Alpaca sync, suitable for a cron job.

Symbols come from the command line, else ALPACA_SYMBOLS (comma separated),
else every symbol currently cached in DATA_DIR.

Cron setup:
  - Schedule: 30 22 * * 1-5   (weekdays after the US close)
  - Command:  python cron_sync.py

The running web server keeps serving its startup catalog; restart it to
pick up the new files.
"""
import os
import sys
import logging
from datetime import datetime

import alpaca_sync
from catalog import build_catalog

DATA_DIR = os.environ.get("DATA_DIR", "data")
ALPACA_SYMBOLS = os.environ.get("ALPACA_SYMBOLS", "")


def get_symbols(argv=None, env_symbols=ALPACA_SYMBOLS, data_dir=DATA_DIR):
    """Symbols to sync, in priority order: argv, env, cached catalog."""
    if argv:
        return [s.strip().upper() for s in argv if s.strip()]
    if env_symbols.strip():
        return [s.strip().upper() for s in env_symbols.split(",") if s.strip()]
    return sorted(build_catalog(data_dir).symbols())


def main(argv=None):
    print(f"{'='*60}")
    print(f"  Alpaca Sync — {datetime.now().isoformat()}")
    print(f"  Data dir: {DATA_DIR}")
    print(f"{'='*60}")

    client = alpaca_sync.client_from_env()
    if client is None:
        print("ERROR: ALPACA_KEY_ID / ALPACA_SECRET_KEY not set")
        return 1

    symbols = get_symbols(argv)
    if not symbols:
        print("ERROR: No symbols to sync!")
        return 1

    delay = alpaca_sync.SYNC_DELAY_MS
    print(f"Found {len(symbols)} symbols to sync")
    print(f"Estimated time: {len(symbols) * delay / 60000:.1f} minutes (delay={delay}ms)")

    start = datetime.now()
    summary = alpaca_sync.sync_symbols(client, symbols, DATA_DIR, delay_ms=delay)
    duration = datetime.now() - start

    print(f"\nFetched {summary['fetched']}/{summary['total']} symbols in {duration}")
    for failure in summary["failures"]:
        print(f"  ✗ {failure['symbol']}: {failure['error']}")

    print(f"\n{'='*60}")
    print(f"  COMPLETE — {datetime.now().isoformat()}")
    print(f"{'='*60}")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    sys.exit(main(sys.argv[1:]))
