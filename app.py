"""
Stock Hawk Dashboard -- Flask Backend
Serves cached daily price series from DATA_DIR plus metrics computed on load.
"""
import os
import math
import logging
from flask import Flask, render_template, jsonify, request
from flask_cors import CORS

import alpaca_sync
from catalog import build_catalog, parse_limit

logger = logging.getLogger(__name__)

# ── Config ─────────────────────────────────────────────────

DATA_DIR = os.environ.get("DATA_DIR", "data")
SERIES_LIMIT = int(os.environ.get("SERIES_LIMIT", "240"))


def json_safe(value):
    """Replace NaN/inf with None so the browser gets valid JSON (null)."""
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value


def respond(data, status=200):
    return jsonify(json_safe(data)), status


def not_found(message):
    return respond({"message": message}, 404)


# ── App factory ────────────────────────────────────────────

def create_app(catalog=None, data_dir=None, client_factory=alpaca_sync.client_from_env):
    """Build the Flask app around an already-loaded (or freshly built) catalog.

    The catalog is read-only for the life of the process; files written by
    the Alpaca sync are only served after a restart.
    """
    data_dir = data_dir or DATA_DIR
    if catalog is None:
        catalog = build_catalog(data_dir)

    app = Flask(__name__)
    CORS(app)

    def series_limit():
        return parse_limit(request.args.get("limit"), default=SERIES_LIMIT)

    # ── Routes ─────────────────────────────────────────────

    @app.route("/")
    def index():
        return render_template("index.html")

    @app.route("/api/health")
    def api_health():
        return respond({
            "datasets": len(catalog),
            "lastUpdated": catalog.last_updated(),
            "symbols": catalog.symbols(),
        })

    @app.route("/api/assets")
    def api_assets():
        return respond(catalog.summaries())

    @app.route("/api/assets/<symbol>")
    def api_asset_detail(symbol):
        asset = catalog.detail(symbol, series_limit())
        if asset is None:
            return not_found("Symbol not found")
        return respond(asset)

    @app.route("/api/assets/<symbol>/series")
    def api_asset_series(symbol):
        series = catalog.series(symbol, series_limit())
        if series is None:
            return not_found("Symbol not found")
        return respond(series)

    @app.route("/api/insights")
    def api_insights():
        return respond(catalog.insights())

    @app.route("/api/alpaca/sync", methods=["POST"])
    def api_alpaca_sync():
        client = client_factory()
        if client is None:
            return respond({"message": "Alpaca credentials not configured (ALPACA_KEY_ID / ALPACA_SECRET_KEY)"}, 503)

        symbols = catalog.symbols()
        if not symbols:
            return respond({"message": "No symbols loaded to sync"}, 400)

        summary = alpaca_sync.sync_symbols(client, symbols, data_dir)
        logger.info(f"Alpaca sync: fetched {summary['fetched']}/{summary['total']}, failed {summary['failed']}")
        return respond(summary)

    @app.errorhandler(404)
    def route_not_found(exc):
        return not_found("Route not found")

    return app


# ── Entry point ────────────────────────────────────────────

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "false").lower() == "true"
    app = create_app()
    print(f"Stock Hawk listening on http://localhost:{port}")
    app.run(host="0.0.0.0", port=port, debug=debug)
