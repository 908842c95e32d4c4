"""
Shared fixtures — synthetic chart-envelope documents and data directories.
"""
import json

import pytest

DAY = 86400
START = 1704067200  # 2024-01-01T00:00:00Z


def chart_document(closes, symbol="AAA", start=START, step=DAY, adjcloses=None, meta=None, timestamps=None):
    """Build a chart.result[0] envelope around the given closes."""
    if timestamps is None:
        timestamps = [start + i * step for i in range(len(closes))]
    result_meta = {"symbol": symbol, "exchangeName": "NMS", "currency": "USD"}
    if meta is not None:
        result_meta = meta
    indicators = {"quote": [{"close": list(closes)}]}
    if adjcloses is not None:
        indicators["adjclose"] = [{"adjclose": list(adjcloses)}]
    return {
        "chart": {
            "result": [{"meta": result_meta, "timestamp": timestamps, "indicators": indicators}],
            "error": None,
        }
    }


@pytest.fixture
def make_document():
    return chart_document


@pytest.fixture
def data_dir(tmp_path):
    directory = tmp_path / "data"
    directory.mkdir()
    return directory


@pytest.fixture
def write_document(data_dir):
    def _write(filename, document):
        path = data_dir / filename
        if isinstance(document, str):
            path.write_text(document, encoding="utf-8")
        else:
            path.write_text(json.dumps(document), encoding="utf-8")
        return path
    return _write
