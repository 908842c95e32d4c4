"""Tests for chart-envelope extraction and series normalization."""
import json
import math

import pytest

from price_series import (
    extract_payload,
    is_finite_number,
    load_document,
    normalize_asset,
    symbol_from_filename,
    to_series,
)


def payload(timestamps, closes, adjusted=None, meta=None):
    return {
        "meta": meta or {},
        "timestamps": timestamps,
        "closes": closes,
        "adjustedCloses": adjusted or [],
    }


def test_is_finite_number():
    assert is_finite_number(3) and is_finite_number(2.5)
    assert not is_finite_number(True)
    assert not is_finite_number(math.nan)
    assert not is_finite_number("7")
    assert not is_finite_number(10 ** 400)


class TestToSeries:
    def test_drops_non_finite_closes(self):
        series = to_series(payload([1, 2, 3], [10, math.nan, 12]))
        assert [p["timestamp"] for p in series] == [1000, 3000]
        assert [p["close"] for p in series] == [10, 12]

    def test_drops_missing_and_infinite_closes(self):
        series = to_series(payload([1, 2, 3, 4], [None, 5.0, math.inf, "7"]))
        assert [p["timestamp"] for p in series] == [2000]

    def test_oversized_integers_are_dropped(self):
        series = to_series(payload([1, 10 ** 400, 3], [10, 11, 10 ** 400]))
        assert [p["timestamp"] for p in series] == [1000]

    def test_closes_shorter_than_timestamps(self):
        series = to_series(payload([1, 2, 3], [4.0, 5.0]))
        assert len(series) == 2

    def test_adjusted_close_falls_back_to_close(self):
        series = to_series(payload([1, 2, 3], [10, 11, 12], adjusted=[9.5, None, math.nan]))
        assert [p["adjustedClose"] for p in series] == [9.5, 11, 12]

    def test_sorted_ascending(self):
        series = to_series(payload([300, 100, 200], [3, 1, 2]))
        assert [p["close"] for p in series] == [1, 2, 3]

    def test_duplicate_timestamps_keep_source_order(self):
        series = to_series(payload([5, 5, 1], [50, 51, 10]))
        assert [p["close"] for p in series] == [10, 50, 51]

    def test_date_is_utc_calendar_day(self):
        # 2024-01-01T23:30:00Z
        series = to_series(payload([1704151800], [1.0]))
        assert series[0]["date"] == "2024-01-01"
        assert series[0]["timestamp"] == 1704151800000

    def test_non_numeric_timestamp_skipped(self):
        series = to_series(payload(["x", 2, None], [1, 2, 3]))
        assert [p["timestamp"] for p in series] == [2000]


class TestNormalizeAsset:
    def test_rejects_fewer_than_two_points(self):
        assert normalize_asset(payload([1, 2], [10, None]), "AAA") is None
        assert normalize_asset(payload([], []), "AAA") is None

    def test_symbol_from_meta_trimmed_and_uppercased(self):
        asset = normalize_asset(payload([1, 2], [1, 2], meta={"symbol": "  msft "}), "other")
        assert asset["symbol"] == "MSFT"

    def test_symbol_falls_back_to_filename(self):
        asset = normalize_asset(payload([1, 2], [1, 2]), "spy ")
        assert asset["symbol"] == "SPY"
        assert asset["name"] == "SPY"

    def test_name_preference(self):
        meta = {"symbol": "X", "longName": "Long Name Inc.", "shortName": "Short"}
        assert normalize_asset(payload([1, 2], [1, 2], meta=meta), "X")["name"] == "Long Name Inc."
        meta = {"symbol": "X", "shortName": " Short "}
        assert normalize_asset(payload([1, 2], [1, 2], meta=meta), "X")["name"] == "Short"

    def test_defaults_and_derived_fields(self):
        asset = normalize_asset(payload([86400, 2 * 86400], [1, 2]), "abc")
        assert asset["exchange"] == "Unknown exchange"
        assert asset["currency"] == "USD"
        assert asset["firstTradeDate"] is None
        assert asset["lastUpdated"] == "1970-01-03"
        assert asset["metrics"]["sampleCount"] == 2

    def test_first_trade_date(self):
        meta = {"symbol": "X", "firstTradeDate": 345479400, "exchangeName": "NMS", "currency": "EUR"}
        asset = normalize_asset(payload([1, 2], [1, 2], meta=meta), "X")
        assert asset["firstTradeDate"] == "1980-12-12"
        assert asset["exchange"] == "NMS"
        assert asset["currency"] == "EUR"

    def test_zero_first_trade_date_is_null(self):
        asset = normalize_asset(payload([1, 2], [1, 2], meta={"firstTradeDate": 0}), "X")
        assert asset["firstTradeDate"] is None

    def test_malformed_payload_is_rejected(self):
        assert normalize_asset(None, "X") is None
        assert normalize_asset({"timestamps": "abc", "closes": 5}, "X") is None


class TestExtractPayload:
    def test_reads_envelope(self, make_document):
        doc = make_document([1, 2, 3], adjcloses=[0.9, 1.9, 2.9])
        flat = extract_payload(doc)
        assert flat["closes"] == [1, 2, 3]
        assert flat["adjustedCloses"] == [0.9, 1.9, 2.9]
        assert flat["meta"]["symbol"] == "AAA"
        assert len(flat["timestamps"]) == 3

    def test_missing_adjclose(self, make_document):
        assert extract_payload(make_document([1, 2]))["adjustedCloses"] == []

    @pytest.mark.parametrize("document", [
        None,
        [],
        {},
        {"chart": None},
        {"chart": {"result": []}},
        {"chart": {"result": None}},
        {"chart": {"result": ["oops"]}},
    ])
    def test_missing_envelope(self, document):
        assert extract_payload(document) is None

    def test_wrong_inner_types_give_empty_arrays(self):
        doc = {"chart": {"result": [{"meta": "x", "timestamp": 7, "indicators": {"quote": "bad"}}]}}
        flat = extract_payload(doc)
        assert flat == {"meta": {}, "timestamps": [], "closes": [], "adjustedCloses": []}


class TestLoadDocument:
    def test_loads_file(self, write_document, make_document):
        path = write_document("aapl.json", make_document([1, 2, 3], meta={}))
        asset = load_document(str(path))
        assert asset["symbol"] == "AAPL"
        assert len(asset["series"]) == 3

    def test_invalid_json_raises(self, write_document):
        path = write_document("bad.json", "{not json")
        with pytest.raises(json.JSONDecodeError):
            load_document(str(path))

    def test_no_envelope_returns_none(self, write_document):
        path = write_document("empty.json", {"hello": "world"})
        assert load_document(str(path)) is None


def test_symbol_from_filename():
    assert symbol_from_filename("/tmp/data/msft.json") == "msft"
