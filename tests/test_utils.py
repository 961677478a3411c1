from datetime import datetime, timedelta, timezone

from app.shared.utils.dates import isoformat_utc, parse_partner_datetime
from app.shared.utils.payloads import has_non_finite, merge_payload


class TestMergePayload:
    def test_adds_and_overwrites_keys(self):
        assert merge_payload({"a": 1, "b": 2}, {"b": 3, "c": 4}) == {"a": 1, "b": 3, "c": 4}

    def test_nested_dicts_are_merged(self):
        base = {"customs": {"hs": "6109", "value": 10}, "keep": True}
        merged = merge_payload(base, {"customs": {"value": 12, "currency": "USD"}})
        assert merged == {"customs": {"hs": "6109", "value": 12, "currency": "USD"}, "keep": True}

    def test_does_not_mutate_inputs(self):
        base = {"customs": {"hs": "6109"}}
        patch = {"customs": {"value": 1}}
        merge_payload(base, patch)
        assert base == {"customs": {"hs": "6109"}}
        assert patch == {"customs": {"value": 1}}

    def test_handles_empty_values(self):
        assert merge_payload(None, {"a": 1}) == {"a": 1}
        assert merge_payload({"a": 1}, None) == {"a": 1}


def test_non_finite_values_are_found_at_any_depth():
    assert has_non_finite({"a": {"b": [1, float("inf")]}})
    assert has_non_finite([float("nan")])
    assert not has_non_finite({"a": 1.5, "b": ["x", None, {"c": 2}]})
    assert not has_non_finite(None)


class TestPartnerDates:
    def test_date_only_is_midnight(self):
        assert parse_partner_datetime("2025-01-19") == datetime(2025, 1, 19, 0, 0)

    def test_offset_converted_to_naive_utc(self):
        assert parse_partner_datetime("2025-01-19T10:00:00-05:00") == datetime(2025, 1, 19, 15, 0)

    def test_aware_datetime(self):
        value = datetime(2025, 1, 19, 10, 0, tzinfo=timezone(timedelta(hours=2)))
        assert parse_partner_datetime(value) == datetime(2025, 1, 19, 8, 0)

    def test_garbage_returns_none(self):
        assert parse_partner_datetime("not a date") is None
        assert parse_partner_datetime("") is None
        assert parse_partner_datetime(42) is None

    def test_isoformat_utc(self):
        assert isoformat_utc(datetime(2025, 1, 19, 8, 0)) == "2025-01-19T08:00:00Z"
        assert isoformat_utc(None) is None
