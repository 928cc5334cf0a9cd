# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Tests for shift-length parsing and formatting."""

from datetime import timedelta

import pytest

from rotation_service.core.errors import InvalidInterval, ValidationError
from rotation_service.services.interval import (
    MS_PER_DAY,
    MS_PER_HOUR,
    MS_PER_WEEK,
    format_interval,
    normalize_interval,
    parse_interval,
)


class TestParseText:
    def test_single_unit(self):
        assert parse_interval("1 day") == MS_PER_DAY

    def test_plural_and_abbreviations(self):
        assert parse_interval("2 weeks") == 2 * MS_PER_WEEK
        assert parse_interval("2w") == 2 * MS_PER_WEEK
        assert parse_interval("36 hrs") == 36 * MS_PER_HOUR
        assert parse_interval("90 min") == 90 * 60 * 1000
        assert parse_interval("1500 ms") == 1500

    def test_tokens_are_summed(self):
        assert parse_interval("1 day 6 hours") == MS_PER_DAY + 6 * MS_PER_HOUR
        assert parse_interval("1 day, 6 hours") == MS_PER_DAY + 6 * MS_PER_HOUR

    def test_clock_token(self):
        assert parse_interval("1 day 02:30:00") == MS_PER_DAY + 2 * MS_PER_HOUR + 30 * 60 * 1000
        assert parse_interval("00:00:01.5") == 1500

    def test_case_insensitive(self):
        assert parse_interval("1 WEEK") == MS_PER_WEEK

    def test_fractional_value(self):
        assert parse_interval("1.5 hours") == 90 * 60 * 1000

    @pytest.mark.parametrize("raw", ["3 fortnights", "1 day 2 eons"])
    def test_unknown_unit(self, raw):
        with pytest.raises(InvalidInterval):
            parse_interval(raw)

    @pytest.mark.parametrize("raw", ["", "   ", "day", "one day", "1 day -"])
    def test_malformed(self, raw):
        with pytest.raises(InvalidInterval):
            parse_interval(raw)

    def test_zero_is_rejected(self):
        with pytest.raises(InvalidInterval):
            parse_interval("0 days")

    def test_invalid_interval_is_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_interval("soon")
        assert exc_info.value.status_code == 400


class TestParseStructured:
    def test_mapping(self):
        assert parse_interval({"days": 1}) == MS_PER_DAY
        assert parse_interval({"week": 2, "hours": 3}) == 2 * MS_PER_WEEK + 3 * MS_PER_HOUR

    def test_mapping_ignores_null_fields(self):
        assert parse_interval({"days": 1, "hours": None}) == MS_PER_DAY

    def test_empty_mapping(self):
        with pytest.raises(InvalidInterval):
            parse_interval({})

    def test_mapping_unknown_unit(self):
        with pytest.raises(InvalidInterval):
            parse_interval({"fortnights": 1})

    def test_mapping_non_numeric(self):
        with pytest.raises(InvalidInterval):
            parse_interval({"days": "lots"})

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-inf", float("inf"), float("nan")])
    def test_mapping_non_finite(self, value):
        with pytest.raises(InvalidInterval):
            parse_interval({"days": value})

    def test_timedelta(self):
        assert parse_interval(timedelta(days=7)) == MS_PER_WEEK

    def test_negative_timedelta(self):
        with pytest.raises(InvalidInterval):
            parse_interval(timedelta(hours=-1))

    def test_unsupported_type(self):
        with pytest.raises(InvalidInterval):
            parse_interval(86400000)

    def test_equivalent_forms_agree(self):
        forms = ["1 week", "7 days", "168 hours", {"days": 7}, {"weeks": 1}, timedelta(weeks=1)]
        assert {parse_interval(f) for f in forms} == {MS_PER_WEEK}


class TestFormat:
    def test_largest_units_first(self):
        assert format_interval(MS_PER_DAY + 6 * MS_PER_HOUR) == "1 day 6 hours"

    def test_plural(self):
        assert format_interval(2 * MS_PER_WEEK) == "2 weeks"

    def test_non_positive(self):
        with pytest.raises(InvalidInterval):
            format_interval(0)

    def test_normalize_returns_canonical_text(self):
        assert normalize_interval("168 hours") == ("1 week", MS_PER_WEEK)
        assert normalize_interval({"minutes": 90}) == ("1 hour 30 minutes", 90 * 60 * 1000)
