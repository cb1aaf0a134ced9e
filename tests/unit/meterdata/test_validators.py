"""Tests for validators module."""

import pytest


class TestNonBlankValue:
    """Tests for NonBlankValue validator."""

    @pytest.mark.parametrize("value", ["0", "abc", " 1 "])
    def test_accepts_non_blank(self, value: str) -> None:
        """Any non-whitespace content is accepted."""
        from meterdata.validators import NonBlankValue

        assert NonBlankValue().validate(value)

    @pytest.mark.parametrize("value", ["", "   ", "\t", None])
    def test_rejects_blank(self, value: str | None) -> None:
        """Empty, whitespace-only and missing values are rejected."""
        from meterdata.validators import NonBlankValue

        assert not NonBlankValue().validate(value)

    def test_kind_and_message(self) -> None:
        """Failures are counted as blank values."""
        from meterdata.models import ParseErrorKind
        from meterdata.validators import NonBlankValue

        validator = NonBlankValue()

        assert validator.kind == ParseErrorKind.BLANK_VALUE
        assert validator.error_message == "Entry cannot be blank."


class TestNumericValue:
    """Tests for NumericValue validator."""

    @pytest.mark.parametrize("value", ["0", "-50", "12.345", "1,234", "1e3", " 7 "])
    def test_accepts_numbers(self, value: str) -> None:
        """Integers, decimals, negatives and thousands separators are numeric."""
        from meterdata.validators import NumericValue

        assert NumericValue().validate(value)

    @pytest.mark.parametrize("value", ["abc", "", "1.2.3", "nan", "inf", "-Infinity", None])
    def test_rejects_non_numbers(self, value: str | None) -> None:
        """Text and non-finite values are rejected."""
        from meterdata.validators import NumericValue

        assert not NumericValue().validate(value)

    def test_kind_differs_from_blank(self) -> None:
        """Non-numeric failures are counted separately from blank ones."""
        from meterdata.validators import NonBlankValue, NumericValue

        assert NumericValue().kind != NonBlankValue().kind


class TestRangeCeiling:
    """Tests for RangeCeiling validator."""

    def test_no_previous_reading_is_valid(self) -> None:
        """Without a previous reading the check trivially passes."""
        from meterdata.models import SamplingInterval
        from meterdata.validators import RangeCeiling

        validator = RangeCeiling(None, SamplingInterval.HOURLY)

        assert validator.ceiling is None
        assert validator.validate("999999999")

    def test_hourly_ceiling(self) -> None:
        """Hourly sources use the hourly rate times elapsed hours."""
        from meterdata.models import SamplingInterval
        from meterdata.validators import RangeCeiling

        validator = RangeCeiling(2.0, SamplingInterval.HOURLY, max_hourly=1000, max_daily=100)

        assert validator.ceiling == 2000
        assert validator.validate("2000")
        assert not validator.validate("2001")

    def test_daily_ceiling(self) -> None:
        """Daily sources use the daily rate times elapsed hours."""
        from meterdata.models import SamplingInterval
        from meterdata.validators import RangeCeiling

        validator = RangeCeiling(24.0, SamplingInterval.DAILY, max_hourly=1000, max_daily=100)

        assert validator.ceiling == 2400
        assert validator.validate("2400")
        assert not validator.validate("2401")

    def test_unknown_interval_uses_hourly_rate(self) -> None:
        """Sources without a sampling class are held to the hourly rate."""
        from meterdata.validators import RangeCeiling

        validator = RangeCeiling(1.0, None, max_hourly=1000, max_daily=100)

        assert validator.ceiling == 1000

    def test_error_message_mentions_value_and_ceiling(self) -> None:
        """The error message names the offending value and the ceiling."""
        from meterdata.models import SamplingInterval
        from meterdata.validators import RangeCeiling

        validator = RangeCeiling(1.0, SamplingInterval.HOURLY, max_hourly=1000, max_daily=100)
        validator.validate("1500")

        assert "1500" in validator.error_message
        assert "1000.00" in validator.error_message

    def test_non_numeric_value_fails(self) -> None:
        """Non-numeric values cannot satisfy a ceiling."""
        from meterdata.models import SamplingInterval
        from meterdata.validators import RangeCeiling

        assert not RangeCeiling(1.0, SamplingInterval.HOURLY).validate("abc")

    def test_default_hourly_rate_above_daily_rate(self) -> None:
        """With default rates an hourly source may consume more per hour than a daily one."""
        from meterdata.models import SamplingInterval
        from meterdata.validators import RangeCeiling

        assert RangeCeiling(1.0, SamplingInterval.HOURLY).ceiling > RangeCeiling(1.0, SamplingInterval.DAILY).ceiling
