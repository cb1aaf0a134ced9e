"""
Field-level validators used by the row parsers and the importer's post pass.

Each validator answers ``validate(value) -> bool`` for one raw string field
and carries a human-readable ``error_message``. ``kind`` is the run-statistics
bucket a failure is counted under.
"""

import math

from meterdata.config import MAX_DAILY_WH_PER_HOUR, MAX_HOURLY_WH_PER_HOUR
from meterdata.models import ParseErrorKind, SamplingInterval


def to_number(value: str) -> float:
    """Parse a numeric field, ignoring thousands separators."""
    return float(value.replace(",", ""))


class NonBlankValue:
    kind = ParseErrorKind.BLANK_VALUE
    error_message = "Entry cannot be blank."

    def validate(self, value: str | None) -> bool:
        if value is None:
            return False
        return value.strip() != ""


class NumericValue:
    kind = ParseErrorKind.NON_NUMERIC_VALUE
    error_message = "Entry is not a valid number."

    def validate(self, value: str | None) -> bool:
        if value is None:
            return False
        try:
            number = to_number(value)
        except ValueError:
            return False
        return math.isfinite(number)


class RangeCeiling:
    """
    Value must not exceed the maximum rate for the source times the hours
    elapsed since its previous reading.

    Hourly sources use the higher rate, daily sources the lower one. With
    no previous reading (``elapsed_hours`` is None) the check passes.
    """

    kind = "exceeds_ceiling"

    def __init__(
        self,
        elapsed_hours: float | None,
        sampling_interval: SamplingInterval | None,
        max_hourly: int = MAX_HOURLY_WH_PER_HOUR,
        max_daily: int = MAX_DAILY_WH_PER_HOUR,
    ) -> None:
        self.elapsed_hours = elapsed_hours
        self.sampling_interval = sampling_interval
        self.max_hourly = max_hourly
        self.max_daily = max_daily
        self.last_value: str | None = None

    @property
    def ceiling(self) -> float | None:
        if self.elapsed_hours is None:
            return None
        rate = self.max_daily if self.sampling_interval == SamplingInterval.DAILY else self.max_hourly
        return rate * self.elapsed_hours

    @property
    def error_message(self) -> str:
        ceiling = self.ceiling or 0.0
        return f"The value ({self.last_value} Wh) cannot be greater than {ceiling:.2f} Wh."

    def validate(self, value: str) -> bool:
        self.last_value = value
        ceiling = self.ceiling
        if ceiling is None:
            return True
        try:
            return to_number(value) <= ceiling
        except ValueError:
            return False


DEFAULT_VALIDATORS = (NonBlankValue(), NumericValue())
