"""
Data model shared by the parsers, validators, classifiers and importer.

Readings are immutable once parsed. Derived properties (monotonic flag,
sampling interval) are attached by building a new Reading with
``with_derived``, which is what gets written back to the store.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from meterdata.common import IS_MONOTONICALLY_INCREASING, SAMPLING_INTERVAL


class SamplingInterval(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    NOT_AVAILABLE = "n/a"


class Grade(str, Enum):
    A_DAILY = "A_DAILY"
    A_HOURLY = "A_HOURLY"
    B = "B"
    C = "C"


class ParseErrorKind(str, Enum):
    BAD_SHAPE = "bad_shape"
    NO_READING = "no_reading"
    BLANK_VALUE = "blank_value"
    NON_NUMERIC_VALUE = "non_numeric_value"
    BAD_TIMESTAMP = "bad_timestamp"
    NEGATIVE_VALUE = "negative_value"


class RowParseError(Exception):
    """A row was rejected by a parser."""

    def __init__(self, kind: ParseErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


@dataclass(frozen=True)
class Reading:
    source_name: str
    mtu_id: str
    timestamp: datetime
    cumulative_energy: int
    raw_fields: dict[str, str] = field(default_factory=dict)
    derived: dict[str, str] = field(default_factory=dict)

    def with_derived(self, **properties: str) -> "Reading":
        """Return a copy of this reading with extra derived properties."""
        return replace(self, derived={**self.derived, **properties})

    def to_entry(self) -> "Entry":
        entry = Entry(
            source_name=self.source_name,
            mtu_id=self.mtu_id,
            timestamp=self.timestamp,
            reading=str(self.cumulative_energy),
        )
        if self.derived.get(IS_MONOTONICALLY_INCREASING) == "false":
            entry.is_monotonically_increasing = False
        return entry


@dataclass
class Entry:
    source_name: str
    mtu_id: str
    timestamp: datetime
    reading: str
    is_monotonically_increasing: bool = True

    @property
    def value(self) -> int:
        return int(self.reading)

    @property
    def key(self) -> tuple[str, datetime]:
        return (self.source_name, self.timestamp)

    def __str__(self) -> str:
        return f"Source: {self.source_name} -- MTU ID: {self.mtu_id} -- Timestamp: {self.timestamp.isoformat()}"


@dataclass
class Source:
    name: str
    properties: dict[str, str] = field(default_factory=dict)

    def with_properties(self, **properties: str) -> "Source":
        """Merge properties into a full copy of this source."""
        return Source(name=self.name, properties={**self.properties, **properties})

    @property
    def sampling_interval(self) -> SamplingInterval | None:
        value = self.properties.get(SAMPLING_INTERVAL)
        if value is None:
            return None
        return SamplingInterval(value)


@dataclass
class Violation:
    """A reading lower than the nearest preceding reading in its stream."""

    source_name: str
    mtu_id: str
    previous_timestamp: datetime
    previous_reading: int
    timestamp: datetime
    reading: int

    def describe(self) -> str:
        return (
            f"The reading at {self.previous_timestamp.isoformat()} ({self.previous_reading}) is greater than "
            f"the reading at {self.timestamp.isoformat()} ({self.reading}) for {self.source_name}."
        )


@dataclass
class RunStats:
    """Counters for a single import run."""

    file_name: str = ""
    total_entries: int = 0
    entries_processed: int = 0
    invalid_entries: int = 0
    parse_errors: dict[ParseErrorKind, int] = field(default_factory=lambda: dict.fromkeys(ParseErrorKind, 0))
    non_monotonic: int = 0
    exceeds_ceiling: int = 0
    new_sources: int = 0
    existing_sources: int = 0
    new_data: int = 0
    existing_data: int = 0
    store_failures: int = 0
    classification_failures: int = 0
    hourly_entries: int = 0
    daily_entries: int = 0
    first_timestamp: datetime | None = None
    last_timestamp: datetime | None = None
    import_seconds: float = 0.0
    validate_seconds: float = 0.0

    def record_parse_error(self, kind: ParseErrorKind) -> None:
        self.parse_errors[kind] += 1
        self.invalid_entries += 1

    def record_timestamp(self, timestamp: datetime) -> None:
        if self.first_timestamp is None or timestamp < self.first_timestamp:
            self.first_timestamp = timestamp
        if self.last_timestamp is None or timestamp > self.last_timestamp:
            self.last_timestamp = timestamp

    @property
    def total_sources(self) -> int:
        return self.new_sources + self.existing_sources

    @property
    def total_imported(self) -> int:
        return self.new_data + self.existing_data

    @property
    def failed_validations(self) -> int:
        return (
            self.parse_errors[ParseErrorKind.BLANK_VALUE]
            + self.parse_errors[ParseErrorKind.NON_NUMERIC_VALUE]
            + self.parse_errors[ParseErrorKind.NO_READING]
            + self.parse_errors[ParseErrorKind.NEGATIVE_VALUE]
            + self.non_monotonic
        )

    @property
    def invalid_percentage(self) -> float:
        if self.total_entries == 0:
            return 0.0
        return self.invalid_entries / self.total_entries * 100.0
