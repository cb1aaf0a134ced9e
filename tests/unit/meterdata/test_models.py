"""Tests for models module."""

from datetime import datetime


class TestReading:
    """Tests for Reading dataclass."""

    def test_with_derived_returns_copy(self) -> None:
        """Derived properties are attached to a new reading."""
        from meterdata.models import Reading

        reading = Reading("s1", "m1", datetime(2011, 5, 2), 100)

        tagged = reading.with_derived(samplingInterval="daily")

        assert reading.derived == {}
        assert tagged.derived == {"samplingInterval": "daily"}
        assert tagged.cumulative_energy == 100

    def test_to_entry_keeps_monotonic_flag(self) -> None:
        """A reading tagged as non-monotonic projects to a flagged entry."""
        from meterdata.models import Reading

        reading = Reading("s1", "m1", datetime(2011, 5, 2), 100).with_derived(isMonotonicallyIncreasing="false")

        entry = reading.to_entry()

        assert entry.reading == "100"
        assert entry.value == 100
        assert entry.key == ("s1", datetime(2011, 5, 2))
        assert not entry.is_monotonically_increasing


class TestSource:
    """Tests for Source dataclass."""

    def test_with_properties_merges(self) -> None:
        """Merging keeps existing properties and overrides matching keys."""
        from meterdata.models import Source

        source = Source("s1", {"meterType": "12", "grade": "C"})

        merged = source.with_properties(grade="A_DAILY")

        assert merged.properties == {"meterType": "12", "grade": "A_DAILY"}
        assert source.properties["grade"] == "C"

    def test_sampling_interval(self) -> None:
        """The samplingInterval property is exposed as an enum."""
        from meterdata.models import SamplingInterval, Source

        assert Source("s1").sampling_interval is None
        assert Source("s1", {"samplingInterval": "n/a"}).sampling_interval == SamplingInterval.NOT_AVAILABLE


class TestRunStats:
    """Tests for RunStats counters."""

    def test_parse_errors_counted_per_kind(self) -> None:
        """Each parse error bumps its kind and the invalid total."""
        from meterdata.models import ParseErrorKind, RunStats

        stats = RunStats()
        stats.record_parse_error(ParseErrorKind.NEGATIVE_VALUE)
        stats.record_parse_error(ParseErrorKind.BLANK_VALUE)

        assert stats.parse_errors[ParseErrorKind.NEGATIVE_VALUE] == 1
        assert stats.parse_errors[ParseErrorKind.NON_NUMERIC_VALUE] == 0
        assert stats.invalid_entries == 2
        assert stats.failed_validations == 2

    def test_timestamps_and_percentage(self) -> None:
        """First/last timestamps track the extremes; percentage handles zero entries."""
        from meterdata.models import RunStats

        stats = RunStats()
        assert stats.invalid_percentage == 0.0

        stats.record_timestamp(datetime(2011, 5, 3))
        stats.record_timestamp(datetime(2011, 5, 1))
        stats.total_entries = 4
        stats.invalid_entries = 1

        assert stats.first_timestamp == datetime(2011, 5, 1)
        assert stats.last_timestamp == datetime(2011, 5, 3)
        assert stats.invalid_percentage == 25.0
