"""
Monotonicity checks for cumulative readings.

A reading is compared with the nearest preceding reading of the same
``(source, mtu)`` stream that lies within the lookback window. Only a strict
decrease is a violation; a gap longer than the lookback starts a new series.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import timedelta

from aws_lambda_powertools import Logger

from meterdata.config import LOOKBACK_DAYS
from meterdata.models import Entry, Reading, Violation
from meterdata.store import ReadingStore

logger = Logger(service="monotonicity", child=True)

DEFAULT_LOOKBACK = timedelta(days=LOOKBACK_DAYS)


def compare_entries(previous: Entry, entry: Entry) -> Violation | None:
    if entry.value >= previous.value:
        return None
    entry.is_monotonically_increasing = False
    return Violation(
        source_name=entry.source_name,
        mtu_id=entry.mtu_id,
        previous_timestamp=previous.timestamp,
        previous_reading=previous.value,
        timestamp=entry.timestamp,
        reading=entry.value,
    )


def find_violations(entries: Iterable[Entry], lookback: timedelta = DEFAULT_LOOKBACK) -> list[Violation]:
    """
    Flag entries that are lower than their nearest preceding entry.

    Args:
        entries: Entries of one (source, mtu) stream, in any order
        lookback: How far back a preceding entry may be

    Returns:
        Violations in timestamp order. The offending entries have
        ``is_monotonically_increasing`` set to False.
    """
    ordered = sorted(entries, key=lambda e: e.timestamp)
    violations = []
    previous: Entry | None = None

    for entry in ordered:
        if previous is not None and previous.timestamp < entry.timestamp:
            if entry.timestamp - previous.timestamp <= lookback:
                violation = compare_entries(previous, entry)
                if violation is not None:
                    violations.append(violation)
        if previous is None or previous.timestamp < entry.timestamp:
            previous = entry

    return violations


def preceding_reading(
    store: ReadingStore,
    entry: Entry,
    lookback: timedelta = DEFAULT_LOOKBACK,
    deadline: float | None = None,
) -> Reading | None:
    """Nearest stored reading of the same MTU stream before the entry, within the lookback."""
    history = store.get_readings(entry.source_name, entry.timestamp - lookback, entry.timestamp, deadline=deadline)
    preceding = [r for r in history if r.mtu_id == entry.mtu_id and r.timestamp < entry.timestamp]
    return preceding[-1] if preceding else None


def check_entry(
    store: ReadingStore,
    entry: Entry,
    lookback: timedelta = DEFAULT_LOOKBACK,
    deadline: float | None = None,
) -> Violation | None:
    """Check one entry against the stored history of its stream."""
    previous = preceding_reading(store, entry, lookback, deadline=deadline)
    if previous is None:
        return None

    violation = compare_entries(previous.to_entry(), entry)
    if violation is not None:
        logger.debug("Non-monotonic reading", extra={"source": entry.source_name, "detail": violation.describe()})
    return violation


def find_stream_violations(readings: Iterable[Reading], lookback: timedelta = DEFAULT_LOOKBACK) -> list[Violation]:
    """Split readings into MTU streams and check each one."""
    streams: dict[str, list[Entry]] = defaultdict(list)
    for reading in readings:
        streams[reading.mtu_id].append(reading.to_entry())

    violations = []
    for mtu_id in sorted(streams):
        violations.extend(find_violations(streams[mtu_id], lookback))
    return violations
