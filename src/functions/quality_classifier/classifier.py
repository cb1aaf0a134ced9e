"""Core grading logic for source data quality over an interval."""

import threading
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, NamedTuple

from aws_lambda_powertools import Logger

from meterdata.common import GRADE
from meterdata.config import BUFFER_DAYS, MAX_WORKERS
from meterdata.models import Grade, Reading, SamplingInterval, Source
from meterdata.monotonicity import DEFAULT_LOOKBACK, find_stream_violations
from meterdata.sampling import classify_readings, update_sampling_interval
from meterdata.store import ReadingStore, StoreError

logger = Logger(service="quality-classifier", child=True)

# Reason strings, in precedence order
NO_DATA = "no data in interval"
MISSING_AFTER_START = "missing data after start"
MISSING_BEFORE_END = "missing data before end"
NON_MONOTONIC = "non-monotonic data"
NO_BUFFER_BEFORE_START = "no buffer before start"
NO_BUFFER_AFTER_END = "no buffer after end"
INCOMPLETE_DAILY = "incomplete daily coverage"
COMPLETE = "complete"


class GradeResult(NamedTuple):
    source_name: str
    grade: Grade
    reason: str
    detail: dict[str, Any]


class FailedSource(NamedTuple):
    source_name: str
    reason: str


@dataclass
class ClassificationResult:
    results: list[GradeResult] = field(default_factory=list)
    failed: list[FailedSource] = field(default_factory=list)

    def by_grade(self, grade: Grade) -> list[GradeResult]:
        return [r for r in self.results if r.grade == grade]

    def summary(self) -> dict[str, int]:
        daily = sum(1 for r in self.results if r.detail.get("sampling_interval") == SamplingInterval.DAILY.value)
        hourly = sum(1 for r in self.results if r.detail.get("sampling_interval") == SamplingInterval.HOURLY.value)
        grade_a = len(self.by_grade(Grade.A_DAILY)) + len(self.by_grade(Grade.A_HOURLY))
        return {
            "grade_a_daily": len(self.by_grade(Grade.A_DAILY)),
            "grade_a_hourly": len(self.by_grade(Grade.A_HOURLY)),
            "grade_a": grade_a,
            "grade_b": len(self.by_grade(Grade.B)),
            "grade_c": len(self.by_grade(Grade.C)),
            "failed": len(self.failed),
            "incomplete_daily": sum(1 for r in self.results if r.reason == INCOMPLETE_DAILY),
            "daily_sources": daily,
            "hourly_sources": hourly,
            "total_sources": len(self.results),
        }


def buffer_bounds(start: datetime, end: datetime, buffer_days: int = BUFFER_DAYS) -> tuple[datetime, datetime]:
    """Return (beforeStart, afterEnd) for an interval."""
    return start - timedelta(days=buffer_days), end + timedelta(days=buffer_days)


def resolve_sampling_interval(source: Source, history: list[Reading]) -> SamplingInterval:
    """Use the stored classification, or classify the window when none is usable."""
    interval = source.sampling_interval
    if interval in (SamplingInterval.DAILY, SamplingInterval.HOURLY):
        return interval
    return classify_readings(history)


def grade_source(
    store: ReadingStore,
    source: Source,
    start: datetime,
    end: datetime,
    buffer_days: int = BUFFER_DAYS,
    lookback: timedelta = DEFAULT_LOOKBACK,
    deadline: float | None = None,
) -> GradeResult:
    """
    Grade one source over [start, end].

    Rules are applied in a fixed order and the first match wins: the three
    coverage checks, monotonicity, the two buffer checks, then daily
    completeness. Sources that pass every rule are graded A.

    Raises:
        StoreError: If the source's history cannot be fetched
    """
    before_start, after_end = buffer_bounds(start, end, buffer_days)
    history = store.get_readings(source.name, before_start, after_end, deadline=deadline)
    interval = resolve_sampling_interval(source, history)
    detail: dict[str, Any] = {
        "before_start": before_start.isoformat(),
        "after_end": after_end.isoformat(),
        "sampling_interval": interval.value,
        "reading_count": len(history),
    }

    def result(grade: Grade, reason: str) -> GradeResult:
        return GradeResult(source.name, grade, reason, detail)

    if not history:
        return result(Grade.C, NO_DATA)

    first, last = history[0].timestamp, history[-1].timestamp
    detail["first_timestamp"] = first.isoformat()
    detail["last_timestamp"] = last.isoformat()

    if first.date() > start.date():
        return result(Grade.C, MISSING_AFTER_START)

    if last.date() < end.date():
        return result(Grade.C, MISSING_BEFORE_END)

    violations = find_stream_violations(history, lookback)
    if violations:
        detail["violations"] = [v.describe() for v in violations]
        return result(Grade.C, NON_MONOTONIC)

    if not any(before_start <= r.timestamp < start for r in history):
        return result(Grade.B, NO_BUFFER_BEFORE_START)

    if not any(end < r.timestamp <= after_end for r in history):
        return result(Grade.B, NO_BUFFER_AFTER_END)

    if interval == SamplingInterval.DAILY:
        expected = (after_end.date() - before_start.date()).days + 1
        detail["expected_count"] = expected
        if len(history) != expected:
            return result(Grade.B, INCOMPLETE_DAILY)
        return result(Grade.A_DAILY, COMPLETE)

    return result(Grade.A_HOURLY, COMPLETE)


class SourceLocks:
    """One lock per source name, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, name: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(name, threading.Lock())


def classify_one(
    store: ReadingStore,
    source_name: str,
    start: datetime,
    end: datetime,
    buffer_days: int = BUFFER_DAYS,
    lookback: timedelta = DEFAULT_LOOKBACK,
    refresh_sampling: bool = True,
    deadline: float | None = None,
) -> GradeResult:
    """Classify sampling, grade, and persist the grade for one source."""
    if refresh_sampling:
        before_start, after_end = buffer_bounds(start, end, buffer_days)
        update_sampling_interval(store, source_name, start.date(), window=(before_start, after_end), deadline=deadline)

    source = store.get_source(source_name, deadline=deadline)
    graded = grade_source(store, source, start, end, buffer_days, lookback, deadline=deadline)
    store.store_source(source.with_properties(**{GRADE: graded.grade.value}), overwrite=True, deadline=deadline)
    return graded


def classify_sources(
    store: ReadingStore,
    sources: Iterable[Source],
    start: datetime,
    end: datetime,
    buffer_days: int = BUFFER_DAYS,
    lookback: timedelta = DEFAULT_LOOKBACK,
    max_workers: int = MAX_WORKERS,
    refresh_sampling: bool = True,
    deadline: float | None = None,
) -> ClassificationResult:
    """
    Grade every source on a worker pool.

    Args:
        store: Reading store
        sources: Sources to grade
        start: Interval start
        end: Interval end
        buffer_days: Days of buffer required on each side of the interval
        lookback: Monotonicity lookback window
        max_workers: Worker pool size
        refresh_sampling: Re-classify each source's sampling interval first
        deadline: Optional time.monotonic() deadline for store calls

    Returns:
        ClassificationResult with graded and failed sources, sorted by name
    """
    if start > end:
        raise ValueError(f"Interval start {start} is after end {end}")

    names = sorted({s.name for s in sources})
    locks = SourceLocks()
    classification = ClassificationResult()

    def worker(name: str) -> GradeResult:
        with locks.get(name):
            return classify_one(store, name, start, end, buffer_days, lookback, refresh_sampling, deadline)

    logger.info("Classifying sources", extra={"total_sources": len(names), "max_workers": max_workers})

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(worker, name): name for name in names}

        for future in as_completed(futures):
            name = futures[future]
            try:
                graded = future.result()
                classification.results.append(graded)
                logger.debug("Source graded", extra={"source": name, "grade": graded.grade.value, "reason": graded.reason})
            except (StoreError, ValueError) as e:
                logger.warning("Failed to classify source", extra={"source": name, "error": str(e)})
                classification.failed.append(FailedSource(name, str(e) or type(e).__name__))

    classification.results.sort(key=lambda r: r.source_name)
    classification.failed.sort(key=lambda f: f.source_name)
    return classification
