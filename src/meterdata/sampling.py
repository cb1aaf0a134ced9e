"""Sampling-interval classification (daily vs hourly) for a source."""

from collections.abc import Sequence
from datetime import date, datetime, time

import pandas as pd
from aws_lambda_powertools import Logger

from meterdata.common import SAMPLING_INTERVAL
from meterdata.models import Reading, SamplingInterval
from meterdata.store import ReadingStore

logger = Logger(service="sampling", child=True)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Midnight to 23:59:59 of the given day."""
    return datetime.combine(day, time.min), datetime.combine(day, time(23, 59, 59))


def classify_count(count: int) -> SamplingInterval:
    if count == 0:
        return SamplingInterval.NOT_AVAILABLE
    if count == 1:
        return SamplingInterval.DAILY
    return SamplingInterval.HOURLY


def classify_day(
    store: ReadingStore, source_name: str, day: date, deadline: float | None = None
) -> SamplingInterval:
    """Classify a source from the number of readings it has on one calendar day."""
    start, end = day_bounds(day)
    readings = store.get_readings(source_name, start, end, deadline=deadline)
    return classify_count(len(readings))


def classify_readings(readings: Sequence[Reading]) -> SamplingInterval:
    """
    Classify a window of readings.

    Any calendar day with more than one reading makes the window hourly;
    otherwise it is daily. An empty window is not available.
    """
    if not readings:
        return SamplingInterval.NOT_AVAILABLE

    df = pd.DataFrame({"timestamp": [r.timestamp for r in readings]})
    per_day = df.groupby(df["timestamp"].dt.date).size()
    if int(per_day.max()) > 1:
        return SamplingInterval.HOURLY
    return SamplingInterval.DAILY


def update_sampling_interval(
    store: ReadingStore,
    source_name: str,
    day: date,
    window: tuple[datetime, datetime] | None = None,
    deadline: float | None = None,
) -> SamplingInterval:
    """
    Classify a source and persist the result as its samplingInterval.

    Args:
        store: Reading store
        source_name: Source to classify
        day: Calendar day whose reading count decides the class
        window: Optional (start, end) classified as a whole when the day has
            no readings
        deadline: Optional time.monotonic() deadline for store calls

    Returns:
        The persisted sampling interval
    """
    interval = classify_day(store, source_name, day, deadline=deadline)
    if interval == SamplingInterval.NOT_AVAILABLE and window is not None:
        interval = classify_readings(store.get_readings(source_name, window[0], window[1], deadline=deadline))

    source = store.get_source(source_name, deadline=deadline)
    store.store_source(source.with_properties(**{SAMPLING_INTERVAL: interval.value}), overwrite=True, deadline=deadline)

    logger.debug("Sampling interval set", extra={"source": source_name, "day": day.isoformat(), "interval": interval.value})
    return interval
