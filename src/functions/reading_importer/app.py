"""
Reading Importer Lambda

Parses meter reading files row by row, persists sources and readings, then
runs a restart-safe post pass per source that checks monotonicity, classifies
the sampling interval and attaches both as derived reading properties.

Event parameters:
    files: List of {"bucket", "file_name"} objects in S3 - required
    family: Device family (pulse, subpanel-legacy, subpanel-v2, environment,
        whole-house) - optional, sniffed from the column count when omitted
    sourceName: Source name for families whose rows do not carry one - optional
    skipFirstRow: Skip a header row - optional
    checkRange: Check consumption against the range ceiling - optional

Local usage:
    python -m functions.reading_importer.app --file readings.csv --family pulse
"""

import argparse
import csv
import shutil
import tempfile
import time
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any
from urllib.parse import unquote

import boto3
from aws_lambda_powertools import Logger, Metrics
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext

from meterdata.common import ACCOUNT_NUMBER, IS_MONOTONICALLY_INCREASING, SAMPLING_INTERVAL
from meterdata.config import LOOKBACK_DAYS, PROGRESS_EVERY, REPORT_DIR
from meterdata.models import ParseErrorKind, Reading, RowParseError, RunStats, SamplingInterval, Source, Violation
from meterdata.monotonicity import check_entry, preceding_reading
from meterdata.row_parsers import DeviceFamily, get_parser_config, parse_row, sniff_family, source_properties
from meterdata.sampling import classify_day, update_sampling_interval
from meterdata.store import (
    AlreadyExistsError,
    ReadingStore,
    StoreError,
    StoreUnavailableError,
    deadline_after,
    get_store,
)
from meterdata.validators import RangeCeiling

from functions.reading_importer.report import format_stats, write_duplicate_mtu_report, write_non_monotonic_report

# Powertools instances
logger = Logger(service="reading-importer")
metrics = Metrics(namespace="Meterqc/Importer")

# Seconds kept back from the Lambda's remaining time for reporting
DEADLINE_MARGIN_SECONDS = 10

s3_resource = None


def get_s3_resource() -> Any:
    """Get S3 resource with lazy initialization."""
    global s3_resource
    if s3_resource is None:
        s3_resource = boto3.resource("s3")
    return s3_resource


def download_files_to_tmp(file_list: list[dict[str, str]], tmp_files_folder_path: str) -> list[str]:
    local_paths = []

    for f in file_list:
        bucket = f["bucket"]

        # Always decode key before using with boto3
        key = unquote(f["file_name"].replace("+", "%20"))

        file_name = Path(key).name
        local_path = str(Path(tmp_files_folder_path) / file_name)

        logger.info("Downloading file", extra={"bucket": bucket, "key": key, "local_path": local_path})

        try:
            get_s3_resource().Bucket(bucket).download_file(key, local_path)
            local_paths.append(local_path)

        except Exception as e:
            logger.error("File download failed", exc_info=True, extra={"key": key, "error": str(e)})
            continue
    return local_paths


def read_rows(file_name: str, skip_first_row: bool = False) -> list[list[str]]:
    """Read all non-blank rows of a delimited file."""
    with Path(file_name).open(newline="") as f:
        rows = [row for row in csv.reader(f) if row]
    return rows[1:] if skip_first_row else rows


def get_multiple_mtu_ids(account_mtus: dict[str, set[str]]) -> dict[str, list[str]]:
    """Accounts whose readings carry more than one MTU ID."""
    return {account: sorted(mtus) for account, mtus in account_mtus.items() if len(mtus) > 1}


def store_source_once(store: ReadingStore, source: Source, stats: RunStats, deadline: float | None) -> bool:
    """
    Create the source if it is new.

    Returns:
        False if the store could not be reached for this source
    """
    try:
        store.store_source(source, overwrite=False, deadline=deadline)
        stats.new_sources += 1
    except AlreadyExistsError:
        stats.existing_sources += 1
    except StoreUnavailableError as e:
        logger.warning("Failed to store source", extra={"source": source.name, "error": str(e)})
        stats.store_failures += 1
        return False
    return True


def import_rows(
    rows: list[list[str]],
    store: ReadingStore,
    stats: RunStats,
    family: DeviceFamily | str | None = None,
    source_name: str | None = None,
    deadline: float | None = None,
) -> tuple[dict[str, dict[datetime, Reading]], dict[str, set[str]]]:
    """
    Parse and persist rows in file order.

    Returns:
        Tuple of (readings kept for the post pass keyed by source then
        timestamp, MTU IDs seen per account number)
    """
    imported: dict[str, dict[datetime, Reading]] = defaultdict(dict)
    account_mtus: dict[str, set[str]] = defaultdict(set)
    known_sources: set[str] = set()

    for count, row in enumerate(rows, start=1):
        stats.total_entries += 1

        row_family = family or sniff_family(len(row))
        if row_family is None:
            stats.record_parse_error(ParseErrorKind.BAD_SHAPE)
            logger.debug("No parser for row", extra={"row": count, "columns": len(row)})
            continue

        config = get_parser_config(row_family)
        try:
            reading = parse_row(row, config, source_name)
        except RowParseError as e:
            stats.record_parse_error(e.kind)
            logger.debug("Row rejected", extra={"row": count, "kind": e.kind.value, "error": e.message})
            continue

        stats.record_timestamp(reading.timestamp)

        if reading.source_name not in known_sources:
            source = Source(name=reading.source_name, properties=source_properties(row, config))
            if not store_source_once(store, source, stats, deadline):
                continue
            known_sources.add(reading.source_name)

        try:
            store.store_reading(reading, deadline=deadline)
            stats.new_data += 1
        except AlreadyExistsError:
            stats.existing_data += 1
        except StoreUnavailableError as e:
            logger.warning("Failed to store reading", extra={"source": reading.source_name, "error": str(e)})
            stats.store_failures += 1
            continue

        stats.entries_processed += 1
        imported[reading.source_name][reading.timestamp] = reading
        account = reading.raw_fields.get(ACCOUNT_NUMBER)
        if account and reading.mtu_id:
            account_mtus[account].add(reading.mtu_id)

        if count % PROGRESS_EVERY == 0:
            logger.info("Import progress", extra={"rows": count, "total_rows": len(rows)})

    return imported, account_mtus


def post_process_source(
    store: ReadingStore,
    source_name: str,
    readings: list[Reading],
    stats: RunStats,
    lookback: timedelta = timedelta(days=LOOKBACK_DAYS),
    check_range: bool = False,
    deadline: float | None = None,
) -> list[Violation]:
    """
    Check and tag one source's imported readings against the stored history.

    Safe to re-run: each reading is checked against what is stored and then
    overwritten in place with its derived properties.

    Returns:
        Monotonicity violations found for the source
    """
    violations = []
    day_intervals: dict[Any, SamplingInterval] = {}

    for reading in sorted(readings, key=lambda r: r.timestamp):
        entry = reading.to_entry()
        entry.is_monotonically_increasing = True
        try:
            violation = check_entry(store, entry, lookback, deadline=deadline)
            previous = preceding_reading(store, entry, lookback, deadline=deadline) if check_range else None
            day = reading.timestamp.date()
            if day not in day_intervals:
                day_intervals[day] = classify_day(store, source_name, day, deadline=deadline)
        except StoreError as e:
            logger.warning("Post-processing failed for reading", extra={"entry": str(entry), "error": str(e)})
            stats.classification_failures += 1
            continue

        interval = day_intervals[day]
        if violation is not None:
            stats.non_monotonic += 1
            violations.append(violation)
            logger.info("Non-monotonic reading", extra={"detail": violation.describe()})

        if interval == SamplingInterval.HOURLY:
            stats.hourly_entries += 1
        elif interval == SamplingInterval.DAILY:
            stats.daily_entries += 1

        if previous is not None:
            elapsed_hours = (reading.timestamp - previous.timestamp).total_seconds() / 3600
            ceiling = RangeCeiling(elapsed_hours, interval)
            if not ceiling.validate(str(reading.cumulative_energy - previous.cumulative_energy)):
                stats.exceeds_ceiling += 1
                logger.info("Reading above range ceiling", extra={"entry": str(entry), "error": ceiling.error_message})

        tagged = reading.with_derived(
            **{
                IS_MONOTONICALLY_INCREASING: "true" if entry.is_monotonically_increasing else "false",
                SAMPLING_INTERVAL: interval.value,
            }
        )
        try:
            store.store_reading(tagged, overwrite=True, deadline=deadline)
        except StoreError as e:
            logger.warning("Failed to tag reading", extra={"entry": str(entry), "error": str(e)})
            stats.classification_failures += 1

    first, last = min(r.timestamp for r in readings), max(r.timestamp for r in readings)
    try:
        update_sampling_interval(store, source_name, first.date(), window=(first, last), deadline=deadline)
    except StoreError as e:
        logger.warning("Failed to set sampling interval", extra={"source": source_name, "error": str(e)})
        stats.classification_failures += 1

    return violations


def record_metrics(stats: RunStats) -> None:
    metrics.add_metric(name="TotalEntries", unit=MetricUnit.Count, value=stats.total_entries)
    metrics.add_metric(name="ProcessedEntries", unit=MetricUnit.Count, value=stats.entries_processed)
    metrics.add_metric(name="InvalidEntries", unit=MetricUnit.Count, value=stats.invalid_entries)
    metrics.add_metric(name="NonMonotonicEntries", unit=MetricUnit.Count, value=stats.non_monotonic)
    metrics.add_metric(name="NewSources", unit=MetricUnit.Count, value=stats.new_sources)
    metrics.add_metric(name="NewData", unit=MetricUnit.Count, value=stats.new_data)
    metrics.add_metric(name="ExistingData", unit=MetricUnit.Count, value=stats.existing_data)
    metrics.add_metric(name="StoreFailures", unit=MetricUnit.Count, value=stats.store_failures)


def run_import(
    file_name: str,
    store: ReadingStore,
    family: DeviceFamily | str | None = None,
    source_name: str | None = None,
    skip_first_row: bool = False,
    lookback_days: int = LOOKBACK_DAYS,
    check_range: bool = False,
    output_dir: str = REPORT_DIR,
    deadline: float | None = None,
) -> dict[str, Any]:
    """
    Import one file of meter readings.

    Args:
        file_name: Path to the delimited input file
        store: Reading store
        family: Device family, sniffed per row from the column count when None
        source_name: Source name for families whose rows do not carry one;
            defaults to the file's stem
        skip_first_row: Skip a header row
        lookback_days: Monotonicity lookback in days
        check_range: Check consumption against the range ceiling
        output_dir: Directory for the CSV reports
        deadline: Optional time.monotonic() deadline for store calls

    Returns:
        Response dict with run statistics, violations and duplicate MTU IDs

    Raises:
        StoreError: If the store cannot be reached at the start of the run
    """
    stats = RunStats(file_name=file_name)
    if family is not None:
        family = DeviceFamily(family)
    if source_name is None and family is not DeviceFamily.PULSE_METER:
        source_name = Path(file_name).stem

    logger.info("Starting import", extra={"file_name": file_name, "family": family, "source_name": source_name})

    try:
        store.ping(deadline=deadline)
    except StoreError:
        logger.error("Store not reachable, aborting import", exc_info=True, extra={"file_name": file_name})
        raise

    rows = read_rows(file_name, skip_first_row)

    started = time.perf_counter()
    imported, account_mtus = import_rows(rows, store, stats, family, source_name, deadline)
    stats.import_seconds = time.perf_counter() - started

    started = time.perf_counter()
    violations: list[Violation] = []
    lookback = timedelta(days=lookback_days)
    for name in sorted(imported):
        violations.extend(
            post_process_source(
                store, name, list(imported[name].values()), stats, lookback, check_range, deadline=deadline
            )
        )
    stats.validate_seconds = time.perf_counter() - started

    duplicates = get_multiple_mtu_ids(account_mtus)
    for account, mtu_ids in duplicates.items():
        logger.info("Account has multiple MTU IDs", extra={"account": account, "mtu_ids": mtu_ids})

    label = Path(file_name).stem
    report_paths = [write_non_monotonic_report(violations, output_dir, label)]
    if duplicates:
        non_monotonic_mtus = {v.mtu_id for v in violations}
        report_paths.append(write_duplicate_mtu_report(duplicates, non_monotonic_mtus, output_dir, label))

    summary = format_stats(stats)
    logger.info(summary)
    record_metrics(stats)

    return {
        "statusCode": 200,
        "body": {
            "message": f"Import complete for {file_name}",
            "stats": stats,
            "summary": summary,
            "violations": violations,
            "duplicate_mtu_ids": duplicates,
            "report_paths": report_paths,
        },
    }


@metrics.log_metrics(capture_cold_start_metric=True)
@logger.inject_lambda_context
def lambda_handler(event: dict[str, Any], context: LambdaContext | None) -> dict[str, Any]:
    """
    Lambda handler for reading imports.

    Args:
        event: Lambda event with files (required) and import options
        context: Lambda context

    Returns:
        Response with per-file import results
    """
    files = event.get("files") or []
    if not files:
        return {
            "statusCode": 400,
            "body": "Missing required parameter: files",
        }

    family = event.get("family")
    if family is not None and family not in {f.value for f in DeviceFamily}:
        return {
            "statusCode": 400,
            "body": f"Invalid family: {family}. Must be one of: {', '.join(f.value for f in DeviceFamily)}",
        }

    deadline = None
    if context is not None:
        remaining = context.get_remaining_time_in_millis() / 1000 - DEADLINE_MARGIN_SECONDS
        deadline = deadline_after(max(remaining, 0))

    tmp_files_folder_path = Path(tempfile.gettempdir()) / str(uuid.uuid4())
    tmp_files_folder_path.mkdir(parents=True, exist_ok=True)

    results = []
    try:
        for local_path in download_files_to_tmp(files, str(tmp_files_folder_path)):
            response = run_import(
                local_path,
                get_store(),
                family=family,
                source_name=event.get("sourceName"),
                skip_first_row=bool(event.get("skipFirstRow", False)),
                check_range=bool(event.get("checkRange", False)),
                output_dir=str(tmp_files_folder_path / "reports"),
                deadline=deadline,
            )
            body = response["body"]
            results.append(
                {
                    "file_name": Path(local_path).name,
                    "entries_processed": body["stats"].entries_processed,
                    "invalid_entries": body["stats"].invalid_entries,
                    "non_monotonic": body["stats"].non_monotonic,
                }
            )
    except StoreError as e:
        metrics.add_metric(name="ErrorExecutionCount", unit=MetricUnit.Count, value=1)
        return {
            "statusCode": 503,
            "body": f"Store not reachable: {e}",
        }
    finally:
        shutil.rmtree(tmp_files_folder_path, ignore_errors=True)

    return {
        "statusCode": 200,
        "body": {
            "message": "Successfully imported files.",
            "files": results,
        },
    }


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Import meter readings from a delimited file")
    parser.add_argument(
        "--file",
        required=True,
        help="Input file path",
    )
    parser.add_argument(
        "--family",
        choices=[f.value for f in DeviceFamily],
        help="Device family (sniffed from the column count when omitted)",
    )
    parser.add_argument(
        "--source-name",
        help="Source name for families whose rows do not carry one",
    )
    parser.add_argument(
        "--skip-first-row",
        action="store_true",
        help="Skip a header row",
    )
    parser.add_argument(
        "--check-range",
        action="store_true",
        help="Check consumption against the range ceiling",
    )
    parser.add_argument(
        "--lookback-days",
        type=int,
        default=LOOKBACK_DAYS,
        help="Monotonicity lookback in days",
    )
    parser.add_argument(
        "--output-dir",
        default=REPORT_DIR,
        help="Output directory for CSV reports",
    )

    return parser.parse_args(args)


if __name__ == "__main__":
    args = parse_args()

    result = run_import(
        args.file,
        get_store(),
        family=args.family,
        source_name=args.source_name,
        skip_first_row=args.skip_first_row,
        lookback_days=args.lookback_days,
        check_range=args.check_range,
        output_dir=args.output_dir,
    )

    print(result["body"]["summary"])
