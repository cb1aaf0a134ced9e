"""
Quality Classifier Lambda

Grades every source's data quality (A daily, A hourly, B, C) over an
interval and writes one report file per grade bucket.

Event parameters:
    startDate: Start date (YYYY-MM-DD) - required
    endDate: End date (YYYY-MM-DD) - required

Local usage:
    python -m functions.quality_classifier.app --start-date 2011-05-02 --end-date 2011-05-31
"""

import argparse
from datetime import datetime, time
from typing import Any

from aws_lambda_powertools import Logger
from aws_lambda_powertools.utilities.typing import LambdaContext

from meterdata.config import BUFFER_DAYS, MAX_WORKERS, REPORT_DIR
from meterdata.store import ReadingStore, get_store

from functions.quality_classifier.classifier import classify_sources
from functions.quality_classifier.report import format_summary, generate_report, write_grade_files

logger = Logger(service="quality-classifier")

DEFAULT_OUTPUT_DIR = REPORT_DIR


def parse_interval(start_date: str, end_date: str) -> tuple[datetime, datetime]:
    """
    Turn YYYY-MM-DD dates into an interval from start 00:00:00 to end 23:59:59.

    Raises:
        ValueError: If a date is malformed or the interval is inverted
    """
    start = datetime.combine(datetime.strptime(start_date, "%Y-%m-%d").date(), time.min)
    end = datetime.combine(datetime.strptime(end_date, "%Y-%m-%d").date(), time(23, 59, 59))
    if start > end:
        raise ValueError(f"Start date {start_date} is after end date {end_date}")
    return start, end


def run_classification(
    store: ReadingStore,
    start: datetime,
    end: datetime,
    output_dir: str = DEFAULT_OUTPUT_DIR,
    buffer_days: int = BUFFER_DAYS,
    max_workers: int = MAX_WORKERS,
    source_names: list[str] | None = None,
) -> dict[str, Any]:
    """
    Run quality classification for all (or selected) sources.

    Args:
        store: Reading store
        start: Interval start
        end: Interval end
        output_dir: Directory for grade bucket files and CSV
        buffer_days: Days of buffer required on each side of the interval
        max_workers: Worker pool size
        source_names: Optional subset of sources to grade

    Returns:
        Response dict with results
    """
    logger.info("Starting classification", extra={"start": start.isoformat(), "end": end.isoformat()})

    store.ping()
    sources = store.get_sources()
    if source_names is not None:
        wanted = set(source_names)
        sources = [s for s in sources if s.name in wanted]

    result = classify_sources(store, sources, start, end, buffer_days=buffer_days, max_workers=max_workers)

    bucket_paths = write_grade_files(result, start, end, output_dir)
    report_path = generate_report(result, output_dir)
    summary = result.summary()

    logger.info(format_summary(summary))
    logger.info("Classification complete", extra={**summary, "report_path": report_path})

    return {
        "statusCode": 200,
        "body": {
            "message": f"Classification complete for {start.date()} to {end.date()}",
            "summary": summary,
            "grades": {r.source_name: r.grade.value for r in result.results},
            "failed": [f.source_name for f in result.failed],
            "bucket_paths": bucket_paths,
            "report_path": report_path,
        },
    }


@logger.inject_lambda_context
def lambda_handler(event: dict[str, Any], context: LambdaContext | None) -> dict[str, Any]:
    """
    Lambda handler for quality classification.

    Args:
        event: Lambda event with startDate and endDate (required)
        context: Lambda context

    Returns:
        Response with classification results
    """
    start_date = event.get("startDate")
    end_date = event.get("endDate")

    if not start_date or not end_date:
        return {
            "statusCode": 400,
            "body": "Missing required parameters: startDate, endDate",
        }

    try:
        start, end = parse_interval(start_date, end_date)
    except ValueError as e:
        return {
            "statusCode": 400,
            "body": f"Invalid interval: {e}",
        }

    return run_classification(store=get_store(), start=start, end=end, output_dir=event.get("outputDir", "/tmp"))


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Grade source data quality over an interval")
    parser.add_argument(
        "--start-date",
        required=True,
        help="Start date (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--end-date",
        required=True,
        help="End date (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--output-dir",
        default=DEFAULT_OUTPUT_DIR,
        help="Output directory for grade files",
    )
    parser.add_argument(
        "--buffer-days",
        type=int,
        default=BUFFER_DAYS,
        help="Days of data required on each side of the interval",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=MAX_WORKERS,
        help="Number of sources graded concurrently",
    )

    return parser.parse_args(args)


if __name__ == "__main__":
    args = parse_args()
    interval_start, interval_end = parse_interval(args.start_date, args.end_date)

    result = run_classification(
        store=get_store(),
        start=interval_start,
        end=interval_end,
        output_dir=args.output_dir,
        buffer_days=args.buffer_days,
        max_workers=args.max_workers,
    )

    print(f"\nResult: {result}")
