"""Grade bucket files and CSV report for quality classification."""

import csv
from datetime import datetime
from pathlib import Path

from meterdata.common import (
    FAILED_REPORT,
    GRADE_A_DAILY_REPORT,
    GRADE_A_HOURLY_REPORT,
    GRADE_B_REPORT,
    GRADE_C_REPORT,
)
from meterdata.models import Grade

from functions.quality_classifier.classifier import ClassificationResult

BUCKETS = {
    GRADE_A_DAILY_REPORT: Grade.A_DAILY,
    GRADE_A_HOURLY_REPORT: Grade.A_HOURLY,
    GRADE_B_REPORT: Grade.B,
    GRADE_C_REPORT: Grade.C,
}


def interval_label(start: datetime, end: datetime) -> str:
    """Interval part of a bucket filename, e.g. 2011.5.2-2011.5.31"""
    return f"{start.year}.{start.month}.{start.day}-{end.year}.{end.month}.{end.day}"


def get_report_headers() -> list[str]:
    """Return CSV header fields in order."""
    return ["source_name", "grade", "reason", "sampling_interval", "reading_count"]


def write_bucket(path: Path, start: datetime, end: datetime, lines: list[tuple[str, str]]) -> str:
    with path.open("w") as f:
        f.write(f"{start.isoformat()}\n")
        f.write(f"{end.isoformat()}\n\n")
        for name, reason in lines:
            f.write(f"{name}\t{reason}\n")
    return str(path)


def write_grade_files(result: ClassificationResult, start: datetime, end: datetime, output_dir: str) -> list[str]:
    """
    Write one text file per grade bucket plus one for failed sources.

    Args:
        result: Classification result, already sorted by source name
        start: Interval start
        end: Interval end
        output_dir: Directory to write the files

    Returns:
        Paths of the written files
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    label = interval_label(start, end)

    paths = []
    for prefix, grade in BUCKETS.items():
        lines = [(r.source_name, r.reason) for r in result.by_grade(grade)]
        paths.append(write_bucket(output_path / f"{prefix}-{label}.txt", start, end, lines))

    failed = [(f.source_name, f.reason) for f in result.failed]
    paths.append(write_bucket(output_path / f"{FAILED_REPORT}-{label}.txt", start, end, failed))
    return paths


def generate_report(result: ClassificationResult, output_dir: str) -> str:
    """
    Generate a CSV of every graded source.

    Returns:
        Path to generated CSV file
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_path / f"quality_report_{timestamp}.csv"

    headers = get_report_headers()
    with filepath.open("w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=headers)
        writer.writeheader()
        for graded in result.results:
            writer.writerow(
                {
                    "source_name": graded.source_name,
                    "grade": graded.grade.value,
                    "reason": graded.reason,
                    "sampling_interval": graded.detail.get("sampling_interval", ""),
                    "reading_count": graded.detail.get("reading_count", 0),
                }
            )

    return str(filepath)


def format_summary(summary: dict[str, int]) -> str:
    """Human-readable classification summary."""
    return (
        f"Grade A sources (daily): {summary['grade_a_daily']}\n"
        f"Grade A sources (hourly): {summary['grade_a_hourly']}\n"
        f"Total number of Grade A sources: {summary['grade_a']}\n"
        f"Grade B sources: {summary['grade_b']}\n"
        f"Grade C sources: {summary['grade_c']}\n"
        f"Failed sources: {summary['failed']}\n\n"
        f"Number of daily sources that are missing some data: {summary['incomplete_daily']}\n"
        f"Total number of daily sources:  {summary['daily_sources']:5d}\n"
        f"Total number of hourly sources: {summary['hourly_sources']:5d}\n"
        f"Total number of sources:        {summary['total_sources']:5d}\n"
    )
