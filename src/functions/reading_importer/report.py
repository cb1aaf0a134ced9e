"""Run summary and CSV reports for the reading importer."""

import csv
from pathlib import Path

from meterdata.common import DUPLICATE_MTU_REPORT, NON_MONOTONIC_REPORT
from meterdata.models import ParseErrorKind, RunStats, Violation

NON_MONOTONIC_HEADERS = ["Source", "MTU ID", "Previous Timestamp", "Previous Reading", "Timestamp", "Reading"]
DUPLICATE_MTU_HEADERS = ["Account Number", "MTU ID", "Monotonically Increasing"]


def write_non_monotonic_report(violations: list[Violation], output_dir: str, label: str) -> str:
    """
    Write every monotonicity violation found during an import.

    Returns:
        Path to generated CSV file
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    filepath = output_path / f"{NON_MONOTONIC_REPORT}-{label}.csv"

    with filepath.open("w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=NON_MONOTONIC_HEADERS)
        writer.writeheader()
        for v in violations:
            writer.writerow(
                {
                    "Source": v.source_name,
                    "MTU ID": v.mtu_id,
                    "Previous Timestamp": v.previous_timestamp.isoformat(),
                    "Previous Reading": v.previous_reading,
                    "Timestamp": v.timestamp.isoformat(),
                    "Reading": v.reading,
                }
            )

    return str(filepath)


def write_duplicate_mtu_report(
    duplicates: dict[str, list[str]],
    non_monotonic_mtus: set[str],
    output_dir: str,
    label: str,
) -> str:
    """
    Write accounts that report more than one MTU ID, one row per MTU.

    Returns:
        Path to generated CSV file
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    filepath = output_path / f"{DUPLICATE_MTU_REPORT}-{label}.csv"

    with filepath.open("w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=DUPLICATE_MTU_HEADERS)
        writer.writeheader()
        for account in sorted(duplicates):
            for mtu_id in duplicates[account]:
                writer.writerow(
                    {
                        "Account Number": account,
                        "MTU ID": mtu_id,
                        "Monotonically Increasing": "false" if mtu_id in non_monotonic_mtus else "true",
                    }
                )

    return str(filepath)


def format_stats(stats: RunStats) -> str:
    """Human-readable summary of an import run."""
    first = stats.first_timestamp.isoformat() if stats.first_timestamp else "n/a"
    last = stats.last_timestamp.isoformat() if stats.last_timestamp else "n/a"
    total_seconds = stats.import_seconds + stats.validate_seconds
    rate = stats.total_entries / total_seconds if total_seconds > 0 else 0.0
    errors = stats.parse_errors

    return "\n".join(
        [
            f"Input file: {stats.file_name}",
            f"Timestamp of first entry: {first}",
            f"Timestamp of last entry:  {last}",
            "",
            f"Number of entries processed: {stats.entries_processed} of {stats.total_entries}",
            f"Invalid entries: {stats.invalid_entries} ({stats.invalid_percentage:.2f}%)",
            f"  Bad shape: {errors[ParseErrorKind.BAD_SHAPE]}",
            f"  No reading: {errors[ParseErrorKind.NO_READING]}",
            f"  Blank values: {errors[ParseErrorKind.BLANK_VALUE]}",
            f"  Non-numeric values: {errors[ParseErrorKind.NON_NUMERIC_VALUE]}",
            f"  Bad timestamps: {errors[ParseErrorKind.BAD_TIMESTAMP]}",
            f"  Negative values: {errors[ParseErrorKind.NEGATIVE_VALUE]}",
            f"Non-monotonic entries: {stats.non_monotonic}",
            f"Entries above range ceiling: {stats.exceeds_ceiling}",
            f"Total failed validations: {stats.failed_validations}",
            "",
            f"New sources: {stats.new_sources}",
            f"Existing sources: {stats.existing_sources}",
            f"Total sources: {stats.total_sources}",
            f"New data: {stats.new_data}",
            f"Existing data: {stats.existing_data}",
            f"Total data imported: {stats.total_imported}",
            f"Store failures: {stats.store_failures}",
            f"Post-processing failures: {stats.classification_failures}",
            "",
            f"Hourly entries: {stats.hourly_entries}",
            f"Daily entries: {stats.daily_entries}",
            "",
            f"Import time: {stats.import_seconds:.2f} s",
            f"Validation time: {stats.validate_seconds:.2f} s",
            f"Entries per second: {rate:.2f}",
        ]
    )
