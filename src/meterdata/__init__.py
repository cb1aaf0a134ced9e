"""
Shared meter-data library for meterqc.

This package provides the data model, row parsers, validators, reading store
and the monotonicity and sampling checks used by the importer and the
quality classifier.
"""

from meterdata.models import (
    Entry,
    Grade,
    ParseErrorKind,
    Reading,
    RowParseError,
    RunStats,
    SamplingInterval,
    Source,
    Violation,
)
from meterdata.monotonicity import check_entry, find_stream_violations, find_violations
from meterdata.row_parsers import DeviceFamily, ParserConfig, get_parser_config, parse_row, parse_rows, sniff_family
from meterdata.sampling import classify_day, classify_readings, update_sampling_interval
from meterdata.store import (
    AlreadyExistsError,
    DynamoDBReadingStore,
    InMemoryReadingStore,
    NotFoundError,
    ReadingStore,
    StoreError,
    StoreTimeoutError,
    StoreUnavailableError,
    get_store,
)
from meterdata.validators import NonBlankValue, NumericValue, RangeCeiling

__all__ = [
    "AlreadyExistsError",
    "DeviceFamily",
    "DynamoDBReadingStore",
    "Entry",
    "Grade",
    "InMemoryReadingStore",
    "NonBlankValue",
    "NotFoundError",
    "NumericValue",
    "ParseErrorKind",
    "ParserConfig",
    "RangeCeiling",
    "Reading",
    "ReadingStore",
    "RowParseError",
    "RunStats",
    "SamplingInterval",
    "Source",
    "StoreError",
    "StoreTimeoutError",
    "StoreUnavailableError",
    "Violation",
    "check_entry",
    "classify_day",
    "classify_readings",
    "find_stream_violations",
    "find_violations",
    "get_parser_config",
    "get_store",
    "parse_row",
    "parse_rows",
    "sniff_family",
    "update_sampling_interval",
]
