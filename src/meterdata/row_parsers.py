"""
Row parsers for the supported device families.

Every family is described by a static ``ParserConfig`` (column layout, date
formats, sentinel, validated columns, unit factor) plus a plain ``extract``
function for the family-specific fields. ``parse_row`` is the single generic
parsing function; it either returns a ``Reading`` or raises ``RowParseError``.
"""

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import NamedTuple

from aws_lambda_powertools import Logger

from meterdata.common import (
    ACCOUNT_NUMBER,
    INSTALL_DATE,
    METER_TYPE,
    NO_READING_SENTINEL,
    NOT_AVAILABLE_VALUE,
    NULL_SENTINEL,
)
from meterdata.models import ParseErrorKind, Reading, RowParseError
from meterdata.validators import DEFAULT_VALIDATORS, NonBlankValue, NumericValue, to_number

logger = Logger(service="row-parsers", child=True)


class DeviceFamily(str, Enum):
    PULSE_METER = "pulse"
    SUBPANEL_LEGACY = "subpanel-legacy"
    SUBPANEL_V2 = "subpanel-v2"
    ENVIRONMENT_LOGGER = "environment"
    WHOLE_HOUSE = "whole-house"


class RowLayout(NamedTuple):
    source_name: str | None
    mtu_id: str
    raw_fields: dict[str, str]
    source_properties: dict[str, str]


@dataclass(frozen=True)
class ParserConfig:
    family: DeviceFamily
    accepted_lengths: frozenset[int]
    timestamp_column: int
    datetime_format: str
    validated_columns: Callable[[int], Sequence[int]]
    extract: Callable[[list[str]], RowLayout]
    date_format: str = "%m/%d/%Y"
    value_column: int | None = 1
    unit_factor: float = 1.0
    sentinel: str | None = None
    sentinel_columns: tuple[int, ...] = ()
    strip_separators: tuple[int, ...] = ()
    validators: tuple[NonBlankValue | NumericValue, ...] = field(default=DEFAULT_VALIDATORS)

    @property
    def needs_source_name(self) -> bool:
        """Families whose rows do not name their source take it from the file."""
        return self.family is not DeviceFamily.PULSE_METER


def row_to_string(row: Sequence[str]) -> str:
    return " ".join(str(col) for col in row)


def parse_timestamp(value: str, datetime_format: str, date_format: str) -> datetime:
    """
    Parse with the primary datetime format, falling back to the date-only
    format applied to the leading date token.

    Raises:
        ValueError: If neither format matches
    """
    value = value.strip()
    try:
        return datetime.strptime(value, datetime_format)
    except ValueError:
        date_token = value.split(" ")[0] if value else value
        return datetime.strptime(date_token, date_format)


def to_canonical(value: str, unit_factor: float) -> int:
    """Convert a numeric field to an integer in canonical units (Wh or W)."""
    converted = to_number(value) * unit_factor
    if not math.isfinite(converted):
        raise RowParseError(ParseErrorKind.NON_NUMERIC_VALUE, f"[{value}] Entry is out of range.")
    return round(converted)


# ---------------------- Family layouts ---------------------- #


def _pulse_meter_columns(length: int) -> Sequence[int]:
    # Column 7 holds the reading timestamp
    return [i for i in range(2, length) if i != 7]


def _pulse_meter_extract(col: list[str]) -> RowLayout:
    mtu_id, port = col[2], col[3]
    raw_fields = {
        ACCOUNT_NUMBER: col[0],
        INSTALL_DATE: col[1],
        "port": port,
        METER_TYPE: col[4],
        "rawRead": col[5],
        "rssi": col[8],
    }
    source_properties = {ACCOUNT_NUMBER: col[0], INSTALL_DATE: col[1], METER_TYPE: col[4]}
    return RowLayout(f"{mtu_id}-{port}", mtu_id, raw_fields, source_properties)


def _subpanel_legacy_extract(col: list[str]) -> RowLayout:
    raw_fields = {"airConditioner": col[2], "waterHeater": col[3], "dryer": col[4]}
    return RowLayout(None, "", raw_fields, {})


SUBPANEL_V2_CHANNELS = ["airConditioner1", "airConditioner2", "dhw1", "dhw2", "dryer1", "dryer2"]


def _subpanel_v2_extract(col: list[str]) -> RowLayout:
    # kW -> W for every channel, energy block first then power block
    values = [str(to_canonical(v, 1000)) for v in col[1:]]
    grids = ["grid1", "grid2"] if len(col) == 21 else ["grid"]

    raw_fields = {"energyGenerated": values[1]}
    index = 2
    for name in grids + SUBPANEL_V2_CHANNELS:
        raw_fields[f"{name}-energy"] = values[index]
        index += 1

    raw_fields["powerConsumed"] = values[index]
    raw_fields["powerGenerated"] = values[index + 1]
    index += 2
    for name in grids + SUBPANEL_V2_CHANNELS:
        raw_fields[f"{name}-power"] = values[index]
        index += 1

    return RowLayout(None, "", raw_fields, {})


def _environment_logger_extract(col: list[str]) -> RowLayout:
    raw_fields = {"record": col[0], "tempF": col[2], "rh%": col[3], "lumenPerSqFt": col[4]}
    return RowLayout(None, "", raw_fields, {})


def _or_not_available(value: str) -> str:
    return NOT_AVAILABLE_VALUE if value.lower() == NULL_SENTINEL else value


def _whole_house_extract(col: list[str]) -> RowLayout:
    raw_fields = {
        "mtu2": _or_not_available(col[2]),
        "mtu3": _or_not_available(col[3]),
        "mtu4": _or_not_available(col[4]),
        "other": _or_not_available(col[13]),
        "isAirConditionerOff": "false" if col[21] == "0" else "true",
    }
    return RowLayout(None, "", raw_fields, {})


PARSER_CONFIGS: dict[DeviceFamily, ParserConfig] = {
    DeviceFamily.PULSE_METER: ParserConfig(
        family=DeviceFamily.PULSE_METER,
        accepted_lengths=frozenset({9}),
        timestamp_column=7,
        datetime_format="%m/%d/%Y %I:%M:%S %p",
        validated_columns=_pulse_meter_columns,
        extract=_pulse_meter_extract,
        value_column=6,
        unit_factor=1000,  # kWh -> Wh
        sentinel=NO_READING_SENTINEL,
        sentinel_columns=(5, 6),
    ),
    DeviceFamily.SUBPANEL_LEGACY: ParserConfig(
        family=DeviceFamily.SUBPANEL_LEGACY,
        accepted_lengths=frozenset({5}),
        timestamp_column=0,
        datetime_format="%m/%d/%y %I:%M %p",
        validated_columns=lambda length: range(1, length),
        extract=_subpanel_legacy_extract,
    ),
    DeviceFamily.SUBPANEL_V2: ParserConfig(
        family=DeviceFamily.SUBPANEL_V2,
        accepted_lengths=frozenset({19, 21}),
        timestamp_column=0,
        datetime_format="%Y-%m-%d %H:%M",
        validated_columns=lambda length: range(1, length),
        extract=_subpanel_v2_extract,
        unit_factor=1000,  # kW -> W
    ),
    DeviceFamily.ENVIRONMENT_LOGGER: ParserConfig(
        family=DeviceFamily.ENVIRONMENT_LOGGER,
        accepted_lengths=frozenset({5, 7, 9}),
        timestamp_column=1,
        datetime_format="%m/%d/%Y %H:%M",
        validated_columns=lambda length: range(2, 5),
        extract=_environment_logger_extract,
        value_column=None,
    ),
    DeviceFamily.WHOLE_HOUSE: ParserConfig(
        family=DeviceFamily.WHOLE_HOUSE,
        accepted_lengths=frozenset({25}),
        timestamp_column=0,
        datetime_format="%m/%d/%y %I:%M %p",
        validated_columns=lambda length: (1,),
        extract=_whole_house_extract,
        sentinel=NULL_SENTINEL,
        sentinel_columns=(1,),
        strip_separators=(1,),
    ),
}

# Column count -> family, used when no explicit family is given
SNIFF_ORDER: dict[int, DeviceFamily] = {
    9: DeviceFamily.PULSE_METER,
    5: DeviceFamily.SUBPANEL_LEGACY,
    7: DeviceFamily.ENVIRONMENT_LOGGER,
    19: DeviceFamily.SUBPANEL_V2,
    21: DeviceFamily.SUBPANEL_V2,
    25: DeviceFamily.WHOLE_HOUSE,
}


def sniff_family(row_length: int) -> DeviceFamily | None:
    return SNIFF_ORDER.get(row_length)


def get_parser_config(family: DeviceFamily | str) -> ParserConfig:
    try:
        return PARSER_CONFIGS[DeviceFamily(family)]
    except ValueError:
        raise ValueError(f"Unknown device family: {family}") from None


# ---------------------- Parser ---------------------- #


def parse_row(row: Sequence[str] | None, config: ParserConfig, source_name: str | None = None) -> Reading:
    """
    Parse one row into a Reading.

    Args:
        row: Raw string fields of one input row
        config: Static layout for the row's device family
        source_name: Source name for families whose rows do not carry one

    Returns:
        Reading with the canonical value in cumulative_energy

    Raises:
        RowParseError: If the row is rejected, categorised by ParseErrorKind
        ValueError: If the family needs a source name and none was given
    """
    if config.needs_source_name and not source_name:
        raise ValueError(f"{config.family.value} rows need an explicit source name")

    if row is None or len(row) not in config.accepted_lengths:
        raise RowParseError(ParseErrorKind.BAD_SHAPE, f"Row not in specified format: {row_to_string(row or [])}")

    col = [str(value).strip() for value in row]

    if config.sentinel is not None:
        for index in config.sentinel_columns:
            if col[index].lower() == config.sentinel.lower():
                raise RowParseError(ParseErrorKind.NO_READING, f"No reading for source: {row_to_string(col)}")

    for index in config.strip_separators:
        col[index] = col[index].replace(",", "")

    for index in config.validated_columns(len(col)):
        for validator in config.validators:
            if not validator.validate(col[index]):
                raise RowParseError(validator.kind, f"[{col[index]}] {validator.error_message} {row_to_string(col)}")

    raw_timestamp = col[config.timestamp_column]
    try:
        timestamp = parse_timestamp(raw_timestamp, config.datetime_format, config.date_format)
    except ValueError:
        raise RowParseError(
            ParseErrorKind.BAD_TIMESTAMP, f"Bad timestamp found in input file: {raw_timestamp} {row_to_string(col)}"
        ) from None

    energy = 0
    if config.value_column is not None:
        energy = to_canonical(col[config.value_column], config.unit_factor)
        if energy < 0:
            raise RowParseError(
                ParseErrorKind.NEGATIVE_VALUE, f"[{energy}] Energy consumed to date is less than 0! {row_to_string(col)}"
            )

    layout = config.extract(col)
    return Reading(
        source_name=layout.source_name or source_name or "",
        mtu_id=layout.mtu_id,
        timestamp=timestamp,
        cumulative_energy=energy,
        raw_fields=layout.raw_fields,
    )


def source_properties(row: Sequence[str], config: ParserConfig) -> dict[str, str]:
    """Source-level properties carried by a row that parsed successfully."""
    return config.extract([str(value).strip() for value in row]).source_properties


def parse_rows(
    rows: Sequence[Sequence[str]],
    family: DeviceFamily | str | None = None,
    source_name: str | None = None,
) -> tuple[list[Reading], list[RowParseError]]:
    """
    Parse a batch of rows, sniffing the family per row when none is given.

    Returns:
        Tuple of (parsed readings, rejections)
    """
    readings: list[Reading] = []
    errors: list[RowParseError] = []

    for row in rows:
        row_family = family or sniff_family(len(row))
        if row_family is None:
            errors.append(RowParseError(ParseErrorKind.BAD_SHAPE, f"No parser for row: {row_to_string(row)}"))
            continue
        try:
            readings.append(parse_row(row, get_parser_config(row_family), source_name))
        except RowParseError as e:
            logger.debug("Row rejected", extra={"kind": e.kind.value, "error": e.message})
            errors.append(e)

    return readings, errors
