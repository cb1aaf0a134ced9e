"""
Reading store: the narrow interface to the energy-data repository.

Two adapters implement ``ReadingStore``:

- ``InMemoryReadingStore`` for local runs and tests
- ``DynamoDBReadingStore`` backed by two DynamoDB tables (readings keyed by
  ``sourceName``/``ts``, sources keyed by ``name``)

Every call takes an optional ``deadline`` (a ``time.monotonic()`` instant).
A call made after its deadline raises ``StoreTimeoutError``.
"""

import threading
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

import boto3
from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Key
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from meterdata.common import TIMESTAMP_FORMAT
from meterdata.config import AWS_REGION, READINGS_TABLE, SOURCES_TABLE, STORE_BACKEND, STORE_TIMEOUT_SECONDS
from meterdata.models import Reading, Source

logger = Logger(service="reading-store", child=True)


class StoreError(Exception):
    """Base class for store failures."""


class NotFoundError(StoreError):
    """The requested source or reading does not exist."""


class AlreadyExistsError(StoreError):
    """A source or reading with the same key is already stored."""


class StoreUnavailableError(StoreError):
    """The store could not be reached or rejected the request."""


class StoreTimeoutError(StoreUnavailableError):
    """The call's deadline expired."""


def check_deadline(deadline: float | None, operation: str) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise StoreTimeoutError(f"Deadline expired before {operation}")


def deadline_after(seconds: float | None) -> float | None:
    """Deadline ``seconds`` from now, or None for no deadline."""
    if seconds is None:
        return None
    return time.monotonic() + seconds


class ReadingStore(Protocol):
    def ping(self, deadline: float | None = None) -> None: ...

    def get_source(self, name: str, deadline: float | None = None) -> Source: ...

    def get_sources(self, deadline: float | None = None) -> list[Source]: ...

    def store_source(self, source: Source, overwrite: bool = False, deadline: float | None = None) -> None: ...

    def get_readings(
        self, source_name: str, start: datetime, end: datetime, deadline: float | None = None
    ) -> list[Reading]: ...

    def store_reading(self, reading: Reading, overwrite: bool = False, deadline: float | None = None) -> None: ...

    def delete_reading(self, source_name: str, timestamp: datetime, deadline: float | None = None) -> None: ...


class InMemoryReadingStore:
    """Thread-safe dict-backed store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sources: dict[str, Source] = {}
        self._readings: dict[str, dict[datetime, Reading]] = {}

    def ping(self, deadline: float | None = None) -> None:
        check_deadline(deadline, "ping")

    def get_source(self, name: str, deadline: float | None = None) -> Source:
        check_deadline(deadline, "get_source")
        with self._lock:
            source = self._sources.get(name)
        if source is None:
            raise NotFoundError(f"Source not found: {name}")
        return Source(name=source.name, properties=dict(source.properties))

    def get_sources(self, deadline: float | None = None) -> list[Source]:
        check_deadline(deadline, "get_sources")
        with self._lock:
            sources = list(self._sources.values())
        return [Source(name=s.name, properties=dict(s.properties)) for s in sources]

    def store_source(self, source: Source, overwrite: bool = False, deadline: float | None = None) -> None:
        check_deadline(deadline, "store_source")
        with self._lock:
            if not overwrite and source.name in self._sources:
                raise AlreadyExistsError(f"Source already exists: {source.name}")
            self._sources[source.name] = Source(name=source.name, properties=dict(source.properties))

    def get_readings(
        self, source_name: str, start: datetime, end: datetime, deadline: float | None = None
    ) -> list[Reading]:
        check_deadline(deadline, "get_readings")
        with self._lock:
            readings = list(self._readings.get(source_name, {}).values())
        return sorted((r for r in readings if start <= r.timestamp <= end), key=lambda r: r.timestamp)

    def store_reading(self, reading: Reading, overwrite: bool = False, deadline: float | None = None) -> None:
        check_deadline(deadline, "store_reading")
        with self._lock:
            series = self._readings.setdefault(reading.source_name, {})
            if not overwrite and reading.timestamp in series:
                raise AlreadyExistsError(f"Reading already exists: {reading.source_name} {reading.timestamp}")
            series[reading.timestamp] = reading

    def delete_reading(self, source_name: str, timestamp: datetime, deadline: float | None = None) -> None:
        check_deadline(deadline, "delete_reading")
        with self._lock:
            series = self._readings.get(source_name, {})
            if timestamp not in series:
                raise NotFoundError(f"Reading not found: {source_name} {timestamp}")
            del series[timestamp]


# ---------------------- DynamoDB ---------------------- #


def _plain(value: Any) -> Any:
    """Convert DynamoDB Decimals back to ints/floats."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


def reading_to_item(reading: Reading) -> dict[str, Any]:
    return {
        "sourceName": reading.source_name,
        "ts": reading.timestamp.strftime(TIMESTAMP_FORMAT),
        "mtuId": reading.mtu_id,
        "cumulativeEnergy": reading.cumulative_energy,
        "rawFields": dict(reading.raw_fields),
        "derived": dict(reading.derived),
    }


def item_to_reading(item: dict[str, Any]) -> Reading:
    item = _plain(item)
    return Reading(
        source_name=item["sourceName"],
        mtu_id=item.get("mtuId", ""),
        timestamp=datetime.strptime(item["ts"], TIMESTAMP_FORMAT),
        cumulative_energy=int(item["cumulativeEnergy"]),
        raw_fields={k: str(v) for k, v in item.get("rawFields", {}).items()},
        derived={k: str(v) for k, v in item.get("derived", {}).items()},
    )


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


class DynamoDBReadingStore:
    """Store backed by a readings table and a sources table."""

    def __init__(
        self,
        readings_table: str = READINGS_TABLE,
        sources_table: str = SOURCES_TABLE,
        region_name: str = AWS_REGION,
        timeout_seconds: float = STORE_TIMEOUT_SECONDS,
    ) -> None:
        config = Config(connect_timeout=timeout_seconds, read_timeout=timeout_seconds, retries={"max_attempts": 3})
        dynamodb = boto3.resource("dynamodb", region_name=region_name, config=config)
        self.readings = dynamodb.Table(readings_table)
        self.sources = dynamodb.Table(sources_table)

    def ping(self, deadline: float | None = None) -> None:
        check_deadline(deadline, "ping")
        try:
            self.readings.load()
            self.sources.load()
        except (ClientError, BotoCoreError) as e:
            raise StoreUnavailableError(f"Store not reachable: {e}") from e

    def get_source(self, name: str, deadline: float | None = None) -> Source:
        check_deadline(deadline, "get_source")
        try:
            response = self.sources.get_item(Key={"name": name})
        except (ClientError, BotoCoreError) as e:
            raise StoreUnavailableError(f"Failed to get source {name}: {e}") from e

        item = response.get("Item")
        if item is None:
            raise NotFoundError(f"Source not found: {name}")
        return Source(name=item["name"], properties={k: str(v) for k, v in _plain(item.get("properties", {})).items()})

    def get_sources(self, deadline: float | None = None) -> list[Source]:
        check_deadline(deadline, "get_sources")
        try:
            response = self.sources.scan()
            items = response.get("Items", [])

            # Handle pagination for large datasets
            while "LastEvaluatedKey" in response:
                check_deadline(deadline, "get_sources")
                response = self.sources.scan(ExclusiveStartKey=response["LastEvaluatedKey"])
                items.extend(response.get("Items", []))
        except (ClientError, BotoCoreError) as e:
            raise StoreUnavailableError(f"Failed to list sources: {e}") from e

        return [
            Source(name=item["name"], properties={k: str(v) for k, v in _plain(item.get("properties", {})).items()})
            for item in items
        ]

    def store_source(self, source: Source, overwrite: bool = False, deadline: float | None = None) -> None:
        check_deadline(deadline, "store_source")
        kwargs: dict[str, Any] = {"Item": {"name": source.name, "properties": dict(source.properties)}}
        if not overwrite:
            kwargs["ConditionExpression"] = "attribute_not_exists(#n)"
            kwargs["ExpressionAttributeNames"] = {"#n": "name"}
        try:
            self.sources.put_item(**kwargs)
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise AlreadyExistsError(f"Source already exists: {source.name}") from e
            raise StoreUnavailableError(f"Failed to store source {source.name}: {e}") from e
        except BotoCoreError as e:
            raise StoreUnavailableError(f"Failed to store source {source.name}: {e}") from e

    def get_readings(
        self, source_name: str, start: datetime, end: datetime, deadline: float | None = None
    ) -> list[Reading]:
        check_deadline(deadline, "get_readings")
        if start > end:
            return []

        condition = Key("sourceName").eq(source_name) & Key("ts").between(
            start.strftime(TIMESTAMP_FORMAT), end.strftime(TIMESTAMP_FORMAT)
        )
        try:
            response = self.readings.query(KeyConditionExpression=condition, ScanIndexForward=True)
            items = response.get("Items", [])

            while "LastEvaluatedKey" in response:
                check_deadline(deadline, "get_readings")
                response = self.readings.query(
                    KeyConditionExpression=condition,
                    ScanIndexForward=True,
                    ExclusiveStartKey=response["LastEvaluatedKey"],
                )
                items.extend(response.get("Items", []))
        except (ClientError, BotoCoreError) as e:
            raise StoreUnavailableError(f"Failed to get readings for {source_name}: {e}") from e

        return [item_to_reading(item) for item in items]

    def store_reading(self, reading: Reading, overwrite: bool = False, deadline: float | None = None) -> None:
        check_deadline(deadline, "store_reading")
        kwargs: dict[str, Any] = {"Item": reading_to_item(reading)}
        if not overwrite:
            kwargs["ConditionExpression"] = "attribute_not_exists(ts)"
        try:
            self.readings.put_item(**kwargs)
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise AlreadyExistsError(f"Reading already exists: {reading.source_name} {reading.timestamp}") from e
            raise StoreUnavailableError(f"Failed to store reading for {reading.source_name}: {e}") from e
        except BotoCoreError as e:
            raise StoreUnavailableError(f"Failed to store reading for {reading.source_name}: {e}") from e

    def delete_reading(self, source_name: str, timestamp: datetime, deadline: float | None = None) -> None:
        check_deadline(deadline, "delete_reading")
        try:
            self.readings.delete_item(
                Key={"sourceName": source_name, "ts": timestamp.strftime(TIMESTAMP_FORMAT)},
                ConditionExpression="attribute_exists(ts)",
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise NotFoundError(f"Reading not found: {source_name} {timestamp}") from e
            raise StoreUnavailableError(f"Failed to delete reading for {source_name}: {e}") from e
        except BotoCoreError as e:
            raise StoreUnavailableError(f"Failed to delete reading for {source_name}: {e}") from e


# Store singleton (lazy initialization)
_store: ReadingStore | None = None


def get_store(backend: str = STORE_BACKEND) -> ReadingStore:
    """Get the configured store with lazy initialization."""
    global _store
    if _store is None:
        if backend == "dynamodb":
            _store = DynamoDBReadingStore()
        elif backend == "memory":
            _store = InMemoryReadingStore()
        else:
            raise ValueError(f"Unknown store backend: {backend}")
        logger.info("Initialised reading store", extra={"backend": backend})
    return _store
