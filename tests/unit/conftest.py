"""Shared pytest fixtures for meterqc unit tests.

Provides an in-memory reading store, factories for readings and seeded
sources, AWS credentials for moto, and a mock Lambda context.
"""

import os
from collections.abc import Callable, Generator
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from meterdata.models import Reading, Source
from meterdata.store import InMemoryReadingStore

# ==================== Environment Fixtures ====================


@pytest.fixture(autouse=True)
def reset_env() -> Generator[None]:
    """Reset environment variables before each test."""
    original_env = os.environ.copy()

    os.environ["AWS_DEFAULT_REGION"] = "ap-southeast-2"
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["POWERTOOLS_METRICS_NAMESPACE"] = "test"

    yield

    os.environ.clear()
    os.environ.update(original_env)


# ==================== Store Fixtures ====================


@pytest.fixture
def store() -> InMemoryReadingStore:
    """Empty in-memory reading store."""
    return InMemoryReadingStore()


@pytest.fixture
def make_reading() -> Callable[..., Reading]:
    """Factory for readings with sensible defaults."""

    def _make(
        timestamp: datetime,
        value: int = 0,
        source_name: str = "source-1",
        mtu_id: str = "",
        **raw_fields: str,
    ) -> Reading:
        return Reading(
            source_name=source_name,
            mtu_id=mtu_id,
            timestamp=timestamp,
            cumulative_energy=value,
            raw_fields=dict(raw_fields),
        )

    return _make


@pytest.fixture
def seed_source(store: InMemoryReadingStore, make_reading: Callable[..., Reading]) -> Callable[..., Source]:
    """Factory that stores a source and its readings in the in-memory store.

    Readings are given as timestamps; values increase by 100 Wh per reading
    unless explicit values are passed.
    """

    def _seed(
        name: str,
        timestamps: list[datetime],
        values: list[int] | None = None,
        mtu_id: str = "",
        **properties: str,
    ) -> Source:
        source = Source(name=name, properties=dict(properties))
        store.store_source(source, overwrite=True)
        values = values if values is not None else [100 * (i + 1) for i in range(len(timestamps))]
        for ts, value in zip(timestamps, values, strict=True):
            store.store_reading(make_reading(ts, value, source_name=name, mtu_id=mtu_id))
        return source

    return _seed


# ==================== Lambda Context Fixtures ====================


@pytest.fixture
def mock_lambda_context() -> MagicMock:
    """Create a mock Lambda context for testing."""
    context = MagicMock()
    context.function_name = "test-function"
    context.memory_limit_in_mb = 256
    context.invoked_function_arn = "arn:aws:lambda:ap-southeast-2:123456789012:function:test"
    context.aws_request_id = "test-request-id"
    context.get_remaining_time_in_millis.return_value = 300000
    return context
