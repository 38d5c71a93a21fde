from __future__ import annotations

import os
import uuid
from typing import TYPE_CHECKING

import pytest
from binstore import BinaryStore, FileInfo, MemoryBackend, StoreMetrics
from prometheus_client import CollectorRegistry

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable, Generator

    from binstore.backend import Row, Statement


def _content(length: int) -> bytes:
    return bytes(i % 251 for i in range(length))


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
async def store(
    backend: MemoryBackend, registry: CollectorRegistry
) -> AsyncGenerator[BinaryStore]:
    """Create a started store over an in-memory backend."""
    store = BinaryStore(backend, metrics=StoreMetrics(registry))
    await store.startup()
    yield store
    await store.shutdown()


@pytest.fixture
def make_file() -> Callable[..., FileInfo]:
    def make(length: int = 250, chunk_size: int = 100, **kwargs) -> FileInfo:
        return FileInfo(
            id=kwargs.pop("id", uuid.uuid4()),
            length=length,
            chunk_size=chunk_size,
            file_name=kwargs.pop("file_name", "data.bin"),
            content_type=kwargs.pop("content_type", "application/octet-stream"),
            metadata=kwargs.pop("metadata", {"owner": "tests"}),
            **kwargs,
        )

    return make


@pytest.fixture
def content() -> Callable[[int], bytes]:
    """Return a factory of deterministic, non-repeating-per-chunk content."""
    return _content


@pytest.fixture
async def stored_file(
    store: BinaryStore, make_file: Callable[..., FileInfo]
) -> tuple[FileInfo, bytes]:
    """Write a 250 byte file split into chunks of 100 bytes."""
    file_info = make_file()
    data = _content(file_info.length)
    await store.write(file_info, data)
    return file_info, data


@pytest.fixture
def env_vars() -> Generator[Callable[[dict[str, str]], None]]:
    """Set environment variables for a test and restore them afterwards."""
    original_values: dict[str, str | None] = {}

    def apply(values: dict[str, str]) -> None:
        for key, value in values.items():
            original_values.setdefault(key, os.environ.get(key))
            os.environ[key] = value

    yield apply

    for key, original_value in original_values.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value


class FailingBackend(MemoryBackend):
    """Memory backend that raises for one table and operation."""

    def __init__(self, error: Exception, table: str, operation: str):
        super().__init__()
        self.error = error
        self.table = table
        self.operation = operation

    async def execute(self, statement: Statement) -> list[Row]:
        if statement.table == self.table and statement.operation == self.operation:
            raise self.error
        return await super().execute(statement)


@pytest.fixture
def failing_backend() -> type[FailingBackend]:
    return FailingBackend
