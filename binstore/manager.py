from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from .backend import CHUNKS, FILES, Statements, create_backend
from .errors import BackendFailure, BinaryStoreError, DecodeFailure
from .metrics import StoreMetrics
from .models import ChunkInfo, FileInfo
from .reader import BinaryStoreReader
from .settings import DEFAULT_CHUNK_SIZE, load_settings_from_env

if TYPE_CHECKING:
    from collections.abc import Iterator
    from uuid import UUID

    from prometheus_client import CollectorRegistry

    from .backend import RecordBackend, Row, Statement
    from .models import ContentRange
    from .reader import FileReader
    from .settings import StoreSettings

LOG = logging.getLogger("binstore.manager")


async def _execute(
    backend: RecordBackend, statement: Statement, message: str
) -> list[Row]:
    try:
        return await backend.execute(statement)
    except BinaryStoreError:
        raise
    except Exception as error:
        raise BackendFailure(message, error) from error


class FileMetadataStore:
    """Stores and loads file records."""

    def __init__(
        self,
        backend: RecordBackend,
        statements: Statements,
        metrics: StoreMetrics,
    ):
        self._backend = backend
        self._statements = statements
        self._metrics = metrics

    async def store(self, file_info: FileInfo) -> None:
        statement = self._statements.store_file(file_info.to_record())
        with self._metrics.time_write(FILES):
            await _execute(
                self._backend, statement, f"failed to store file {file_info.id}"
            )
        LOG.debug("stored file %s (%d bytes)", file_info.id, file_info.length)

    async def load(self, file_id: UUID) -> FileInfo | None:
        statement = self._statements.load_file(str(file_id))
        with self._metrics.time_read(FILES):
            rows = await _execute(
                self._backend, statement, f"failed to load file {file_id}"
            )
            if not rows:
                return None
            return self._decode(file_id, rows[0])

    @staticmethod
    def _decode(file_id: UUID, row: Row) -> FileInfo:
        try:
            return FileInfo.model_validate(
                {**row, "id": file_id, "metadata": row.get("metadata") or {}}
            )
        except ValidationError as error:
            msg = f"file record {file_id} is malformed"
            raise DecodeFailure(msg, error) from error


class ChunkStore:
    """Stores and loads chunk records."""

    def __init__(
        self,
        backend: RecordBackend,
        statements: Statements,
        metrics: StoreMetrics,
    ):
        self._backend = backend
        self._statements = statements
        self._metrics = metrics

    async def store(self, chunk_info: ChunkInfo) -> None:
        statement = self._statements.store_chunk(
            str(chunk_info.file_id), chunk_info.num, chunk_info.data
        )
        with self._metrics.time_write(CHUNKS):
            await _execute(
                self._backend,
                statement,
                f"failed to store chunk {chunk_info.num} of file {chunk_info.file_id}",
            )

    async def load(self, file_id: UUID, num: int) -> ChunkInfo | None:
        statement = self._statements.load_chunk(str(file_id), num)
        with self._metrics.time_read(CHUNKS):
            rows = await _execute(
                self._backend,
                statement,
                f"failed to load chunk {num} of file {file_id}",
            )
            if not rows:
                return None
            data = rows[0].get("data")
            if not isinstance(data, (bytes, bytearray, memoryview)):
                msg = f"chunk {num} of file {file_id} has no binary data"
                raise DecodeFailure(msg)
            return ChunkInfo(file_id=file_id, num=num, data=bytes(data))


def split_chunks(content: bytes, chunk_size: int) -> Iterator[tuple[int, bytes]]:
    """Yield ``(num, data)`` for consecutive ``chunk_size`` slices of ``content``."""
    view = memoryview(content)
    for num, offset in enumerate(range(0, len(content), chunk_size)):
        yield num, bytes(view[offset : offset + chunk_size])


class BinaryStore:
    """Chunked binary object store over a key-value backend."""

    def __init__(
        self,
        backend: RecordBackend,
        *,
        statements: Statements | None = None,
        metrics: StoreMetrics | None = None,
        idle_timeout: float | None = None,
        default_chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.backend = backend
        self.metrics = metrics if metrics is not None else StoreMetrics()
        self.default_chunk_size = default_chunk_size
        statements = statements if statements is not None else Statements()
        self.files = FileMetadataStore(backend, statements, self.metrics)
        self.chunks = ChunkStore(backend, statements, self.metrics)
        self.reader = BinaryStoreReader(
            self.files, self.chunks, idle_timeout=idle_timeout
        )

    @classmethod
    def from_settings(
        cls,
        settings: StoreSettings,
        registry: CollectorRegistry | None = None,
        backend: RecordBackend | None = None,
    ) -> BinaryStore:
        return cls(
            backend if backend is not None else create_backend(settings),
            statements=Statements(settings.keyspace),
            metrics=StoreMetrics(registry),
            idle_timeout=settings.idle_timeout,
            default_chunk_size=settings.default_chunk_size,
        )

    @classmethod
    def from_env(cls, registry: CollectorRegistry | None = None) -> BinaryStore:
        """Create a BinaryStore configured from environment variables.

        Returns:
            BinaryStore using the backend selected by ``BINSTORE_BACKEND``.
        """
        return cls.from_settings(load_settings_from_env(), registry)

    async def startup(self) -> None:
        await self.backend.startup()

    async def shutdown(self) -> None:
        await self.backend.shutdown()

    async def store_file(self, file_info: FileInfo) -> None:
        await self.files.store(file_info)

    async def store_chunk(self, chunk_info: ChunkInfo) -> None:
        await self.chunks.store(chunk_info)

    async def load_file(self, file_id: UUID) -> FileInfo | None:
        return await self.files.load(file_id)

    async def load_chunk(self, file_id: UUID, num: int) -> ChunkInfo | None:
        return await self.chunks.load(file_id, num)

    def read(self, file_id: UUID) -> FileReader:
        return self.reader.read(file_id)

    def read_range(self, file_id: UUID, content_range: ContentRange) -> FileReader:
        return self.reader.read_range(file_id, content_range)

    async def write(self, file_info: FileInfo, content: bytes) -> None:
        """Store ``content`` as the chunks of ``file_info``, then the file record.

        Raises:
            ValueError: If ``content`` does not have ``file_info.length`` bytes.
        """
        if len(content) != file_info.length:
            msg = (
                f"content has {len(content)} bytes, "
                f"file {file_info.id} declares {file_info.length}"
            )
            raise ValueError(msg)
        for num, data in split_chunks(content, file_info.chunk_size):
            await self.chunks.store(ChunkInfo(file_id=file_info.id, num=num, data=data))
        await self.files.store(file_info)
        LOG.info(
            "wrote file %s (%d bytes, %d chunks)",
            file_info.id,
            file_info.length,
            file_info.chunk_count,
        )

