"""Sequential, pausable reading of stored files.

A :class:`FileReader` loads the file record, maps an optional byte range onto
chunk indices and then loads the chunks one at a time in ascending order,
handing each one to the consumer. The consumer applies backpressure with
:meth:`FileReader.pause` and :meth:`FileReader.resume`; the reader checks the
pause flag before every chunk load.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from enum import Enum
from typing import TYPE_CHECKING, Any

import anyio

from . import ranges
from .errors import BinaryStoreError, InvalidRange, MissingChunk, NotFound, ReadTimeout
from .models import FileReadInfo, ReadResult

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from types import TracebackType
    from uuid import UUID

    from anyio.abc import TaskGroup

    from .manager import ChunkStore, FileMetadataStore
    from .models import ContentRange, FileInfo
    from .ranges import RangeInfo

LOG = logging.getLogger("binstore.reader")


class ReaderState(str, Enum):
    INIT = "init"
    STREAMING = "streaming"
    PAUSED = "paused"
    DONE = "done"
    NOT_FOUND = "not_found"
    ERROR = "error"


_TERMINAL_STATES = {
    ReadResult.OK: ReaderState.DONE,
    ReadResult.NOT_FOUND: ReaderState.NOT_FOUND,
    ReadResult.ERROR: ReaderState.ERROR,
}


class FileReader:
    """Handle of one read of a stored file.

    Consumers register callbacks with ``on_file``, ``on_data``, ``on_exception``
    and ``on_end`` and drive the reader with :meth:`run` or ``async with``, or
    pull the data with :meth:`iter_data`. A missing chunk ends a full read with
    ``ReadResult.OK`` but fails a range read with :class:`MissingChunk`.
    """

    def __init__(
        self,
        files: FileMetadataStore,
        chunks: ChunkStore,
        file_id: UUID,
        content_range: ContentRange | None = None,
        idle_timeout: float | None = None,
    ):
        self.file_id = file_id
        self.content_range = content_range
        self._files = files
        self._chunks = chunks
        self._idle_timeout = idle_timeout

        self._state = ReaderState.INIT
        self._result: ReadResult | None = None
        self._exception: BaseException | None = None
        self._file: FileReadInfo | None = None
        self._file_info: FileInfo | None = None
        self._range_info: RangeInfo | None = None
        self._opened = False
        self._running = False

        self._paused = False
        self._resumed: anyio.Event | None = None
        self._finished: anyio.Event | None = None
        self._task_group: TaskGroup | None = None

        self._file_handler: Callable[[FileReadInfo], Any] | None = None
        self._data_handler: Callable[[bytes], Any] | None = None
        self._exception_handler: Callable[[BaseException], Any] | None = None
        self._end_handler: Callable[[ReadResult], Any] | None = None

    def on_file(self, handler: Callable[[FileReadInfo], Any]) -> FileReader:
        self._file_handler = handler
        return self

    def on_data(self, handler: Callable[[bytes], Any]) -> FileReader:
        self._data_handler = handler
        return self

    def on_exception(self, handler: Callable[[BaseException], Any]) -> FileReader:
        self._exception_handler = handler
        return self

    def on_end(self, handler: Callable[[ReadResult], Any]) -> FileReader:
        self._end_handler = handler
        return self

    @property
    def state(self) -> ReaderState:
        return self._state

    @property
    def result(self) -> ReadResult | None:
        return self._result

    @property
    def exception(self) -> BaseException | None:
        return self._exception

    @property
    def file(self) -> FileReadInfo | None:
        return self._file

    @property
    def file_info(self) -> FileInfo | None:
        """The loaded file record, set even when the range turns out invalid."""
        return self._file_info

    @property
    def range_info(self) -> RangeInfo | None:
        return self._range_info

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def terminal(self) -> bool:
        return self._result is not None

    def pause(self) -> None:
        if self.terminal:
            return
        self._paused = True
        if self._state is ReaderState.STREAMING:
            self._state = ReaderState.PAUSED

    def resume(self) -> None:
        if self.terminal:
            return
        self._paused = False
        if self._state is ReaderState.PAUSED:
            self._state = ReaderState.STREAMING
        if self._resumed is not None:
            self._resumed.set()
            self._resumed = None

    async def open(self) -> FileReadInfo | None:
        """Load the file record and resolve the range.

        Emits the file event on success. Returns None when the read already
        ended, either ``NOT_FOUND`` or ``ERROR``.
        """
        if self._opened:
            return self._file
        self._opened = True

        try:
            file_info = await self._files.load(self.file_id)
        except BinaryStoreError as error:
            LOG.error("error loading file %s", self.file_id, exc_info=error)
            self._fail(error)
            return None

        if file_info is None:
            LOG.debug("file %s not found", self.file_id)
            self._end(ReadResult.NOT_FOUND)
            return None

        self._file_info = file_info
        if self.content_range is None:
            read_info = FileReadInfo(file=file_info)
        else:
            try:
                self._range_info = ranges.compute(self.content_range, file_info)
            except InvalidRange as error:
                LOG.debug("invalid range for file %s: %s", self.file_id, error)
                self._fail(error)
                return None
            read_info = FileReadInfo(
                file=file_info, range=self._range_info.as_content_range()
            )

        self._file = read_info
        if not self._call(self._file_handler, read_info):
            return None
        return read_info

    async def run(self) -> ReadResult:
        """Read the file to its end and return the terminal result."""
        self._start()
        try:
            if not self._opened:
                await self.open()
            if not self.terminal:
                async with aclosing(self._chunk_data()) as chunks:
                    async for data in chunks:
                        if not self._call(self._data_handler, data):
                            break
        except anyio.get_cancelled_exc_class():
            self._end(ReadResult.ERROR)
            raise

        assert self._result is not None
        return self._result

    async def wait(self) -> ReadResult:
        """Wait until the read reaches a terminal state."""
        if self._result is None:
            if self._finished is None:
                self._finished = anyio.Event()
            await self._finished.wait()
        assert self._result is not None
        return self._result

    async def iter_data(self) -> AsyncIterator[bytes]:
        """Yield the data of the read, loading a chunk only when it is asked for.

        Closing the iterator before the end stops the read with ``ERROR``.

        Raises:
            NotFound: If the file does not exist.
            BinaryStoreError: The error that ended the read.
        """
        self._start()
        try:
            if not self._opened:
                await self.open()
            if not self.terminal:
                async with aclosing(self._chunk_data()) as chunks:
                    async for data in chunks:
                        if not self._call(self._data_handler, data):
                            break
                        yield data
        finally:
            self._end(ReadResult.ERROR)

        if self._result is ReadResult.NOT_FOUND:
            msg = f"file {self.file_id} not found"
            raise NotFound(msg)
        if self._result is ReadResult.ERROR and self._exception is not None:
            raise self._exception

    async def __aenter__(self) -> FileReader:
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        self._task_group = task_group
        task_group.start_soon(self.run)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        task_group, self._task_group = self._task_group, None
        assert task_group is not None
        if exc_type is not None:
            task_group.cancel_scope.cancel()
        await task_group.__aexit__(None, None, None)

    def _start(self) -> None:
        if self._running:
            msg = "reader is already running"
            raise RuntimeError(msg)
        self._running = True

    async def _chunk_data(self) -> AsyncIterator[bytes]:
        file_info = self._file_info
        range_info = self._range_info
        assert file_info is not None

        if range_info is None:
            n, last = 0, file_info.chunk_count - 1
        else:
            n, last = range_info.start_chunk, range_info.end_chunk
        self._state = ReaderState.PAUSED if self._paused else ReaderState.STREAMING

        while n <= last:
            try:
                await self._wait_while_paused()
            except TimeoutError:
                LOG.warning(
                    "reader for file %s idle for %ss, giving up",
                    file_info.id,
                    self._idle_timeout,
                )
                msg = f"reader for file {file_info.id} was not resumed in time"
                self._fail(ReadTimeout(msg))
                return

            try:
                chunk = await self._chunks.load(file_info.id, n)
            except BinaryStoreError as error:
                LOG.error(
                    "error loading chunk %d of file %s", n, file_info.id, exc_info=error
                )
                self._fail(error)
                return

            if chunk is None:
                if range_info is None:
                    LOG.debug("no chunk %d for file %s, ending read", n, file_info.id)
                    break
                LOG.warning("chunk %d of file %s is missing", n, file_info.id)
                self._fail(MissingChunk(file_info.id, n))
                return

            if range_info is None:
                yield chunk.data
            else:
                yield range_info.extract_required_bytes(n, chunk.data)
            n += 1

        self._end(ReadResult.OK)

    async def _wait_while_paused(self) -> None:
        while self._paused:
            self._state = ReaderState.PAUSED
            if self._resumed is None:
                self._resumed = anyio.Event()
            LOG.debug("reader for file %s paused", self.file_id)
            with anyio.fail_after(self._idle_timeout):
                await self._resumed.wait()
        self._state = ReaderState.STREAMING

    def _call(self, handler: Callable[[Any], Any] | None, value: Any) -> bool:
        if handler is None:
            return True
        try:
            handler(value)
        except Exception as error:
            LOG.exception("consumer of file %s failed", self.file_id)
            self._fail(error)
            return False
        return True

    def _fail(self, error: BaseException) -> None:
        if self.terminal:
            return
        self._exception = error
        self._finish(ReadResult.ERROR)
        self._notify(self._exception_handler, error)
        self._notify(self._end_handler, ReadResult.ERROR)

    def _end(self, result: ReadResult) -> None:
        if self.terminal:
            return
        self._finish(result)
        self._notify(self._end_handler, result)

    def _finish(self, result: ReadResult) -> None:
        self._result = result
        self._state = _TERMINAL_STATES[result]
        self._paused = False
        LOG.debug("read of file %s ended: %s", self.file_id, result.value)
        if self._finished is not None:
            self._finished.set()

    def _notify(self, handler: Callable[[Any], Any] | None, value: Any) -> None:
        # Runs once the read is terminal.
        if handler is None:
            return
        try:
            handler(value)
        except Exception:
            LOG.exception("handler for read of file %s failed", self.file_id)


class BinaryStoreReader:
    """Creates readers over a file store and a chunk store."""

    def __init__(
        self,
        files: FileMetadataStore,
        chunks: ChunkStore,
        idle_timeout: float | None = None,
    ):
        self._files = files
        self._chunks = chunks
        self._idle_timeout = idle_timeout

    def read(self, file_id: UUID) -> FileReader:
        return FileReader(
            self._files, self._chunks, file_id, idle_timeout=self._idle_timeout
        )

    def read_range(self, file_id: UUID, content_range: ContentRange) -> FileReader:
        return FileReader(
            self._files,
            self._chunks,
            file_id,
            content_range,
            idle_timeout=self._idle_timeout,
        )
