from __future__ import annotations


class BinaryStoreError(Exception):
    """Base class for binary store errors."""


class NotFound(BinaryStoreError):
    """A file or chunk record is absent."""


class MissingChunk(NotFound):
    """A chunk inside a resolved read range has no record."""

    def __init__(self, file_id: object, num: int):
        super().__init__(f"Error while reading chunk {num} of file {file_id}: missing")
        self.file_id = file_id
        self.num = num


class InvalidRange(BinaryStoreError, ValueError):
    """The requested byte range cannot be mapped onto the file's chunks."""


class BackendFailure(BinaryStoreError):
    """The backend failed to execute an operation.

    The original exception is kept on ``cause`` and chained as ``__cause__``.
    """

    def __init__(self, message: str, cause: BaseException):
        super().__init__(f"{message}: {cause}")
        self.cause = cause


class DecodeFailure(BinaryStoreError):
    """A stored record could not be rebuilt into a model."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message if cause is None else f"{message}: {cause}")
        self.cause = cause


class ReadTimeout(BinaryStoreError):
    """A paused reader was not resumed within its idle timeout."""
