"""Chunked binary object store over an asynchronous key-value backend."""

from .backend import MemoryBackend, S3Backend, Statements
from .errors import (
    BackendFailure,
    BinaryStoreError,
    DecodeFailure,
    InvalidRange,
    MissingChunk,
    NotFound,
    ReadTimeout,
)
from .manager import BinaryStore, ChunkStore, FileMetadataStore
from .metrics import StoreMetrics
from .models import ChunkInfo, ContentRange, FileInfo, FileReadInfo, ReadResult
from .reader import BinaryStoreReader, FileReader, ReaderState
from .settings import StoreSettings

__all__ = [
    "BackendFailure",
    "BinaryStore",
    "BinaryStoreError",
    "BinaryStoreReader",
    "ChunkInfo",
    "ChunkStore",
    "ContentRange",
    "DecodeFailure",
    "FileInfo",
    "FileMetadataStore",
    "FileReadInfo",
    "FileReader",
    "InvalidRange",
    "MemoryBackend",
    "MissingChunk",
    "NotFound",
    "ReadResult",
    "ReadTimeout",
    "ReaderState",
    "S3Backend",
    "Statements",
    "StoreMetrics",
    "StoreSettings",
]
