from __future__ import annotations

import math
import time
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


def _now_millis() -> int:
    return int(time.time() * 1000)


class FileInfo(BaseModel):
    """Metadata record of a stored file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: UUID
    length: int = Field(ge=1)
    chunk_size: int = Field(ge=1, alias="chunkSize")
    upload_date: int = Field(default_factory=_now_millis, alias="uploadDate")
    file_name: str | None = Field(default=None, alias="fileName")
    content_type: str | None = Field(default=None, alias="contentType")
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def chunk_count(self) -> int:
        return math.ceil(self.length / self.chunk_size)

    def to_record(self) -> dict[str, Any]:
        """Return the persisted column mapping of this file."""
        return {
            "id": str(self.id),
            "length": self.length,
            "chunk_size": self.chunk_size,
            "upload_date": self.upload_date,
            "file_name": self.file_name,
            "content_type": self.content_type,
            "metadata": dict(self.metadata),
        }


class ChunkInfo(BaseModel):
    """A single chunk of a stored file."""

    model_config = ConfigDict(frozen=True)

    file_id: UUID
    num: int = Field(ge=0)
    data: bytes


class ContentRange(BaseModel):
    """Inclusive byte range of a read; ``to`` of None or negative means end of file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: int = Field(default=0, alias="from")
    to: int | None = None


class FileReadInfo(BaseModel):
    """Payload of the file event emitted before any chunk data."""

    model_config = ConfigDict(frozen=True)

    file: FileInfo
    range: ContentRange | None = None


class ReadResult(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    ERROR = "error"
