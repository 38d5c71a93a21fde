"""Pure planning logic for range reads.

No IO; deterministic mapping from a byte range and a file's chunk size to
chunk indices and the slice of each chunk that belongs to the range.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .errors import InvalidRange
from .models import ContentRange

if TYPE_CHECKING:
    from .models import FileInfo

# Chunk indices and in-chunk positions are stored as signed 32-bit integers.
MAX_INT32 = 2**31 - 1


def _checked_int32(value: int, name: str) -> int:
    if value > MAX_INT32:
        msg = f"{name} {value} is out of range"
        raise InvalidRange(msg)
    return value


@dataclass(frozen=True)
class RangeInfo:
    start_chunk: int
    end_chunk: int
    start_pos: int
    end_pos: int
    from_: int
    to: int

    def extract_required_bytes(self, chunk_num: int, chunk: bytes) -> bytes:
        """Return the part of ``chunk`` that falls inside the range.

        Args:
            chunk_num: Index of the chunk within the file.
            chunk: Raw bytes of the whole chunk.

        Returns:
            ``chunk[start_pos:]`` for the first chunk of a multi-chunk range,
            ``chunk[:end_pos + 1]`` for the last one, ``chunk[start_pos:end_pos + 1]``
            when the range fits in one chunk, and the whole chunk otherwise.
        """
        is_start = chunk_num == self.start_chunk
        is_end = chunk_num == self.end_chunk
        if is_start and not is_end:
            return chunk[self.start_pos :]
        if is_end and not is_start:
            return chunk[: self.end_pos + 1]
        if is_start and is_end:
            return chunk[self.start_pos : self.end_pos + 1]
        return chunk

    def as_content_range(self) -> ContentRange:
        """Return the resolved range with ``to`` clamped to the file end."""
        return ContentRange(from_=self.from_, to=self.to)

    @property
    def length(self) -> int:
        return self.to - self.from_ + 1


def compute(content_range: ContentRange, file_info: FileInfo) -> RangeInfo:
    """Map ``content_range`` onto the chunks of ``file_info``.

    Raises:
        InvalidRange: If the chunk size is not positive, the resolved start lies
            past the resolved end, or an index does not fit a 32-bit integer.
    """
    chunk_size = file_info.chunk_size
    if chunk_size <= 0:
        msg = f"chunk size must be positive, got {chunk_size}"
        raise InvalidRange(msg)

    from_ = content_range.from_
    if from_ < 0:
        msg = f"range start must not be negative, got {from_}"
        raise InvalidRange(msg)

    to = file_info.length - 1
    if content_range.to is not None and 0 <= content_range.to < to:
        to = content_range.to
    if from_ > to:
        msg = f"range start {from_} is past range end {to}"
        raise InvalidRange(msg)

    start_chunk = _checked_int32(from_ // chunk_size, "start chunk")
    end_chunk = _checked_int32(to // chunk_size, "end chunk")
    return RangeInfo(
        start_chunk=start_chunk,
        end_chunk=end_chunk,
        start_pos=_checked_int32(from_ - start_chunk * chunk_size, "start position"),
        end_pos=_checked_int32(to - end_chunk * chunk_size, "end position"),
        from_=from_,
        to=to,
    )


def _first_range(range_header: str | None) -> tuple[str, str] | None:
    if not range_header:
        return None
    unit, sep, ranges = range_header.partition("=")
    if not sep or unit.strip().lower() != "bytes":
        return None
    r = ranges.split(",")[0].strip()
    if "-" not in r:
        return None
    start_str, end_str = r.split("-", 1)
    return start_str.strip(), end_str.strip()


def parse_range_header(range_header: str | None) -> ContentRange | None:
    """Parse an HTTP ``Range`` header into a ContentRange.

    Only the first range of the header is used. Suffix ranges (see
    :func:`parse_suffix_length`), other units and malformed values return None.
    """
    bounds = _first_range(range_header)
    if bounds is None or not bounds[0]:
        return None
    start_str, end_str = bounds
    try:
        start = int(start_str)
        end = int(end_str) if end_str else None
    except ValueError:
        return None
    else:
        return ContentRange(from_=start, to=end)


def parse_suffix_length(range_header: str | None) -> int | None:
    """Return N for a ``bytes=-N`` header, None for anything else."""
    bounds = _first_range(range_header)
    if bounds is None or bounds[0] or not bounds[1]:
        return None
    try:
        return int(bounds[1])
    except ValueError:
        return None


def suffix_range(suffix_length: int, total_size: int) -> ContentRange:
    """Resolve the last ``suffix_length`` bytes of a ``total_size`` byte file.

    Raises:
        InvalidRange: If ``suffix_length`` is not positive.
    """
    if suffix_length <= 0:
        msg = f"suffix range of {suffix_length} bytes is empty"
        raise InvalidRange(msg)
    return ContentRange(from_=max(total_size - suffix_length, 0), to=total_size - 1)


def content_range_header(content_range: ContentRange, total_size: int) -> str:
    to = content_range.to if content_range.to is not None else total_size - 1
    return f"bytes {content_range.from_}-{to}/{total_size}"


def unsatisfied_range_header(total_size: int) -> str:
    return f"bytes */{total_size}"
