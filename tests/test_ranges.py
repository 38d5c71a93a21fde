"""Unit tests for range to chunk mapping."""

from __future__ import annotations

import uuid

import pytest
from binstore import ContentRange, FileInfo, InvalidRange
from binstore.ranges import (
    MAX_INT32,
    compute,
    content_range_header,
    parse_range_header,
    parse_suffix_length,
    suffix_range,
    unsatisfied_range_header,
)


def _file(length: int, chunk_size: int) -> FileInfo:
    return FileInfo(id=uuid.uuid4(), length=length, chunk_size=chunk_size)


def _content(length: int) -> bytes:
    return bytes(i % 251 for i in range(length))


def _read(content: bytes, chunk_size: int, content_range: ContentRange) -> bytes:
    info = compute(content_range, _file(len(content), chunk_size))
    parts = []
    for n in range(info.start_chunk, info.end_chunk + 1):
        chunk = content[n * chunk_size : (n + 1) * chunk_size]
        parts.append(info.extract_required_bytes(n, chunk))
    return b"".join(parts)


class TestCompute:
    """Test range resolution."""

    def test_range_spanning_two_chunks(self):
        info = compute(ContentRange(from_=50, to=149), _file(250, 100))
        assert info.start_chunk == 0
        assert info.end_chunk == 1
        assert info.start_pos == 50
        assert info.end_pos == 49
        assert (info.from_, info.to) == (50, 149)

    def test_unspecified_to_resolves_to_file_end(self):
        info = compute(ContentRange(from_=10), _file(250, 100))
        assert info.to == 249
        assert info.end_chunk == 2
        assert info.end_pos == 49

    @pytest.mark.parametrize("to", [249, 250, 10_000, -1])
    def test_large_or_negative_to_is_clamped(self, to):
        info = compute(ContentRange(from_=0, to=to), _file(250, 100))
        assert info.to == 249

    def test_single_byte_range(self):
        info = compute(ContentRange(from_=120, to=120), _file(250, 100))
        assert (info.start_chunk, info.end_chunk) == (1, 1)
        assert (info.start_pos, info.end_pos) == (20, 20)
        assert info.length == 1

    def test_as_content_range(self):
        resolved = compute(ContentRange(from_=5), _file(30, 7)).as_content_range()
        assert resolved == ContentRange(from_=5, to=29)

    def test_zero_chunk_size_is_invalid(self):
        file_info = FileInfo.model_construct(id=uuid.uuid4(), length=10, chunk_size=0)
        with pytest.raises(InvalidRange, match="chunk size"):
            compute(ContentRange(from_=0), file_info)

    def test_start_past_end_is_invalid(self):
        with pytest.raises(InvalidRange):
            compute(ContentRange(from_=100, to=50), _file(250, 100))

    def test_start_past_file_end_is_invalid(self):
        with pytest.raises(InvalidRange):
            compute(ContentRange(from_=250), _file(250, 100))

    def test_negative_start_is_invalid(self):
        with pytest.raises(InvalidRange, match="negative"):
            compute(ContentRange(from_=-1), _file(250, 100))

    def test_chunk_index_overflow_is_invalid(self):
        length = (MAX_INT32 + 10) * 2
        with pytest.raises(InvalidRange, match="out of range"):
            compute(ContentRange(from_=length - 2), _file(length, 1))

    def test_invalid_range_is_a_value_error(self):
        with pytest.raises(ValueError, match="past range end"):
            compute(ContentRange(from_=9, to=3), _file(20, 4))


class TestExtractRequiredBytes:
    """Test per-chunk extraction rules."""

    def test_start_chunk_only(self):
        info = compute(ContentRange(from_=3, to=12), _file(20, 5))
        assert info.extract_required_bytes(0, b"abcde") == b"de"

    def test_end_chunk_only(self):
        info = compute(ContentRange(from_=3, to=12), _file(20, 5))
        assert info.extract_required_bytes(2, b"klmno") == b"klm"

    def test_start_and_end_chunk(self):
        info = compute(ContentRange(from_=6, to=8), _file(20, 5))
        assert info.extract_required_bytes(1, b"fghij") == b"ghi"

    def test_middle_chunk_is_returned_whole(self):
        info = compute(ContentRange(from_=3, to=12), _file(20, 5))
        chunk = b"fghij"
        assert info.extract_required_bytes(1, chunk) is chunk

    @pytest.mark.parametrize(
        ("length", "chunk_size", "from_", "to"),
        [
            (250, 100, 50, 149),
            (250, 100, 0, None),
            (250, 100, 200, 249),
            (250, 100, 99, 100),
            (250, 100, 100, 199),
            (1, 1, 0, 0),
            (1000, 7, 13, 997),
            (1000, 1000, 500, 501),
            (64, 8, 63, None),
        ],
    )
    def test_concatenation_reproduces_range(self, length, chunk_size, from_, to):
        content = _content(length)
        expected_to = length - 1 if to is None else to
        result = _read(content, chunk_size, ContentRange(from_=from_, to=to))
        assert result == content[from_ : expected_to + 1]

    def test_every_range_of_a_small_file(self):
        content = _content(23)
        for from_ in range(23):
            for to in range(from_, 23):
                assert _read(content, 4, ContentRange(from_=from_, to=to)) == (
                    content[from_ : to + 1]
                )


class TestParseRangeHeader:
    """Test HTTP Range header parsing."""

    def test_missing_header(self):
        assert parse_range_header(None) is None
        assert parse_range_header("") is None

    def test_closed_range(self):
        assert parse_range_header("bytes=0-100") == ContentRange(from_=0, to=100)

    def test_open_range(self):
        assert parse_range_header("bytes=512-") == ContentRange(from_=512)

    def test_first_of_multiple_ranges(self):
        assert parse_range_header("bytes=1-2, 5-9") == ContentRange(from_=1, to=2)

    @pytest.mark.parametrize(
        "header", ["items=0-1", "bytes=-500", "bytes=abc-def", "bytes=12"]
    )
    def test_unsupported_or_suffix_headers_are_not_parsed(self, header):
        assert parse_range_header(header) is None

    def test_content_range_header(self):
        header = content_range_header(ContentRange(from_=50, to=149), 250)
        assert header == "bytes 50-149/250"

    def test_unsatisfied_range_header(self):
        assert unsatisfied_range_header(250) == "bytes */250"


class TestSuffixRange:
    """Test ``bytes=-N`` ranges, resolved once the file length is known."""

    def test_parse_suffix_length(self):
        assert parse_suffix_length("bytes=-500") == 500
        assert parse_suffix_length("bytes = -7, 0-1") == 7

    @pytest.mark.parametrize(
        "header", [None, "bytes=0-10", "bytes=5-", "bytes=-", "bytes=-x", "items=-5"]
    )
    def test_other_headers_are_not_suffixes(self, header):
        assert parse_suffix_length(header) is None

    def test_suffix_range_covers_file_end(self):
        assert suffix_range(50, 250) == ContentRange(from_=200, to=249)

    def test_suffix_longer_than_file_is_whole_file(self):
        assert suffix_range(1000, 250) == ContentRange(from_=0, to=249)

    def test_empty_suffix_is_invalid(self):
        with pytest.raises(InvalidRange, match="empty"):
            suffix_range(0, 250)
