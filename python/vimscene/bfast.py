# python/vimscene/bfast.py
# BFast container reader and writer (array of named binary arrays)
# Exists as the stateless leaf parser every other VIM decoder recurses through
# RELEVANT FILES: python/vimscene/entities.py, python/vimscene/g3d.py, python/vimscene/vim.py, tests/test_bfast.py
"""BFast binary container.

Layout (little-endian)::

    header       8 x int32   [magic, 0, data_start, 0, data_end, 0, num_arrays, 0]
    descriptors  num_arrays x 4 x int32  [begin, 0, end, 0]
    data         buffers, the first being the NUL-joined list of names

Every field is a 64-bit integer on disk; the upper words must be zero.
Buffers returned by :func:`parse_bfast` are numpy ``uint8`` views into the
caller's buffer, so releasing the input invalidates them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from .errors import MalformedContainer

logger = logging.getLogger(__name__)

BFAST_MAGIC = 0xBFA5
HEADER_SIZE = 32
DESCRIPTOR_SIZE = 16
ALIGNMENT = 64

BufferLike = Union[bytes, bytearray, memoryview, np.ndarray]


@dataclass(frozen=True)
class BFastHeader:
    """Decoded BFast header."""
    magic: int
    data_start: int
    data_end: int
    num_arrays: int

    @classmethod
    def from_words(cls, words: np.ndarray, byte_length: int) -> "BFastHeader":
        header = cls(int(words[0]), int(words[2]), int(words[4]), int(words[6]))
        for pos in (1, 3, 5, 7):
            if words[pos] != 0:
                raise MalformedContainer(f"Expected 0 in byte position {pos * 4}")
        if header.magic != BFAST_MAGIC:
            raise MalformedContainer(f"Invalid BFast magic: {header.magic:#x}")
        if header.data_start <= HEADER_SIZE or header.data_start > byte_length:
            raise MalformedContainer("Data start is out of valid range")
        if header.data_end < header.data_start or header.data_end > byte_length:
            raise MalformedContainer("Data end is out of valid range")
        if header.num_arrays < 1:
            raise MalformedContainer("Expected at least one buffer containing the names")
        if HEADER_SIZE + header.num_arrays * DESCRIPTOR_SIZE > header.data_start:
            raise MalformedContainer("Array descriptors overlap the data region")
        return header


@dataclass(frozen=True)
class BFast:
    """A parsed container: ``names[i]`` labels ``buffers[i]``."""
    header: BFastHeader
    names: List[str]
    buffers: List[np.ndarray] = field(repr=False)

    def __len__(self) -> int:
        return len(self.buffers)

    def get(self, name: str) -> Optional[np.ndarray]:
        for current, buffer in zip(self.names, self.buffers):
            if current == name:
                return buffer
        return None

    def to_dict(self) -> Dict[str, np.ndarray]:
        """Name to buffer mapping; later duplicates win."""
        return dict(zip(self.names, self.buffers))


def _as_bytes_view(data: BufferLike) -> np.ndarray:
    if isinstance(data, np.ndarray):
        if data.dtype != np.uint8 or data.ndim != 1:
            data = np.ascontiguousarray(data).reshape(-1).view(np.uint8)
        return data
    return np.frombuffer(data, dtype=np.uint8)


def split_names(raw: np.ndarray, context: str = "names") -> List[str]:
    """Split a NUL-joined UTF-8 buffer, dropping exactly one trailing NUL."""
    if raw.size == 0:
        return []
    if raw[-1] != 0:
        raise MalformedContainer(f"Expected {context} buffer to end with a NUL byte")
    try:
        text = raw[:-1].tobytes().decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedContainer(f"Invalid UTF-8 in {context} buffer: {e}") from e
    return text.split("\0")


def parse_bfast(
    data: BufferLike,
    byte_offset: int = 0,
    byte_length: Optional[int] = None,
) -> BFast:
    """Parse a BFast container without copying any buffer.

    Parameters
    ----------
    data : bytes-like or uint8 ndarray
        Source bytes. Nested containers are parsed by passing a buffer
        returned from a previous call.
    byte_offset : int, default 0
        Start of the container within ``data``.
    byte_length : int, optional
        Container size; defaults to the rest of ``data``.

    Raises
    ------
    MalformedContainer
        On any header, descriptor, or name-table violation.
    """
    raw = _as_bytes_view(data)
    if byte_offset < 0 or byte_offset > raw.size:
        raise MalformedContainer("Byte offset is outside the input buffer")
    if byte_length is None:
        byte_length = raw.size - byte_offset
    if byte_length < 0 or byte_offset + byte_length > raw.size:
        raise MalformedContainer("Byte length is outside the input buffer")
    view = raw[byte_offset:byte_offset + byte_length]

    if byte_length < HEADER_SIZE:
        raise MalformedContainer(f"BFast container too small ({byte_length} bytes)")
    words = np.frombuffer(view, dtype="<i4", count=HEADER_SIZE // 4)
    header = BFastHeader.from_words(words, byte_length)

    descriptors = np.frombuffer(
        view, dtype="<i4", count=header.num_arrays * 4, offset=HEADER_SIZE
    ).reshape(-1, 4)

    buffers: List[np.ndarray] = []
    for i, (begin, zero_a, end, zero_b) in enumerate(descriptors.tolist()):
        pos = HEADER_SIZE + i * DESCRIPTOR_SIZE
        if zero_a != 0:
            raise MalformedContainer(f"Expected 0 in position {pos + 4}")
        if zero_b != 0:
            raise MalformedContainer(f"Expected 0 in position {pos + 12}")
        if begin < header.data_start or begin > header.data_end:
            raise MalformedContainer(f"Buffer {i} start is out of range")
        if end < begin or end > header.data_end:
            raise MalformedContainer(f"Buffer {i} end is out of range")
        buffers.append(view[begin:end])

    names = split_names(buffers[0])
    if len(names) != len(buffers) - 1:
        raise MalformedContainer(
            "Expected number of names to be equal to the number of buffers - 1 "
            f"(names={len(names)}, buffers={len(buffers)})"
        )

    logger.debug("Parsed BFast with %d buffers: %s", len(names), ", ".join(names))
    return BFast(header=header, names=names, buffers=buffers[1:])


def _align(value: int) -> int:
    return (value + ALIGNMENT - 1) // ALIGNMENT * ALIGNMENT


def pack_bfast(names: Sequence[str], buffers: Sequence[BufferLike]) -> bytes:
    """Serialize named buffers into a BFast container.

    The data region and every buffer start on a 64-byte boundary.
    """
    if len(names) != len(buffers):
        raise ValueError("names and buffers must have the same length")
    for name in names:
        if "\0" in name:
            raise ValueError(f"buffer name contains a NUL byte: {name!r}")

    name_blob = b"".join(n.encode("utf-8") + b"\0" for n in names)
    payloads = [name_blob] + [_as_bytes_view(b).tobytes() for b in buffers]

    num_arrays = len(payloads)
    data_start = _align(HEADER_SIZE + num_arrays * DESCRIPTOR_SIZE)

    ranges = []
    cursor = data_start
    for payload in payloads:
        begin = _align(cursor)
        ranges.append((begin, begin + len(payload)))
        cursor = begin + len(payload)
    data_end = cursor

    out = bytearray(data_end)
    header = np.array([BFAST_MAGIC, 0, data_start, 0, data_end, 0, num_arrays, 0], dtype="<i4")
    out[0:HEADER_SIZE] = header.tobytes()
    table = np.zeros((num_arrays, 4), dtype="<i4")
    for i, (begin, end) in enumerate(ranges):
        table[i, 0] = begin
        table[i, 2] = end
    out[HEADER_SIZE:HEADER_SIZE + table.nbytes] = table.tobytes()
    for (begin, end), payload in zip(ranges, payloads):
        out[begin:end] = payload
    return bytes(out)
