#!/usr/bin/env python3
"""
chunk_walker.py
===============

Tag-length-value walker for 3D Studio (.3ds) binary mesh files.

Every record is laid out as::

    u16 chunk id      (little-endian)
    u32 chunk length  (little-endian, includes the 6 byte header)
    <content>         (length - 6 bytes)

A scan never raises on corrupt input: a header whose length is smaller than
the header itself, or which would run past the end of the enclosing range,
stops the scan of that range and the offset is reported back in the
``ChunkScan`` result.

The material-name and face-group scans share one walker, so it descends into
every container either of them needs (material blocks and faces blocks alike).
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CHUNK_HEADER_SIZE = 6
SIZEOF_FACE = 8         # u16 a, b, c, flags

MAIN = 0x4D4D
EDITOR = 0x3D3D
OBJECT_BLOCK = 0x4000
TRI_MESH = 0x4100
FACES_BLOCK = 0x4120
FACE_MAT_GROUP = 0x4130
MATERIAL_BLOCK = 0xAFFF
MATERIAL_NAME = 0xA000

CONTAINER_IDS = frozenset({MAIN, EDITOR, TRI_MESH, MATERIAL_BLOCK})

_HEADER = struct.Struct('<HI')


@dataclass(frozen=True)
class Chunk:
    chunk_id: int
    offset: int
    length: int

    @property
    def content_start(self) -> int:
        return self.offset + CHUNK_HEADER_SIZE

    @property
    def content_end(self) -> int:
        return self.offset + self.length


@dataclass(frozen=True)
class ChunkScan:
    """Chunks found on one level of a range, plus where the scan gave up."""

    chunks: Tuple[Chunk, ...]
    malformed_at: Optional[int] = None

    @property
    def truncated(self) -> bool:
        return self.malformed_at is not None


def read_cstring(data: bytes, start: int, end: int) -> Tuple[str, int]:
    """Read a null-terminated ASCII string without reading past *end*.

    Returns the decoded text and the offset just after the terminator (or
    *end* when the string is unterminated).
    """
    end = min(end, len(data))
    null_pos = data.find(b'\x00', start, end)
    if null_pos < 0:
        return data[start:end].decode('ascii', errors='replace'), end
    return data[start:null_pos].decode('ascii', errors='replace'), null_pos + 1


def scan_chunks(data: bytes, start: int = 0, end: Optional[int] = None) -> ChunkScan:
    """Decode the chunk headers found on a single level of ``[start, end)``."""
    if end is None or end > len(data):
        end = len(data)

    chunks: List[Chunk] = []
    pos = start
    while pos + CHUNK_HEADER_SIZE <= end:
        chunk_id, length = _HEADER.unpack_from(data, pos)
        if length < CHUNK_HEADER_SIZE or pos + length > end:
            logging.debug(
                "Malformed chunk 0x%04X at offset %d (length=%d, range end=%d)",
                chunk_id, pos, length, end,
            )
            return ChunkScan(chunks=tuple(chunks), malformed_at=pos)
        chunks.append(Chunk(chunk_id=chunk_id, offset=pos, length=length))
        pos += length

    return ChunkScan(chunks=tuple(chunks))


def nested_range(data: bytes, chunk: Chunk) -> Optional[Tuple[int, int]]:
    """Return the sub-chunk region of *chunk*, or None for leaf chunks."""
    start, end = chunk.content_start, chunk.content_end

    if chunk.chunk_id in CONTAINER_IDS:
        return start, end

    if chunk.chunk_id == OBJECT_BLOCK:
        # name + sub-chunks; no terminator means no sub-chunks
        null_pos = data.find(b'\x00', start, end)
        if null_pos < 0 or null_pos + 1 >= end:
            return None
        return null_pos + 1, end

    if chunk.chunk_id == FACES_BLOCK:
        # u16 face count + face records, the rest holds material groups
        if start + 2 > end:
            return None
        face_count = struct.unpack_from('<H', data, start)[0]
        sub_start = start + 2 + face_count * SIZEOF_FACE
        if sub_start >= end:
            return None
        return sub_start, end

    return None


def walk_chunks(data: bytes, start: int = 0, end: Optional[int] = None) -> List[Chunk]:
    """Depth-first, pre-order list of every chunk reachable from ``[start, end)``."""
    scan = scan_chunks(data, start, end)
    found: List[Chunk] = []
    for chunk in scan.chunks:
        found.append(chunk)
        region = nested_range(data, chunk)
        if region is not None:
            found.extend(walk_chunks(data, region[0], region[1]))
    return found


def walk_file(path: Path) -> List[Chunk]:
    return walk_chunks(path.read_bytes())
