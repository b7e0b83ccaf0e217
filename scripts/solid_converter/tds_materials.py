#!/usr/bin/env python3
"""
tds_materials.py
================

Material information extracted from 3DS files:

  - 0xA000 material names declared in the material editor block
  - 0x4130 face/material groups, the per-submesh material assignments that
    3ds2gbxml turns into one visual per group
"""

from __future__ import annotations

import struct
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

import numpy as np

from chunk_walker import (
    FACE_MAT_GROUP,
    FACES_BLOCK,
    MATERIAL_NAME,
    OBJECT_BLOCK,
    Chunk,
    read_cstring,
    walk_chunks,
)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FaceMatGroup:
    material_name: str
    face_count: int
    face_indices: Tuple[int, ...] = field(default=(), compare=False)
    object_name: str = field(default="", compare=False)


@dataclass(frozen=True)
class FaceCoverage:
    object_name: str
    face_count: int
    assigned: int
    unassigned: int
    out_of_range: int


@dataclass(frozen=True)
class MaterialUsage:
    name: str
    face_count: int


@dataclass(frozen=True)
class TdsMaterials:
    path: Path
    declared: Tuple[str, ...]
    groups: Tuple[FaceMatGroup, ...]
    coverage: Tuple[FaceCoverage, ...]


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def extract_material_names(data: bytes) -> List[str]:
    """Declared material names, deduplicated case-insensitively (first casing wins)."""
    names: Dict[str, str] = OrderedDict()
    for chunk in walk_chunks(data):
        if chunk.chunk_id != MATERIAL_NAME:
            continue
        name, _ = read_cstring(data, chunk.content_start, chunk.content_end)
        if not name.strip():
            continue
        names.setdefault(name.casefold(), name)
    return list(names.values())


def _read_face_indices(data: bytes, start: int, end: int, count: int) -> Tuple[int, ...]:
    available = max(0, (end - start) // 2)
    count = min(count, available)
    if count <= 0:
        return ()
    return tuple(np.frombuffer(data, dtype='<u2', count=count, offset=start).tolist())


def _read_face_group(data: bytes, chunk: Chunk, object_name: str) -> FaceMatGroup:
    end = chunk.content_end
    name, pos = read_cstring(data, chunk.content_start, end)

    face_count = 0
    indices: Tuple[int, ...] = ()
    if pos + 2 <= end:
        face_count = struct.unpack_from('<H', data, pos)[0]
        indices = _read_face_indices(data, pos + 2, end, face_count)

    return FaceMatGroup(
        material_name=name,
        face_count=face_count,
        face_indices=indices,
        object_name=object_name,
    )


def _object_name(data: bytes, chunk: Chunk) -> str:
    name, _ = read_cstring(data, chunk.content_start, chunk.content_end)
    return name


def extract_face_groups(data: bytes) -> List[FaceMatGroup]:
    """Every 0x4130 record in file order; a material may appear several times."""
    groups: List[FaceMatGroup] = []
    object_name = ""
    for chunk in walk_chunks(data):
        if chunk.chunk_id == OBJECT_BLOCK:
            object_name = _object_name(data, chunk)
        elif chunk.chunk_id == FACE_MAT_GROUP:
            groups.append(_read_face_group(data, chunk, object_name))
    return groups


def face_coverage(data: bytes) -> List[FaceCoverage]:
    """How the faces of every faces block are distributed over material groups."""
    chunks = walk_chunks(data)
    result: List[FaceCoverage] = []
    object_name = ""

    for index, chunk in enumerate(chunks):
        if chunk.chunk_id == OBJECT_BLOCK:
            object_name = _object_name(data, chunk)
            continue
        if chunk.chunk_id != FACES_BLOCK:
            continue
        if chunk.content_start + 2 > chunk.content_end:
            continue

        face_count = struct.unpack_from('<H', data, chunk.content_start)[0]
        assigned = np.zeros(face_count, dtype=bool)
        out_of_range = 0

        # pre-order: the block's own groups directly follow it
        for child in chunks[index + 1:]:
            if child.offset >= chunk.content_end:
                break
            if child.chunk_id != FACE_MAT_GROUP:
                continue
            group = _read_face_group(data, child, object_name)
            indices = np.asarray(group.face_indices, dtype=np.int64)
            in_range = indices < face_count
            out_of_range += int(np.count_nonzero(~in_range))
            assigned[indices[in_range]] = True

        n_assigned = int(np.count_nonzero(assigned))
        result.append(FaceCoverage(
            object_name=object_name,
            face_count=face_count,
            assigned=n_assigned,
            unassigned=face_count - n_assigned,
            out_of_range=out_of_range,
        ))

    return result


def summarize_material_usage(groups: List[FaceMatGroup]) -> List[MaterialUsage]:
    """Total face count per material, most used first."""
    totals: Dict[str, MaterialUsage] = OrderedDict()
    for group in groups:
        name = group.material_name.strip()
        if not name:
            continue
        key = name.casefold()
        previous = totals.get(key)
        if previous is None:
            totals[key] = MaterialUsage(name=name, face_count=group.face_count)
        else:
            totals[key] = MaterialUsage(
                name=previous.name,
                face_count=previous.face_count + group.face_count,
            )
    return sorted(totals.values(), key=lambda u: (-u.face_count, u.name.casefold()))


def read_model(path: Path) -> TdsMaterials:
    """Read a .3ds file once and extract all of its material information."""
    data = path.read_bytes()
    return TdsMaterials(
        path=path,
        declared=tuple(extract_material_names(data)),
        groups=tuple(extract_face_groups(data)),
        coverage=tuple(face_coverage(data)),
    )
