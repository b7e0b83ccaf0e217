"""Builders for synthetic 3DS buffers used by the tests."""

import struct
from typing import Iterable, Sequence

import chunk_walker as cw


def chunk(chunk_id: int, payload: bytes = b"") -> bytes:
    return struct.pack('<HI', chunk_id, cw.CHUNK_HEADER_SIZE + len(payload)) + payload


def cstr(text: str) -> bytes:
    return text.encode('ascii') + b'\x00'


def face_group(name: str, indices: Sequence[int]) -> bytes:
    payload = cstr(name) + struct.pack('<H', len(indices))
    payload += struct.pack(f'<{len(indices)}H', *indices)
    return chunk(cw.FACE_MAT_GROUP, payload)


def faces_block(face_count: int, *groups: bytes) -> bytes:
    payload = struct.pack('<H', face_count) + b'\x00' * (cw.SIZEOF_FACE * face_count)
    return chunk(cw.FACES_BLOCK, payload + b''.join(groups))


def mesh_object(name: str, face_count: int, *groups: bytes) -> bytes:
    tri_mesh = chunk(cw.TRI_MESH, faces_block(face_count, *groups))
    return chunk(cw.OBJECT_BLOCK, cstr(name) + tri_mesh)


def material_block(name: str) -> bytes:
    return chunk(cw.MATERIAL_BLOCK, chunk(cw.MATERIAL_NAME, cstr(name)))


def model(objects: Iterable[bytes] = (), materials: Iterable[str] = ()) -> bytes:
    editor = b''.join(material_block(m) for m in materials) + b''.join(objects)
    return chunk(cw.MAIN, chunk(cw.EDITOR, editor))
