# ops.py
#
# Request builders shared by the blocking and asyncio clients. Input is
# validated here so a bad call never touches the network.

import uuid

from .errors import InputTooLarge, InvalidDataSize, InvalidIdSize
from .message import (
    CHUNK_SIZE,
    GUID_SIZE,
    PACKET_MAX_DATA_SIZE,
    ChunkDeleteRequest,
    ChunkReadRequest,
    ChunkWriteRequest,
    PingRequest,
    PingResponse,
)


def _as_bytes(value, error, expected: int) -> bytes:
    try:
        return memoryview(value).tobytes()
    except TypeError:
        raise error(
            expected, None, f"Expected a {expected}-byte buffer, got {type(value).__name__}"
        ) from None


def chunk_id_bytes(chunk_id) -> bytes:
    if isinstance(chunk_id, uuid.UUID):
        return chunk_id.bytes
    chunk_id = _as_bytes(chunk_id, InvalidIdSize, GUID_SIZE)
    if len(chunk_id) != GUID_SIZE:
        raise InvalidIdSize(GUID_SIZE, len(chunk_id))
    return chunk_id


def get_string(buf: bytes) -> str:
    """Text up to the first zero byte, or the whole buffer if there is none"""
    end = buf.find(b"\x00")
    if end < 0:
        end = len(buf)
    return buf[:end].decode("utf-8", errors="replace")


def ping_request(text: str) -> PingRequest:
    value = text.encode("utf-8")
    if len(value) > PACKET_MAX_DATA_SIZE:
        raise InputTooLarge(PACKET_MAX_DATA_SIZE, len(value))
    return PingRequest(value=value.ljust(PACKET_MAX_DATA_SIZE, b"\x00"))


def ping_result(resp: PingResponse) -> str:
    return get_string(resp.value)


def chunk_write_request(chunk_id, data) -> ChunkWriteRequest:
    chunk_id = chunk_id_bytes(chunk_id)
    data = _as_bytes(data, InvalidDataSize, CHUNK_SIZE)
    if len(data) != CHUNK_SIZE:
        raise InvalidDataSize(CHUNK_SIZE, len(data))
    return ChunkWriteRequest(chunk_id=chunk_id, data=data)


def chunk_read_request(chunk_id) -> ChunkReadRequest:
    return ChunkReadRequest(chunk_id=chunk_id_bytes(chunk_id))


def chunk_delete_request(chunk_id) -> ChunkDeleteRequest:
    return ChunkDeleteRequest(chunk_id=chunk_id_bytes(chunk_id))
