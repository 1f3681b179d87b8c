# message.py
#
# Wire records, all integers little-endian without padding

import struct
from dataclasses import dataclass, fields
from typing import ClassVar, Dict, Tuple, Type

from .errors import TruncatedPayload

PACKET_MAGIC = 0xCCBECCBE
PACKET_MAX_DATA_SIZE = 2 * 65536
CHUNK_SIZE = 65536
GUID_SIZE = 16

# packet types
PACKET_TYPE_PING = 1
PACKET_TYPE_CHUNK_WRITE = 2
PACKET_TYPE_CHUNK_READ = 3
PACKET_TYPE_CHUNK_DELETE = 4


class Record:
    """Fixed-size record packed field by field with one format code each.

    Subclasses are dataclasses whose field order matches ``_layout``.
    """

    _layout: ClassVar[struct.Struct] = struct.Struct("<")

    @classmethod
    def size(cls) -> int:
        return cls._layout.size

    def to_bytes(self) -> bytes:
        return self._layout.pack(*(getattr(self, f.name) for f in fields(self)))

    @classmethod
    def from_bytes(cls, data):
        """Unpack from the front of ``data``, trailing bytes are ignored"""
        size = cls._layout.size
        if len(data) < size:
            raise TruncatedPayload(cls.__name__, size, len(data))
        return cls(*cls._layout.unpack_from(data))


@dataclass
class PacketHeader(Record):
    magic: int = PACKET_MAGIC
    type: int = 0
    data_size: int = 0
    result: int = 0

    _layout = struct.Struct("<IIII")


HEADER_SIZE = PacketHeader.size()


@dataclass
class Packet:
    header: PacketHeader
    body: bytes = b""


@dataclass
class PingRequest(Record):
    value: bytes = bytes(PACKET_MAX_DATA_SIZE)

    _layout = struct.Struct(f"<{PACKET_MAX_DATA_SIZE}s")


@dataclass
class PingResponse(Record):
    value: bytes = bytes(PACKET_MAX_DATA_SIZE)

    _layout = struct.Struct(f"<{PACKET_MAX_DATA_SIZE}s")


@dataclass
class ChunkWriteRequest(Record):
    chunk_id: bytes = bytes(GUID_SIZE)
    data: bytes = bytes(CHUNK_SIZE)

    _layout = struct.Struct(f"<{GUID_SIZE}s{CHUNK_SIZE}s")


@dataclass
class ChunkWriteResponse(Record):
    pass


@dataclass
class ChunkReadRequest(Record):
    chunk_id: bytes = bytes(GUID_SIZE)

    _layout = struct.Struct(f"<{GUID_SIZE}s")


@dataclass
class ChunkReadResponse(Record):
    data: bytes = bytes(CHUNK_SIZE)

    _layout = struct.Struct(f"<{CHUNK_SIZE}s")


@dataclass
class ChunkDeleteRequest(Record):
    chunk_id: bytes = bytes(GUID_SIZE)

    _layout = struct.Struct(f"<{GUID_SIZE}s")


@dataclass
class ChunkDeleteResponse(Record):
    pass


# packet type -> (request record, response record)
RECORDS: Dict[int, Tuple[Type[Record], Type[Record]]] = {
    PACKET_TYPE_PING: (PingRequest, PingResponse),
    PACKET_TYPE_CHUNK_WRITE: (ChunkWriteRequest, ChunkWriteResponse),
    PACKET_TYPE_CHUNK_READ: (ChunkReadRequest, ChunkReadResponse),
    PACKET_TYPE_CHUNK_DELETE: (ChunkDeleteRequest, ChunkDeleteResponse),
}


def encode(record: Record) -> bytes:
    return record.to_bytes()


def decode(record_cls: Type[Record], data) -> Record:
    return record_cls.from_bytes(data)


def make_header(packet_type: int, body: bytes, result: int = 0) -> PacketHeader:
    return PacketHeader(
        magic=PACKET_MAGIC,
        type=packet_type,
        data_size=len(body),
        result=result & 0xFFFFFFFF,
    )


def signed_result(result: int) -> int:
    """Server codes travel as uint32 but are signed (negative errno)"""
    if result & 0x80000000:
        return result - (1 << 32)
    return result
