# aio.py
#
# asyncio flavour of the transport, exchange and client

import asyncio
import logging
import time
from asyncio import IncompleteReadError
from typing import Optional, Type

from .config import DEFAULT_HOST, DEFAULT_PORT, ClientConfig, parse_address
from .connection import check_header, frame
from .errors import ClientConnectionError, ClientIOError, ExchangeError, ProtocolError
from .exchange import make_request, unpack_response
from .message import (
    HEADER_SIZE,
    PACKET_TYPE_CHUNK_DELETE,
    PACKET_TYPE_CHUNK_READ,
    PACKET_TYPE_CHUNK_WRITE,
    PACKET_TYPE_PING,
    ChunkDeleteResponse,
    ChunkReadResponse,
    ChunkWriteResponse,
    Packet,
    PacketHeader,
    PingResponse,
    Record,
)
from . import ops
from .stats import ConnStats

logger = logging.getLogger(__name__)


class AsyncPacketConnection:
    """Packet framing over an asyncio stream pair"""

    def __init__(self, reader=None, writer=None, peer=None):
        self.reader: Optional[asyncio.StreamReader] = reader
        self.writer: Optional[asyncio.StreamWriter] = writer
        self.peer = peer
        self.stats = ConnStats()

    @classmethod
    async def connect(cls, address, timeout: Optional[float] = None) -> "AsyncPacketConnection":
        try:
            host, port = parse_address(address)
        except ValueError as e:
            raise ClientConnectionError(address, e) from e
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise ClientConnectionError(f"{host}:{port}", e) from e
        logger.info(f"Connected to {host}:{port}")
        return cls(reader, writer, peer=(host, port))

    @property
    def closed(self) -> bool:
        return self.writer is None

    async def send_packet(self, header: PacketHeader, body: bytes = b""):
        buf = frame(header, body)
        if self.writer is None:
            raise ClientIOError("Connection is closed", len(buf), 0)
        try:
            self.writer.write(buf)
            await self.writer.drain()
        except OSError as e:
            raise ClientIOError(f"Incomplete I/O on send: {e}", len(buf), 0) from e
        self.stats.on_sent(len(buf))

    async def recv_packet(self) -> Packet:
        logger.debug("Receiving packet header")
        header = PacketHeader.from_bytes(await self._read_exact(HEADER_SIZE))
        check_header(header)
        body = b""
        if header.data_size:
            logger.debug("Receiving packet body")
            body = await self._read_exact(header.data_size)
        self.stats.on_recv(HEADER_SIZE + len(body))
        return Packet(header, body)

    async def _read_exact(self, nbytes: int) -> bytes:
        if self.reader is None:
            raise ClientIOError("Connection is closed", nbytes, 0)
        try:
            return await self.reader.readexactly(nbytes)
        except IncompleteReadError as e:
            raise ClientIOError(
                f"Connection closed after {len(e.partial)} of {nbytes} bytes",
                nbytes,
                len(e.partial),
            ) from e
        except OSError as e:
            raise ClientIOError(f"Incomplete I/O on recv: {e}", nbytes, 0) from e

    async def close(self):
        if self.writer is None:
            return
        writer, self.writer, self.reader = self.writer, None, None
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error while closing {self.peer}: {e}")
        logger.info(f"Connection to {self.peer} closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


async def async_exchange(conn, packet_type: int, request: Record, response_cls: Type[Record]):
    header, body = make_request(packet_type, request)
    start = time.perf_counter()
    try:
        logger.debug(f"Sending request type {packet_type}, {len(body)} bytes")
        await conn.send_packet(header, body)
        logger.debug("Receiving response")
        response = unpack_response(await conn.recv_packet(), packet_type, response_cls)
    except ExchangeError:
        conn.stats.failures += 1
        raise
    conn.stats.on_exchange((time.perf_counter() - start) * 1e6)
    return response


class AsyncKStorClient:
    """asyncio client, one exchange in flight at a time.

    Usage:
        async with AsyncKStorClient("127.0.0.1:8111") as client:
            await client.ping("Hello world!")
    """

    def __init__(self, address=f"{DEFAULT_HOST}:{DEFAULT_PORT}", timeout: Optional[float] = None):
        self.address = address
        self.timeout = timeout
        self.conn: Optional[AsyncPacketConnection] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: ClientConfig) -> "AsyncKStorClient":
        return cls(config.address, timeout=config.timeout)

    async def connect(self) -> "AsyncKStorClient":
        if self.conn is None:
            self.conn = await AsyncPacketConnection.connect(self.address, timeout=self.timeout)
        return self

    @property
    def stats(self) -> Optional[ConnStats]:
        return self.conn.stats if self.conn else None

    async def _send_recv(self, packet_type, req, resp_cls):
        async with self._lock:
            if self.conn is None:
                raise ClientIOError("Client is not connected")
            try:
                return await asyncio.wait_for(
                    async_exchange(self.conn, packet_type, req, resp_cls),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError as e:
                self.conn.stats.failures += 1
                await self._drop(f"no response within {self.timeout}s")
                raise ClientIOError(f"Exchange timed out after {self.timeout}s") from e
            except (ClientIOError, ProtocolError) as e:
                await self._drop(e)
                raise

    async def _drop(self, reason):
        logger.warning(f"Dropping connection to {self.address}: {reason}")
        await self.conn.close()
        self.conn = None

    async def ping(self, value: str) -> str:
        req = ops.ping_request(value)
        resp = await self._send_recv(PACKET_TYPE_PING, req, PingResponse)
        return ops.ping_result(resp)

    async def chunk_write(self, chunk_id, data):
        req = ops.chunk_write_request(chunk_id, data)
        await self._send_recv(PACKET_TYPE_CHUNK_WRITE, req, ChunkWriteResponse)

    async def chunk_read(self, chunk_id) -> bytes:
        req = ops.chunk_read_request(chunk_id)
        resp = await self._send_recv(PACKET_TYPE_CHUNK_READ, req, ChunkReadResponse)
        return resp.data

    async def chunk_delete(self, chunk_id):
        req = ops.chunk_delete_request(chunk_id)
        await self._send_recv(PACKET_TYPE_CHUNK_DELETE, req, ChunkDeleteResponse)

    async def close(self):
        async with self._lock:
            if self.conn is not None:
                await self.conn.close()
                self.conn = None

    async def __aenter__(self):
        return await self.connect()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
