# __init__.py
#
# Top-level functions for client

import logging
import threading
from typing import Optional

from .config import DEFAULT_HOST, DEFAULT_PORT, ClientConfig
from .connection import PacketConnection
from .errors import (
    ClientConnectionError,
    ClientIOError,
    ExchangeError,
    InputTooLarge,
    InvalidDataSize,
    InvalidIdSize,
    InvalidInput,
    KStorError,
    MalformedResponse,
    ProtocolError,
    RemoteError,
    TruncatedPayload,
    UnexpectedResponseType,
)
from .exchange import exchange
from .message import (
    CHUNK_SIZE,
    GUID_SIZE,
    PACKET_MAGIC,
    PACKET_MAX_DATA_SIZE,
    PACKET_TYPE_CHUNK_DELETE,
    PACKET_TYPE_CHUNK_READ,
    PACKET_TYPE_CHUNK_WRITE,
    PACKET_TYPE_PING,
    ChunkDeleteResponse,
    ChunkReadResponse,
    ChunkWriteResponse,
    PingResponse,
)
from . import ops
from .stats import ConnStats

logger = logging.getLogger(__name__)


class KStorClient(object):
    """Blocking client for the chunk storage service.

    Every operation is one exchange on one connection; calls are serialized
    so frames of two threads never interleave. Nothing is retried.

    Usage:
        with KStorClient("127.0.0.1:8111") as client:
            client.ping("Hello world!")
            client.chunk_write(chunk_id, data)
    """

    def __init__(self, address=f"{DEFAULT_HOST}:{DEFAULT_PORT}", timeout: Optional[float] = None):
        self.address = address
        self.timeout = timeout
        self.conn: Optional[PacketConnection] = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: ClientConfig) -> "KStorClient":
        return cls(config.address, timeout=config.timeout)

    def connect(self) -> "KStorClient":
        if self.conn is None:
            self.conn = PacketConnection.connect(self.address, timeout=self.timeout)
        return self

    @property
    def stats(self) -> Optional[ConnStats]:
        return self.conn.stats if self.conn else None

    def _send_recv(self, packet_type, req, resp_cls):
        with self._lock:
            if self.conn is None:
                raise ClientIOError("Client is not connected")
            try:
                return exchange(self.conn, packet_type, req, resp_cls)
            except (ClientIOError, ProtocolError) as e:
                # framing may be out of sync, the connection cannot be reused
                logger.warning(f"Dropping connection to {self.address}: {e}")
                self.conn.close()
                self.conn = None
                raise

    def ping(self, value: str) -> str:
        req = ops.ping_request(value)
        resp = self._send_recv(PACKET_TYPE_PING, req, PingResponse)
        return ops.ping_result(resp)

    def chunk_write(self, chunk_id, data):
        req = ops.chunk_write_request(chunk_id, data)
        self._send_recv(PACKET_TYPE_CHUNK_WRITE, req, ChunkWriteResponse)

    def chunk_read(self, chunk_id) -> bytes:
        req = ops.chunk_read_request(chunk_id)
        resp = self._send_recv(PACKET_TYPE_CHUNK_READ, req, ChunkReadResponse)
        return resp.data

    def chunk_delete(self, chunk_id):
        req = ops.chunk_delete_request(chunk_id)
        self._send_recv(PACKET_TYPE_CHUNK_DELETE, req, ChunkDeleteResponse)

    def close(self):
        with self._lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc, tb):
        self.close()
