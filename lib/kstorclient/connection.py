# connection.py
#
# Blocking packet transport over a TCP stream

import logging
import socket
from typing import Optional

from .config import parse_address
from .errors import ClientConnectionError, ClientIOError, ProtocolError
from .message import (
    HEADER_SIZE,
    PACKET_MAGIC,
    PACKET_MAX_DATA_SIZE,
    Packet,
    PacketHeader,
)
from .stats import ConnStats

logger = logging.getLogger(__name__)


def check_header(header: PacketHeader):
    """Reject a received header before any body byte is read"""
    if header.magic != PACKET_MAGIC:
        raise ProtocolError(
            f"bad magic 0x{header.magic:08X}, should be 0x{PACKET_MAGIC:08X}",
            header,
        )
    if header.data_size > PACKET_MAX_DATA_SIZE:
        raise ProtocolError(
            f"oversized body {header.data_size} > {PACKET_MAX_DATA_SIZE}",
            header,
        )


def frame(header: PacketHeader, body: bytes) -> bytes:
    if header.data_size > PACKET_MAX_DATA_SIZE:
        raise ProtocolError(
            f"oversized body {header.data_size} > {PACKET_MAX_DATA_SIZE}",
            header,
        )
    if header.data_size != len(body):
        raise ProtocolError(
            f"header data size {header.data_size} != body length {len(body)}",
            header,
        )
    return header.to_bytes() + bytes(body)


class PacketConnection(object):
    """One exclusively owned stream socket to the storage server.

    Frames are a 16 byte header followed by exactly ``data_size`` body
    bytes. After a ClientIOError or ProtocolError the stream may be out of
    sync and the connection should be closed.
    """

    def __init__(self, sock: Optional[socket.socket] = None, peer=None):
        self.sock = sock
        self.peer = peer
        self.stats = ConnStats()

    @classmethod
    def connect(cls, address, timeout: Optional[float] = None) -> "PacketConnection":
        try:
            host, port = parse_address(address)
        except ValueError as e:
            raise ClientConnectionError(address, e) from e
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as e:
            raise ClientConnectionError(f"{host}:{port}", e) from e
        # create_connection leaves the timeout on the socket, None blocks
        sock.settimeout(timeout)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        logger.info(f"Connected to {host}:{port}")
        return cls(sock, peer=(host, port))

    @property
    def closed(self) -> bool:
        return self.sock is None

    def send_packet(self, header: PacketHeader, body: bytes = b""):
        buf = frame(header, body)
        if self.sock is None:
            raise ClientIOError("Connection is closed", len(buf), 0)
        try:
            self.sock.sendall(buf)
        except OSError as e:
            raise ClientIOError(f"Incomplete I/O on send: {e}", len(buf), 0) from e
        self.stats.on_sent(len(buf))

    def recv_packet(self) -> Packet:
        logger.debug("Receiving packet header")
        header = PacketHeader.from_bytes(self._read_exact(HEADER_SIZE))
        check_header(header)
        body = b""
        if header.data_size:
            logger.debug("Receiving packet body")
            body = self._read_exact(header.data_size)
        self.stats.on_recv(HEADER_SIZE + len(body))
        return Packet(header, body)

    def _read_exact(self, nbytes: int) -> bytes:
        if self.sock is None:
            raise ClientIOError("Connection is closed", nbytes, 0)
        buf = bytearray(nbytes)
        view = memoryview(buf)
        got = 0
        while got < nbytes:
            try:
                n = self.sock.recv_into(view[got:], nbytes - got)
            except OSError as e:
                raise ClientIOError(
                    f"Incomplete I/O on recv: {e}", nbytes, got
                ) from e
            if n == 0:
                raise ClientIOError(
                    f"Connection closed after {got} of {nbytes} bytes", nbytes, got
                )
            got += n
        return bytes(buf)

    def close(self):
        if self.sock is None:
            return
        sock, self.sock = self.sock, None
        sock.close()
        logger.info(f"Connection to {self.peer} closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
