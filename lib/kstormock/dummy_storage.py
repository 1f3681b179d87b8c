#!/usr/bin/env python
"""Dummy chunk storage server for testing purposes.

Chunks live in a dict keyed by chunk id. Errors are reported the way the
kernel storage does it, as negative errno values in the header result.
"""

import argparse
import asyncio
import errno
import logging
import threading
from asyncio import IncompleteReadError
from typing import Dict, Optional

from kstorclient.config import DEFAULT_PORT
from kstorclient.errors import ProtocolError, TruncatedPayload
from kstorclient.connection import check_header
from kstorclient.message import (
    HEADER_SIZE,
    PACKET_TYPE_CHUNK_DELETE,
    PACKET_TYPE_CHUNK_READ,
    PACKET_TYPE_CHUNK_WRITE,
    PACKET_TYPE_PING,
    RECORDS,
    ChunkReadResponse,
    PacketHeader,
    make_header,
)

# Configuration Constants
USE_UVLOOP = True
RESP_OK = 0
RESP_NOT_FOUND = -errno.ENOENT
RESP_EINVAL = -errno.EINVAL

logger = logging.getLogger("storage")


class DummyStorage:
    """In-memory chunk store speaking the packet protocol"""

    def __init__(self):
        self.chunks: Dict[bytes, bytes] = {}
        self.writers = set()
        self.stats = {
            "ping_count": 0,
            "write_count": 0,
            "read_count": 0,
            "delete_count": 0,
            "error_count": 0,
        }

    def handle_packet(self, header: PacketHeader, body: bytes):
        """Return (result, response body) for one request"""
        records = RECORDS.get(header.type)
        if records is None:
            logger.warning(f"Unknown packet type {header.type}")
            return RESP_EINVAL, b""
        req_cls, _ = records
        try:
            req = req_cls.from_bytes(body)
        except TruncatedPayload as e:
            logger.warning(f"Short request body: {e}")
            return RESP_EINVAL, b""

        if header.type == PACKET_TYPE_PING:
            self.stats["ping_count"] += 1
            return RESP_OK, req.to_bytes()
        if header.type == PACKET_TYPE_CHUNK_WRITE:
            self.stats["write_count"] += 1
            self.chunks[req.chunk_id] = req.data
            return RESP_OK, b""
        if header.type == PACKET_TYPE_CHUNK_READ:
            self.stats["read_count"] += 1
            data = self.chunks.get(req.chunk_id)
            if data is None:
                return RESP_NOT_FOUND, b""
            return RESP_OK, ChunkReadResponse(data=data).to_bytes()
        # PACKET_TYPE_CHUNK_DELETE
        self.stats["delete_count"] += 1
        if self.chunks.pop(req.chunk_id, None) is None:
            return RESP_NOT_FOUND, b""
        return RESP_OK, b""

    async def handle_client(self, reader, writer):
        """Serve one connection, one exchange at a time."""
        addr = writer.get_extra_info("peername")
        logger.info(f"Connected to {addr}")
        self.writers.add(writer)
        try:
            while True:
                try:
                    header = PacketHeader.from_bytes(await reader.readexactly(HEADER_SIZE))
                    check_header(header)
                    body = b""
                    if header.data_size:
                        body = await reader.readexactly(header.data_size)
                except IncompleteReadError:
                    logger.info(f"Client {addr} disconnected")
                    break
                except ProtocolError as e:
                    logger.error(f"Dropping client {addr}: {e}")
                    break

                result, resp = self.handle_packet(header, body)
                if result != RESP_OK:
                    self.stats["error_count"] += 1
                logger.debug(f"Type {header.type} from {addr}: result {result}")
                writer.write(make_header(header.type, resp, result).to_bytes() + resp)
                await writer.drain()
        except ConnectionError as e:
            logger.error(f"Error handling client {addr}: {e}")
        finally:
            self.writers.discard(writer)
            writer.close()
            logger.info(f"Connection with {addr} closed")

    def close_clients(self):
        for writer in list(self.writers):
            writer.close()


async def serve(storage: DummyStorage, host: str, port: int, started=None, stop=None):
    server = await asyncio.start_server(storage.handle_client, host, port)
    addr = server.sockets[0].getsockname()
    logger.info(f"Serving on {addr}")
    if started is not None:
        started(addr)
    if stop is None:
        async with server:
            await server.serve_forever()
        return
    await stop.wait()
    server.close()
    storage.close_clients()
    await server.wait_closed()


class StorageThread(threading.Thread):
    """Run a DummyStorage on its own event loop, for blocking clients"""

    def __init__(self, host: str = "127.0.0.1", port: int = 0):
        super().__init__(name="dummy-storage", daemon=True)
        self.host = host
        self.port = port
        self.storage = DummyStorage()
        self._ready = threading.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown: Optional[asyncio.Event] = None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def run(self):
        asyncio.run(self._main())

    async def _main(self):
        self._loop = asyncio.get_running_loop()
        self._shutdown = asyncio.Event()
        await serve(self.storage, self.host, self.port, self._on_started, self._shutdown)

    def _on_started(self, addr):
        self.port = addr[1]
        self._ready.set()

    def start(self):
        super().start()
        if not self._ready.wait(5):
            raise RuntimeError("Dummy storage did not start")
        return self

    def stop(self):
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._shutdown.set)
        self.join(5)

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Dummy chunk storage server")
    parser.add_argument("port", nargs="?", type=int, default=DEFAULT_PORT)
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    coro = serve(DummyStorage(), args.host, args.port)
    if USE_UVLOOP:
        import uvloop

        logger.info("Using uvloop")
        uvloop.run(coro)
    else:
        asyncio.run(coro)


if __name__ == "__main__":
    main()
