import asyncio
import errno
import unittest
import uuid

from kstorclient import (
    CHUNK_SIZE,
    ClientConnectionError,
    InvalidDataSize,
    InvalidIdSize,
    ProtocolError,
    RemoteError,
)
from kstorclient.aio import AsyncKStorClient, AsyncPacketConnection
from kstorclient.errors import ClientIOError
from kstorclient.message import (
    HEADER_SIZE,
    PACKET_MAX_DATA_SIZE,
    PACKET_TYPE_PING,
    PacketHeader,
    make_header,
)
from kstormock.dummy_storage import DummyStorage

from tests.peer import free_port, raw_packet


class AsyncClientTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.storage = DummyStorage()
        self.server = await asyncio.start_server(self.storage.handle_client, "127.0.0.1", 0)
        port = self.server.sockets[0].getsockname()[1]
        self.client = await AsyncKStorClient(f"127.0.0.1:{port}", timeout=5).connect()

    async def asyncTearDown(self):
        await self.client.close()
        self.server.close()
        self.storage.close_clients()
        await self.server.wait_closed()

    async def test_ping(self):
        self.assertEqual(await self.client.ping("Hello world!"), "Hello world!")

    async def test_write_read_delete(self):
        chunk_id = uuid.uuid4()
        data = bytes(CHUNK_SIZE)
        await self.client.chunk_write(chunk_id, data)
        self.assertEqual(await self.client.chunk_read(chunk_id), data)
        await self.client.chunk_delete(chunk_id)
        with self.assertRaises(RemoteError) as cm:
            await self.client.chunk_read(chunk_id)
        self.assertEqual(cm.exception.code, -errno.ENOENT)

    async def test_concurrent_callers_are_serialized(self):
        values = [f"ping {i}" for i in range(8)]
        results = await asyncio.gather(*(self.client.ping(v) for v in values))
        self.assertEqual(results, values)
        self.assertEqual(self.client.stats.exchanges, len(values))

    async def test_input_validation(self):
        with self.assertRaises(InvalidIdSize):
            await self.client.chunk_write(bytes(15), bytes(CHUNK_SIZE))
        with self.assertRaises(InvalidDataSize):
            await self.client.chunk_write(bytes(16), bytes(CHUNK_SIZE - 1))
        self.assertEqual(self.client.stats.sent, 0)


class AsyncTransportTests(unittest.IsolatedAsyncioTestCase):
    async def serve_reply(self, reply: bytes):
        async def handler(reader, writer):
            # consume the whole request so closing sends FIN, not RST
            header = PacketHeader.from_bytes(await reader.readexactly(HEADER_SIZE))
            await reader.readexactly(header.data_size)
            writer.write(reply)
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(handler, "127.0.0.1", 0)
        self.addAsyncCleanup(self._close_server, server)
        return f"127.0.0.1:{server.sockets[0].getsockname()[1]}"

    @staticmethod
    async def _close_server(server):
        server.close()
        await server.wait_closed()

    async def test_bad_magic(self):
        address = await self.serve_reply(raw_packet(PACKET_TYPE_PING, magic=1))
        client = await AsyncKStorClient(address, timeout=5).connect()
        with self.assertRaises(ProtocolError):
            await client.ping("x")
        self.assertIsNone(client.conn)

    async def test_oversized(self):
        address = await self.serve_reply(
            raw_packet(PACKET_TYPE_PING, data_size=PACKET_MAX_DATA_SIZE + 1)
        )
        async with await AsyncPacketConnection.connect(address) as conn:
            await conn.send_packet(*_ping_frame())
            with self.assertRaises(ProtocolError):
                await conn.recv_packet()

    async def test_short_body(self):
        address = await self.serve_reply(raw_packet(PACKET_TYPE_PING, data_size=64) + bytes(8))
        async with await AsyncPacketConnection.connect(address) as conn:
            await conn.send_packet(*_ping_frame())
            with self.assertRaises(ClientIOError) as cm:
                await conn.recv_packet()
        self.assertEqual(cm.exception.actual, 8)
        self.assertTrue(conn.closed)

    async def test_refused(self):
        with self.assertRaises(ClientConnectionError):
            await AsyncPacketConnection.connect(f"127.0.0.1:{free_port()}")

    async def test_timeout_counts_failure_and_drops(self):
        async def silent(reader, writer):
            # hold the request unanswered until the client hangs up
            await reader.read()
            writer.close()

        server = await asyncio.start_server(silent, "127.0.0.1", 0)
        self.addAsyncCleanup(self._close_server, server)
        client = await AsyncKStorClient(
            f"127.0.0.1:{server.sockets[0].getsockname()[1]}", timeout=0.2
        ).connect()
        stats = client.stats
        with self.assertRaises(ClientIOError):
            await client.ping("x")
        self.assertIsNone(client.conn)
        self.assertEqual(stats.failures, 1)
        self.assertEqual(stats.exchanges, 0)


def _ping_frame():
    return make_header(PACKET_TYPE_PING, b"hi"), b"hi"


if __name__ == "__main__":
    unittest.main()
