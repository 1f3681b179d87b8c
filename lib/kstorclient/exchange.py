# exchange.py
#
# One request packet, then exactly one matching response packet

import logging
import time
from typing import Tuple, Type

from .errors import (
    ExchangeError,
    MalformedResponse,
    RemoteError,
    TruncatedPayload,
    UnexpectedResponseType,
)
from .message import Packet, PacketHeader, Record, make_header, signed_result

logger = logging.getLogger(__name__)


def make_request(packet_type: int, request: Record) -> Tuple[PacketHeader, bytes]:
    body = request.to_bytes()
    return make_header(packet_type, body), body


def unpack_response(packet: Packet, packet_type: int, response_cls: Type[Record]):
    """Validate a response header and decode its body.

    The body is left untouched when the type does not match the request or
    when the server reported an error.
    """
    header = packet.header
    if header.type != packet_type:
        raise UnexpectedResponseType(packet_type, header.type)
    if header.result != 0:
        raise RemoteError(signed_result(header.result), packet_type)
    try:
        return response_cls.from_bytes(packet.body)
    except TruncatedPayload as e:
        raise MalformedResponse(packet_type, e.expected, e.actual) from e


def exchange(conn, packet_type: int, request: Record, response_cls: Type[Record]):
    """Send ``request`` and block until its response is decoded"""
    header, body = make_request(packet_type, request)
    start = time.perf_counter()
    try:
        logger.debug(f"Sending request type {packet_type}, {len(body)} bytes")
        conn.send_packet(header, body)
        logger.debug("Receiving response")
        response = unpack_response(conn.recv_packet(), packet_type, response_cls)
    except ExchangeError:
        conn.stats.failures += 1
        raise
    conn.stats.on_exchange((time.perf_counter() - start) * 1e6)
    return response
