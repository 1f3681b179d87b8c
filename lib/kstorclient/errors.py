# errors.py
#
# Exception hierarchy for the client

from typing import Optional


class KStorError(Exception):
    """Base class for every error raised by kstorclient"""


class ClientConnectionError(KStorError):
    """Could not dial the storage server"""

    def __init__(self, address, reason):
        super().__init__(f"Dial {address} failed: {reason}")
        self.address = address
        self.reason = reason


class TruncatedPayload(KStorError, ValueError):
    def __init__(self, record, expected: int, actual: int):
        super().__init__(
            f"{record} needs {expected} bytes, got {actual}"
        )
        self.record = record
        self.expected = expected
        self.actual = actual


class InvalidInput(KStorError, ValueError):
    """Caller supplied a wrongly sized buffer, nothing was sent.

    ``actual`` is None when the value was not a byte buffer at all.
    """

    template = "Invalid input size {actual}, should be {expected}"

    def __init__(self, expected: int, actual: Optional[int], message: Optional[str] = None):
        super().__init__(message or self.template.format(expected=expected, actual=actual))
        self.expected = expected
        self.actual = actual


class InvalidIdSize(InvalidInput):
    template = "Invalid chunk id size {actual}, should be {expected}"


class InvalidDataSize(InvalidInput):
    template = "Invalid data size {actual}, should be {expected}"


class InputTooLarge(InvalidInput):
    template = "Ping value too big: {actual} bytes, limit is {expected}"


class ExchangeError(KStorError):
    """An in-flight exchange failed"""


class ClientIOError(ExchangeError):
    """Short or failed read/write; the connection is no longer usable"""

    def __init__(self, message, expected: int = 0, actual: int = 0):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class ProtocolError(ExchangeError):
    """Stream is corrupted or out of sync"""

    def __init__(self, message, header=None):
        super().__init__(message)
        self.header = header


class UnexpectedResponseType(ExchangeError):
    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Unexpected packet type {actual}, should be {expected}"
        )
        self.expected = expected
        self.actual = actual


class RemoteError(ExchangeError):
    """The server answered with a nonzero result code"""

    def __init__(self, code: int, packet_type: int = 0):
        super().__init__(f"Packet error: {code}")
        self.code = code
        self.packet_type = packet_type


class MalformedResponse(ExchangeError):
    def __init__(self, packet_type: int, expected: int, actual: int):
        super().__init__(
            f"Response body for type {packet_type} is {actual} bytes, "
            f"needs {expected}"
        )
        self.packet_type = packet_type
        self.expected = expected
        self.actual = actual
