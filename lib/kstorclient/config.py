# config.py
#
# Client configuration, environment overrides the defaults

import os
from dataclasses import dataclass
from typing import Optional, Tuple, Union

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8111


def parse_address(address: Union[str, Tuple[str, int]]) -> Tuple[str, int]:
    """Accept "host:port", "[v6host]:port" or a (host, port) tuple"""
    if isinstance(address, tuple):
        host, port = address
        return host, int(port)
    host, sep, port = address.rpartition(":")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not sep or not host:
        raise ValueError(f"Address {address!r} is not host:port")
    return host, int(port)


@dataclass
class ClientConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    # seconds, None blocks forever
    timeout: Optional[float] = None

    @property
    def address(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(cls, environ=None) -> "ClientConfig":
        env = os.environ if environ is None else environ
        timeout = env.get("KSTOR_TIMEOUT")
        return cls(
            host=env.get("KSTOR_HOST") or DEFAULT_HOST,
            port=int(env.get("KSTOR_PORT") or DEFAULT_PORT),
            timeout=float(timeout) if timeout else None,
        )
