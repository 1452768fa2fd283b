"""Network helpers: free port lookup and plain-text metric sending."""

from __future__ import annotations

import socket
import time
from collections.abc import Iterable
from typing import Protocol


class PlainPoint(Protocol):
    value: float
    timestamp: int
    delay: float


class PlainMetric(Protocol):
    name: str
    points: Iterable[PlainPoint]


def _split_host_port(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {address!r}")
    return host.strip("[]"), int(port)


def _join_host_port(host: str, port: int) -> str:
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


def get_free_tcp_port(name: str) -> str:
    """Return ``host:port`` of a TCP port that was free at the time of the call."""
    if not name:
        name = "127.0.0.1:0"
    elif ":" not in name:
        name = name + ":0"
    host, port = _split_host_port(name)
    family, kind, proto, _, sockaddr = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)[0]
    with socket.socket(family, kind, proto) as sock:
        sock.bind(sockaddr)
        bound_host, bound_port = sock.getsockname()[:2]
    return _join_host_port(bound_host, bound_port)


def send_plain(address: str, metrics: Iterable[PlainMetric]) -> None:
    """Send points over TCP in the plain ``name value timestamp`` line format."""
    with socket.create_connection(_split_host_port(address), timeout=1.0) as conn:
        buffer = bytearray()
        for metric in metrics:
            conn.settimeout(1.0)
            for point in metric.points:
                buffer += f"{metric.name} {point.value:f} {int(point.timestamp)}\n".encode()
                if point.delay > 0:
                    conn.sendall(buffer)
                    buffer.clear()
                    time.sleep(point.delay)
        if buffer:
            conn.sendall(buffer)