import socket
import threading
import time
from dataclasses import dataclass, field

import pytest

from graphite_ch.netutil import get_free_tcp_port, send_plain


@dataclass
class P:
    value: float
    timestamp: int
    delay: float = 0.0


@dataclass
class M:
    name: str
    points: list = field(default_factory=list)


def _port(address):
    return int(address.rpartition(":")[2])


def test_free_port_default():
    address = get_free_tcp_port("")
    assert address.startswith("127.0.0.1:")
    port = _port(address)
    assert port > 0
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", port))


def test_free_port_host_only():
    address = get_free_tcp_port("127.0.0.1")
    assert address.startswith("127.0.0.1:")
    assert _port(address) > 0


def test_free_port_invalid_host():
    with pytest.raises(OSError):
        get_free_tcp_port("256.256.256.256")


@pytest.fixture
def collector():
    server = socket.socket()
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    received = bytearray()

    def serve():
        conn, _ = server.accept()
        with conn:
            while chunk := conn.recv(4096):
                received.extend(chunk)

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    host, port = server.getsockname()
    yield f"{host}:{port}", received, thread
    server.close()


def test_send_plain_format(collector):
    address, received, thread = collector
    result = send_plain(address, [M("a.b", [P(1.5, 100)]), M("c", [P(2, 200), P(3, 300)])])
    thread.join(5)
    assert result is None
    lines = received.decode().splitlines(keepends=True)
    assert lines[0] == "a.b 1.500000 100\n"
    assert len(lines) == 3
    assert [line.split()[0] for line in lines] == ["a.b", "c", "c"]
    assert [int(line.split()[2]) for line in lines] == [100, 200, 300]


def test_send_plain_delay(collector):
    address, received, thread = collector
    started = time.monotonic()
    result = send_plain(address, [M("x", [P(1, 10, delay=0.2), P(2, 20)])])
    elapsed = time.monotonic() - started
    thread.join(5)
    assert result is None
    assert elapsed >= 0.2
    assert received.decode().count("\n") == 2


def test_send_plain_refused():
    address = get_free_tcp_port("")
    with pytest.raises(OSError):
        send_plain(address, [M("x", [P(1, 10)])])