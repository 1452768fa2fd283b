"""Byte caches used for find results: an in-memory expiring cache and a memcached client."""

from __future__ import annotations

import hashlib
import socket
import threading
import time
import zlib
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent import futures

_CLEAN_INTERVAL = 10.0
_MEMCACHED_GET_TIMEOUT = 0.05
_MEMCACHED_PORT = 11211


class CacheError(Exception):
    """Base class for cache errors."""


class CacheNotFoundError(CacheError, LookupError):
    """The key is not in the cache or has expired."""

    def __init__(self, message: str = "cache: not found") -> None:
        super().__init__(message)


class CacheTimeoutError(CacheError, TimeoutError):
    """The cache backend did not answer in time."""

    def __init__(self, message: str = "cache: timeout") -> None:
        super().__init__(message)


class BytesCache(ABC):
    """A cache mapping string keys to byte values with a per-item lifetime."""

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return the cached value or raise CacheNotFoundError."""

    @abstractmethod
    def set(self, key: str, value: bytes, expire: int) -> None:
        """Store a value for ``expire`` seconds."""


class ExpireCache(BytesCache):
    """In-memory cache bounded by the total size of its values in bytes."""

    def __init__(self, maxsize: int, clock: Callable[[], float] = time.monotonic) -> None:
        self._maxsize = maxsize
        self._clock = clock
        self._items: dict[str, tuple[bytes, float]] = {}
        self._size = 0
        self._lock = threading.Lock()
        self._next_clean = clock() + _CLEAN_INTERVAL

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def get(self, key: str) -> bytes:
        now = self._clock()
        with self._lock:
            item = self._items.get(key)
            if item is None:
                raise CacheNotFoundError()
            value, deadline = item
            if deadline <= now:
                self._discard(key)
                raise CacheNotFoundError()
            return value

    def set(self, key: str, value: bytes, expire: int) -> None:
        value = bytes(value)
        size = len(value)
        now = self._clock()
        with self._lock:
            self._discard(key)
            if now >= self._next_clean:
                self._purge_expired(now)
                self._next_clean = now + _CLEAN_INTERVAL
            if self._maxsize:
                if size > self._maxsize:
                    return
                if self._size + size > self._maxsize:
                    self._purge_expired(now)
                while self._size + size > self._maxsize:
                    self._discard(next(iter(self._items)))
            self._items[key] = (value, now + expire)
            self._size += size

    def _discard(self, key: str) -> None:
        item = self._items.pop(key, None)
        if item is not None:
            self._size -= len(item[0])

    def _purge_expired(self, now: float) -> None:
        for key in [k for k, (_, deadline) in self._items.items() if deadline <= now]:
            self._discard(key)


def new_expire_cache(maxsize: int) -> ExpireCache:
    """Create an in-memory cache holding at most ``maxsize`` bytes (0 for unbounded)."""
    return ExpireCache(maxsize)


class _MemcachedProtocolError(CacheError):
    """The memcached server replied with something unexpected."""


def _split_address(server: str) -> tuple[str, int]:
    host, sep, port = server.rpartition(":")
    if not sep:
        return server, _MEMCACHED_PORT
    return host.strip("[]"), int(port)


def _read_line(stream) -> bytes:
    line = stream.readline()
    if not line:
        raise _MemcachedProtocolError("memcache: connection closed")
    return line.rstrip(b"\r\n")


class MemcachedCache(BytesCache):
    """Cache stored on memcached servers; keys are hashed with SHA-256."""

    def __init__(self, prefix: str, servers: list[str] | tuple[str, ...]) -> None:
        if not servers:
            raise ValueError("memcache: no servers configured")
        self._prefix = prefix
        self._servers = [_split_address(s) for s in servers]
        self._timeouts = 0
        self._lock = threading.Lock()
        self._executor = futures.ThreadPoolExecutor(max_workers=8, thread_name_prefix="memcached")

    def _full_key(self, key: str) -> str:
        return self._prefix + hashlib.sha256(key.encode()).hexdigest()

    def _server_for(self, full_key: str) -> tuple[str, int]:
        return self._servers[zlib.crc32(full_key.encode()) % len(self._servers)]

    def _fetch(self, full_key: str) -> bytes:
        with socket.create_connection(self._server_for(full_key), timeout=1.0) as sock:
            sock.sendall(f"get {full_key}\r\n".encode())
            stream = sock.makefile("rb")
            line = _read_line(stream)
            if line == b"END":
                raise CacheNotFoundError()
            fields = line.split()
            if len(fields) < 4 or fields[0] != b"VALUE":
                raise _MemcachedProtocolError(f"memcache: unexpected reply {line!r}")
            length = int(fields[3])
            data = stream.read(length + 2)
            if len(data) != length + 2:
                raise _MemcachedProtocolError("memcache: short read")
            if _read_line(stream) != b"END":
                raise _MemcachedProtocolError("memcache: missing END")
            return data[:length]

    def _store(self, full_key: str, value: bytes, expire: int) -> None:
        with socket.create_connection(self._server_for(full_key), timeout=1.0) as sock:
            header = f"set {full_key} 0 {expire} {len(value)}\r\n".encode()
            sock.sendall(header + value + b"\r\n")
            _read_line(sock.makefile("rb"))

    def get(self, key: str) -> bytes:
        future = self._executor.submit(self._fetch, self._full_key(key))
        done, _ = futures.wait([future], timeout=_MEMCACHED_GET_TIMEOUT)
        if not done:
            with self._lock:
                self._timeouts += 1
            raise CacheTimeoutError()
        return future.result()

    def set(self, key: str, value: bytes, expire: int) -> None:
        future = self._executor.submit(self._store, self._full_key(key), bytes(value), expire)
        future.add_done_callback(lambda f: f.exception())

    def timeouts(self) -> int:
        """Number of get requests that ran out of time."""
        with self._lock:
            return self._timeouts


def new_memcached(prefix: str, *args: str) -> MemcachedCache:
    """Create a memcached cache over the given ``host:port`` servers."""
    return MemcachedCache(prefix, args)