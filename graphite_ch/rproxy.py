"""An HTTP reverse proxy with an adjustable delay and forced error status."""

from __future__ import annotations

import http.client
import logging
import re
import threading
import time
from fractions import Fraction
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import SplitResult, urlsplit

_log = logging.getLogger(__name__)

_UNITS = {
    "ns": Fraction(1, 10**9),
    "us": Fraction(1, 10**6),
    "\u00b5s": Fraction(1, 10**6),
    "\u03bcs": Fraction(1, 10**6),
    "ms": Fraction(1, 10**3),
    "s": Fraction(1),
    "m": Fraction(60),
    "h": Fraction(3600),
}
_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|\u00b5s|\u03bcs|ms|s|m|h)")

_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}


def parse_duration(text: str) -> float:
    """Parse a duration such as ``1h15m`` or ``300ms`` into seconds."""
    body = text
    negative = False
    if body[:1] in "+-" and body:
        negative = body[0] == "-"
        body = body[1:]
    if body == "0":
        return 0.0
    if not body:
        raise ValueError(f"time: invalid duration {text!r}")
    total = Fraction(0)
    pos = 0
    while pos < len(body):
        match = _COMPONENT.match(body, pos)
        if match is None:
            raise ValueError(f"time: invalid duration {text!r}")
        total += Fraction(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    return float(-total if negative else total)


def _frac_digits(value: int, precision: int) -> str:
    if not value:
        return ""
    return "." + str(value).rjust(precision, "0").rstrip("0")


def format_duration(seconds: float) -> str:
    """Format seconds the way durations are written in configs, e.g. ``1m30s``."""
    nanos = round(seconds * 10**9)
    negative = nanos < 0
    u = abs(nanos)
    if u == 0:
        return "0s"
    if u < 10**9:
        if u < 10**3:
            text = f"{u}ns"
        elif u < 10**6:
            whole, frac = divmod(u, 10**3)
            text = f"{whole}{_frac_digits(frac, 3)}\u00b5s"
        else:
            whole, frac = divmod(u, 10**6)
            text = f"{whole}{_frac_digits(frac, 6)}ms"
    else:
        secs, frac = divmod(u, 10**9)
        text = f"{secs % 60}{_frac_digits(frac, 9)}s"
        minutes = secs // 60
        if minutes:
            text = f"{minutes % 60}m{text}"
            hours = minutes // 60
            if hours:
                text = f"{hours}h{text}"
    return "-" + text if negative else text


def _joining_slash(a: str, b: str) -> str:
    if a.endswith("/") and b.startswith("/"):
        return a + b[1:]
    if not a.endswith("/") and not b.startswith("/"):
        return a + "/" + b
    return a + b


class _ProxyServer(ThreadingHTTPServer):
    daemon_threads = True
    proxy: "ReverseProxy"


class _ProxyHandler(BaseHTTPRequestHandler):
    server: _ProxyServer

    def log_message(self, format, *args):  # noqa: A002
        _log.debug("%s - %s", self.address_string(), format % args)

    def _write(self, status: int, headers: list[tuple[str, str]], body: bytes) -> None:
        self.send_response(status)
        for name, value in headers:
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def _handle(self) -> None:
        proxy = self.server.proxy
        delay = proxy.get_delay()
        if delay:
            time.sleep(delay)

        status = proxy.get_break_status_code()
        if status:
            self._write(
                status,
                [("Content-Type", "text/plain; charset=utf-8"), ("X-Content-Type-Options", "nosniff")],
                b"\n",
            )
            return

        remote = proxy._remote_parts()
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else None

        path, _, query = self.path.partition("?")
        target = _joining_slash(remote.path, path) if remote.path else path
        if remote.query and query:
            query = remote.query + "&" + query
        elif remote.query:
            query = remote.query
        if query:
            target += "?" + query

        conn_cls = http.client.HTTPSConnection if remote.scheme == "https" else http.client.HTTPConnection
        conn = conn_cls(remote.netloc, timeout=60)
        try:
            conn.putrequest(self.command, target, skip_host=True, skip_accept_encoding=True)
            conn.putheader("Host", remote.netloc)
            forwarded = None
            for name, value in self.headers.items():
                lname = name.lower()
                if lname in _HOP_HEADERS or lname in ("host", "content-length"):
                    continue
                if lname == "x-forwarded-for":
                    forwarded = value
                    continue
                conn.putheader(name, value)
            client_ip = self.client_address[0]
            conn.putheader("X-Forwarded-For", f"{forwarded}, {client_ip}" if forwarded else client_ip)
            if body is not None:
                conn.putheader("Content-Length", str(len(body)))
            conn.endheaders(body)
            response = conn.getresponse()
            data = response.read()
            headers = [
                (name, value)
                for name, value in response.getheaders()
                if name.lower() not in _HOP_HEADERS and name.lower() != "content-length"
            ]
            status = response.status
        except (OSError, http.client.HTTPException):
            self._write(502, [], b"")
            return
        finally:
            conn.close()
        self._write(status, headers, data)

    do_GET = do_POST = do_PUT = do_DELETE = do_HEAD = do_PATCH = do_OPTIONS = _handle


class ReverseProxy:
    """Local HTTP proxy in front of a remote server, used to inject latency or errors."""

    def __init__(self, delay: float = 0.0, break_with_status_code: int = 0) -> None:
        self._lock = threading.Lock()
        self._delay = delay
        self._break_status = break_with_status_code
        self._remote: SplitResult | None = None
        self._server: _ProxyServer | None = None
        self._thread: threading.Thread | None = None

    def start(self, remote_url: str) -> None:
        with self._lock:
            if self._server is not None:
                raise RuntimeError("reverse proxy already started")
            if self._break_status < 0:
                self._break_status = 0
            parts = urlsplit(remote_url)
            if parts.scheme not in ("http", "https") or not parts.netloc:
                raise ValueError(f"invalid remote url: {remote_url!r}")
            self._remote = parts
            server = _ProxyServer(("127.0.0.1", 0), _ProxyHandler)
            server.proxy = self
            self._server = server
            self._thread = threading.Thread(target=server.serve_forever, daemon=True)
            self._thread.start()

    def stop(self) -> None:
        with self._lock:
            server, thread = self._server, self._thread
            self._server = self._thread = None
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join()

    def url(self) -> str:
        with self._lock:
            if self._server is None:
                raise RuntimeError("reverse proxy not started")
            host, port = self._server.server_address[:2]
        return f"http://{host}:{port}"

    def set_delay(self, delay: float) -> None:
        with self._lock:
            self._delay = delay

    def get_delay(self) -> float:
        with self._lock:
            return self._delay

    def set_break_status_code(self, status_code: int) -> None:
        with self._lock:
            self._break_status = status_code

    def get_break_status_code(self) -> int:
        with self._lock:
            return self._break_status

    def _remote_parts(self) -> SplitResult:
        with self._lock:
            if self._remote is None:
                raise RuntimeError("reverse proxy not started")
            return self._remote