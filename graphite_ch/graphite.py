"""A graphite-clickhouse process run locally for tests."""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
import tempfile
import urllib.error
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .netutil import get_free_tcp_port
from .templating import write_config

DEFAULT_BINARY = "./graphite-clickhouse"
LOG_NAME = "graphite-clickhouse.log"


@dataclass
class GraphiteClickhouse:
    """graphite-clickhouse settings and the running process."""

    binary: str = ""
    config_tpl: str = ""
    test_dir: str = ""
    tz: str = ""
    _store_dir: str = field(default="", init=False, repr=False, compare=False)
    _config_file: str = field(default="", init=False, repr=False, compare=False)
    _address: str = field(default="", init=False, repr=False, compare=False)
    _process: subprocess.Popen | None = field(default=None, init=False, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GraphiteClickhouse:
        return cls(
            binary=str(data.get("binary", "")),
            config_tpl=str(data.get("template", "")),
            tz=str(data.get("tz", "")),
        )

    def start(self, test_dir: str, ch_url: str, ch_proxy_url: str, ch_tls_url: str) -> None:
        """Render the config and start the process."""
        if self._process is not None:
            raise RuntimeError("graphite-clickhouse already started")
        if not self.binary:
            self.binary = DEFAULT_BINARY
        if not self.config_tpl:
            raise ValueError("graphite-clickhouse config template not set")

        self._store_dir = tempfile.mkdtemp(prefix="graphite-clickhouse")
        try:
            self._address = get_free_tcp_port("")
            self.test_dir = os.path.abspath(test_dir)
            self._config_file = os.path.join(self._store_dir, "graphite-clickhouse.conf")
            write_config(
                os.path.join(test_dir, self.config_tpl),
                self._config_file,
                {
                    "CLICKHOUSE_URL": ch_url,
                    "CLICKHOUSE_TLS_URL": ch_tls_url,
                    "PROXY_URL": ch_proxy_url,
                    "GCH_ADDR": self._address,
                    "GCH_DIR": self._store_dir,
                    "TEST_DIR": self.test_dir,
                },
            )
            env = {"TZ": self.tz} if self.tz else None
            self._process = subprocess.Popen([self.binary, "-config", self._config_file], env=env)
        except Exception:
            self.cleanup()
            raise

    def alive(self) -> bool:
        if self._process is None:
            return False
        try:
            with urllib.request.urlopen(self.url() + "/alive", timeout=5) as response:
                return response.status == 200
        except (urllib.error.URLError, OSError):
            return False

    def stop(self, cleanup: bool) -> None:
        """Kill the process; with ``cleanup`` also remove its working directory."""
        try:
            process = self._process
            if process is None:
                return
            process.kill()
            process.wait()
        finally:
            if cleanup:
                self.cleanup()

    def cleanup(self) -> None:
        if self._store_dir:
            shutil.rmtree(self._store_dir, ignore_errors=True)
            self._store_dir = ""
            self._process = None

    def url(self) -> str:
        return "http://" + self._address

    def cmd(self) -> str:
        """The command line the process was started with."""
        if self._process is None:
            raise RuntimeError("graphite-clickhouse not started")
        return " ".join(str(arg) for arg in self._process.args)

    def grep(self, text: str) -> str:
        """Print log lines containing ``text`` to stderr and return them."""
        matched = ""
        try:
            with open(os.path.join(self._store_dir, LOG_NAME), encoding="utf-8", errors="replace") as fh:
                matched = "".join(line for line in fh if text in line)
        except OSError:
            pass
        sys.stderr.write(f"GREP {matched}")
        return matched