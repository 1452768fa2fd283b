"""A carbon-clickhouse receiver run in a docker container for tests."""

from __future__ import annotations

import os
import shutil
import sys
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .docker import Docker, DockerError
from .netutil import get_free_tcp_port
from .templating import write_config

CONTAINER_NAME = "carbon-clickhouse-gch-test"
DEFAULT_VERSION = "0.11.4"
DEFAULT_IMAGE = "ghcr.io/go-graphite/carbon-clickhouse"


@dataclass
class CarbonClickhouse:
    """carbon-clickhouse settings and the running container."""

    version: str = ""
    docker_image: str = ""
    template: str = ""
    tz: str = ""
    docker: Docker = field(default_factory=Docker, repr=False, compare=False)
    _address: str = field(default="", init=False, repr=False, compare=False)
    _container: str = field(default="", init=False, repr=False, compare=False)
    _store_dir: str = field(default="", init=False, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CarbonClickhouse:
        return cls(
            version=str(data.get("version", "")),
            docker_image=str(data.get("image", "")),
            template=str(data.get("template", "")),
            tz=str(data.get("tz", "")),
        )

    def start(self, test_dir: str, clickhouse_url: str) -> str:
        """Render the config and start the container; return the docker output."""
        if not self.version:
            self.version = DEFAULT_VERSION
        if not self.docker_image:
            self.docker_image = DEFAULT_IMAGE

        self._address = get_free_tcp_port("")
        self._container = CONTAINER_NAME
        self._store_dir = tempfile.mkdtemp(prefix="carbon-clickhouse")

        try:
            write_config(
                os.path.join(test_dir, self.template),
                os.path.join(self._store_dir, "carbon-clickhouse.conf"),
                {"CLICKHOUSE_URL": clickhouse_url, "CCH_ADDR": self._address},
            )
        except Exception:
            self.cleanup()
            raise

        tz = os.environ.get("TZ", "")
        args = [
            "run", "-d",
            "--name", self._container,
            "-p", self._address + ":2003",
            "-v", self._store_dir + ":/etc/carbon-clickhouse",
            # same timezone as graphite-clickhouse, or dates get shifted
            "-v", "/etc/timezone:/etc/timezone:ro",
            "-v", "/etc/localtime:/etc/localtime:ro",
            "-e", "TZ=" + tz,
            "--network", self.docker.network,
            f"{self.docker_image}:{self.version}",
        ]
        output = self.docker.run(*args)

        local_date = datetime.now().astimezone().strftime("%a %b %d %H:%M:%S %Z %Y")
        try:
            remote_date = self.docker.container_exec(self._container, ["date"])
        except DockerError as exc:
            remote_date = str(exc)
        sys.stdout.write(f"date local {local_date}, on carbon-clickhouse {remote_date}\n")
        return output

    def stop(self, delete: bool) -> str:
        if not self._container:
            return ""
        output = self.docker.run("stop", self._container)
        if delete:
            return self.delete()
        return output

    def delete(self) -> str:
        if not self._container:
            return ""
        try:
            output = self.docker.run("rm", self._container)
            self._container = ""
        finally:
            self.cleanup()
        return output

    def cleanup(self) -> None:
        """Remove the directory holding the rendered config."""
        if self._store_dir:
            shutil.rmtree(self._store_dir, ignore_errors=True)
            self._store_dir = ""

    def address(self) -> str:
        return self._address

    def container(self) -> str:
        return self._container