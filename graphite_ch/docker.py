"""Thin wrappers over the docker command line."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field

DEFAULT_NETWORK = "graphite-ch-test"


class DockerError(Exception):
    """A docker command failed."""

    def __init__(self, message: str, output: str = "", returncode: int | None = None) -> None:
        super().__init__(message)
        self.output = output
        self.returncode = returncode


def _default_binary() -> str:
    return os.environ.get("DOCKER_E2E") or "docker"


@dataclass
class Docker:
    """Runs docker subcommands with a configurable binary and network."""

    binary: str = field(default_factory=_default_binary)
    network: str = DEFAULT_NETWORK

    def run(self, *args: str) -> str:
        """Run a docker subcommand and return its combined output without surrounding newlines."""
        if not self.binary:
            raise DockerError("docker not set")
        try:
            completed = subprocess.run(
                [self.binary, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise DockerError(str(exc)) from exc
        output = completed.stdout.strip("\n")
        if completed.returncode != 0:
            raise DockerError(
                f"exit status {completed.returncode}: {output}",
                output=output,
                returncode=completed.returncode,
            )
        return output

    def image_delete(self, image: str, version: str) -> str:
        return self.run("rmi", f"{image}:{version}")

    def container_exists(self, name: str) -> bool:
        try:
            self.run("inspect", "--format", "'{{.Name}}'", name)
        except DockerError:
            return False
        return True

    def container_remove(self, name: str) -> str:
        return self.run("rm", "-f", name)

    def container_exec(self, name: str, args: list[str]) -> str:
        return self.run("exec", name, *args)


def cmd_exec(program: str, *args: str) -> str:
    """Run a program and return its combined output; raise CalledProcessError on failure."""
    completed = subprocess.run(
        [program, *args],
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        check=False,
    )
    completed.check_returncode()
    return completed.stdout