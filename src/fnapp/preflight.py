"""Preflight checks for local development tooling.

Runs before the session creates anything, so a missing tool is reported
while there is still nothing to clean up.  PATH lookups run first (cheap,
no subprocess) and daemon liveness last.
"""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Iterable

from fnapp.errors import DevEnvironmentError
from fnapp.logger import logger

_INSTALL_HINTS = {
    "java": "Install a Java runtime (11 or later), e.g. from https://adoptium.net/",
    "docker": "Install Docker from https://docs.docker.com/get-docker/",
}


def check_tool_installed(tool: str) -> None:
    """Raise if *tool* is not on PATH."""
    if shutil.which(tool) is None:
        hint = _INSTALL_HINTS.get(tool, "")
        raise DevEnvironmentError(
            f"'{tool}' is required for local development but was not found on PATH. {hint}".strip()
        )


def check_docker_running(*, timeout: float = 10) -> None:
    """Raise if the docker daemon does not answer ``docker info``."""
    try:
        subprocess.run(
            ["docker", "info"],
            capture_output=True,
            check=True,
            timeout=timeout,
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError) as exc:
        raise DevEnvironmentError(
            "Docker is required for local development but is not running. "
            "Start Docker Desktop, or on Linux: sudo systemctl start docker"
        ) from exc
    logger.debug("Docker daemon is running")


def check_local_prerequisites(tools: Iterable[str] = ("java", "docker")) -> None:
    """Verify every local tool the runtime needs, cheapest checks first."""
    tools = list(tools)
    for tool in tools:
        check_tool_installed(tool)
    if "docker" in tools:
        check_docker_running()
    logger.info("Local prerequisites satisfied", tools=tools)
