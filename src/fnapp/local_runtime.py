"""Download and launch the standalone local function runtime.

The runtime is a single jar run with ``java``.  It needs a few seconds of
cold start before it even opens its port, so the launcher sleeps a fixed
grace period before it starts probing for readiness.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

import aiohttp

from fnapp.errors import RuntimeStartTimeoutError
from fnapp.logger import logger
from fnapp.registry import ResourceRegistry, SpawnedProcess

ReadinessProbe = Callable[[], Awaitable[bool]]

_DOWNLOAD_CHUNK = 64 * 1024


@dataclass
class LocalRuntime:
    process: asyncio.subprocess.Process
    host: str


async def ensure_runtime_artifact(url: str, dest: Path) -> Path:
    """Download the runtime jar to *dest* unless it is already there."""
    if dest.exists():
        logger.debug("Runtime artifact present", path=str(dest))
        return dest

    dest.parent.mkdir(parents=True, exist_ok=True)
    partial = dest.with_name(dest.name + ".part")
    logger.info("Downloading local runtime", url=url, dest=str(dest))
    timeout = aiohttp.ClientTimeout(total=None, sock_connect=30, sock_read=60)
    try:
        async with (
            aiohttp.ClientSession(timeout=timeout) as session,
            session.get(url) as resp,
        ):
            resp.raise_for_status()
            with partial.open("wb") as fh:
                async for chunk in resp.content.iter_chunked(_DOWNLOAD_CHUNK):
                    fh.write(chunk)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    partial.rename(dest)
    logger.info("Local runtime downloaded", path=str(dest))
    return dest


def http_readiness_probe(host: str, *, timeout: float = 2.0) -> ReadinessProbe:
    """Probe that succeeds once ``GET <host>/api/v1`` answers 2xx."""
    url = f"{host.rstrip('/')}/api/v1"

    async def probe() -> bool:
        try:
            async with (
                aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session,
                session.get(url) as resp,
            ):
                return 200 <= resp.status < 300
        except (aiohttp.ClientError, OSError, TimeoutError):
            return False

    return probe


async def wait_for_ready(
    probe: ReadinessProbe,
    *,
    poll_interval: float,
    timeout: float,
    process: asyncio.subprocess.Process | None = None,
) -> None:
    """Poll *probe* every *poll_interval* seconds for up to *timeout* seconds."""
    deadline = time.monotonic() + timeout
    while True:
        if await probe():
            return
        if process is not None and process.returncode is not None:
            raise RuntimeStartTimeoutError(
                f"Local runtime exited with code {process.returncode} before becoming ready"
            )
        if time.monotonic() >= deadline:
            raise RuntimeStartTimeoutError(
                f"Local runtime did not become ready within {timeout:g}s"
            )
        await asyncio.sleep(poll_interval)


async def start_runtime(
    artifact: Path,
    host: str,
    *,
    registry: ResourceRegistry,
    init_wait_ms: int,
    poll_interval_ms: int,
    timeout_ms: int,
    java_args: list[str] | None = None,
    probe: ReadinessProbe | None = None,
) -> LocalRuntime:
    """Spawn the runtime and wait until it answers.

    The process is registered before readiness is known, so a timeout still
    leaves it in the registry for teardown.
    """
    process = await asyncio.create_subprocess_exec(
        "java",
        *(java_args or []),
        "-jar",
        str(artifact),
        "--no-ui",
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )
    registry.add(SpawnedProcess(name="local-runtime", process=process))
    logger.info("Starting local runtime", host=host, pid=process.pid)

    await asyncio.sleep(init_wait_ms / 1000)
    await wait_for_ready(
        probe or http_readiness_probe(host),
        poll_interval=poll_interval_ms / 1000,
        timeout=timeout_ms / 1000,
        process=process,
    )
    logger.info("Local runtime ready", host=host)
    return LocalRuntime(process=process, host=host)
