"""Tests for the local runtime launcher and its readiness wait."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiohttp import web

from fnapp.errors import RuntimeStartTimeoutError
from fnapp.local_runtime import (
    ensure_runtime_artifact,
    http_readiness_probe,
    start_runtime,
    wait_for_ready,
)
from fnapp.registry import ResourceRegistry, SpawnedProcess


def _fake_process(returncode=None):
    proc = MagicMock()
    proc.pid = 1234
    proc.returncode = returncode
    proc.wait = AsyncMock(return_value=0)
    return proc


def _probe_after(n: int):
    """Probe that answers ready on its n-th call (never, when n is 0)."""
    calls = 0

    async def probe() -> bool:
        nonlocal calls
        calls += 1
        return n > 0 and calls >= n

    probe.calls = lambda: calls  # type: ignore[attr-defined]
    return probe


class TestWaitForReady:
    async def test_returns_on_first_success(self):
        probe = _probe_after(1)
        await wait_for_ready(probe, poll_interval=0.01, timeout=1)
        assert probe.calls() == 1

    async def test_polls_until_ready(self):
        probe = _probe_after(3)
        await wait_for_ready(probe, poll_interval=0.01, timeout=1)
        assert probe.calls() == 3

    async def test_gives_up_after_timeout(self):
        probe = _probe_after(0)
        started = time.monotonic()

        with pytest.raises(RuntimeStartTimeoutError, match="did not become ready"):
            await wait_for_ready(probe, poll_interval=0.02, timeout=0.1)

        elapsed = time.monotonic() - started
        assert 0.1 <= elapsed < 0.1 + 0.02 + 0.2
        assert probe.calls() >= 2

    async def test_exited_process_fails_fast(self):
        with pytest.raises(RuntimeStartTimeoutError, match="exited with code 1"):
            await wait_for_ready(
                _probe_after(0),
                poll_interval=0.01,
                timeout=10,
                process=_fake_process(returncode=1),
            )


class TestStartRuntime:
    async def test_process_registered_and_ready(self, tmp_path: Path):
        registry = ResourceRegistry()
        proc = _fake_process()

        with patch(
            "fnapp.local_runtime.asyncio.create_subprocess_exec",
            AsyncMock(return_value=proc),
        ) as spawn:
            runtime = await start_runtime(
                tmp_path / "runtime.jar",
                "http://localhost:3233",
                registry=registry,
                init_wait_ms=0,
                poll_interval_ms=10,
                timeout_ms=1000,
                java_args=["-Dwhisk.concurrency-limit.max=10"],
                probe=_probe_after(2),
            )

        assert runtime.process is proc
        argv = spawn.call_args.args
        assert argv == (
            "java",
            "-Dwhisk.concurrency-limit.max=10",
            "-jar",
            str(tmp_path / "runtime.jar"),
            "--no-ui",
        )
        [record] = registry.records
        assert isinstance(record, SpawnedProcess)
        assert record.process is proc

    async def test_timeout_leaves_process_registered(self, tmp_path: Path):
        registry = ResourceRegistry()
        proc = _fake_process()
        started = time.monotonic()

        with (
            patch(
                "fnapp.local_runtime.asyncio.create_subprocess_exec",
                AsyncMock(return_value=proc),
            ),
            pytest.raises(RuntimeStartTimeoutError),
        ):
            await start_runtime(
                tmp_path / "runtime.jar",
                "http://localhost:3233",
                registry=registry,
                init_wait_ms=50,
                poll_interval_ms=20,
                timeout_ms=100,
                probe=_probe_after(0),
            )

        elapsed = time.monotonic() - started
        # No earlier than init wait + timeout, no later than one extra poll (plus slack)
        assert 0.05 + 0.1 <= elapsed < 0.05 + 0.1 + 0.02 + 0.2
        assert [r.kind for r in registry.records] == ["process-spawned"]
        await registry.teardown()
        proc.terminate.assert_called_once()


class TestEnsureRuntimeArtifact:
    async def test_present_artifact_not_downloaded(self, tmp_path: Path):
        jar = tmp_path / "runtime.jar"
        jar.write_bytes(b"jar")

        with patch("fnapp.local_runtime.aiohttp.ClientSession") as session_cls:
            assert await ensure_runtime_artifact("http://unused", jar) == jar

        session_cls.assert_not_called()

    async def test_downloads_missing_artifact(self, tmp_path: Path):
        payload = b"PK\x03\x04" + b"x" * 200_000

        async def handle(request: web.Request) -> web.Response:
            return web.Response(body=payload)

        app = web.Application()
        app.router.add_get("/runtime.jar", handle)
        runner = web.AppRunner(app)
        await runner.setup()
        await web.TCPSite(runner, "127.0.0.1", 0).start()
        port = runner.addresses[0][1]
        try:
            dest = tmp_path / "cache" / "runtime.jar"
            await ensure_runtime_artifact(f"http://127.0.0.1:{port}/runtime.jar", dest)
        finally:
            await runner.cleanup()

        assert dest.read_bytes() == payload
        assert not (tmp_path / "cache" / "runtime.jar.part").exists()

    async def test_failed_download_leaves_nothing(self, tmp_path: Path):
        app = web.Application()
        runner = web.AppRunner(app)
        await runner.setup()
        await web.TCPSite(runner, "127.0.0.1", 0).start()
        port = runner.addresses[0][1]
        dest = tmp_path / "runtime.jar"
        try:
            with pytest.raises(Exception, match="404"):
                await ensure_runtime_artifact(f"http://127.0.0.1:{port}/missing.jar", dest)
        finally:
            await runner.cleanup()

        assert not dest.exists()
        assert not (tmp_path / "runtime.jar.part").exists()


class TestHttpReadinessProbe:
    async def test_ready_on_2xx(self):
        async def handle(request: web.Request) -> web.Response:
            return web.json_response({"api_paths": []})

        app = web.Application()
        app.router.add_get("/api/v1", handle)
        runner = web.AppRunner(app)
        await runner.setup()
        await web.TCPSite(runner, "127.0.0.1", 0).start()
        port = runner.addresses[0][1]
        try:
            assert await http_readiness_probe(f"http://127.0.0.1:{port}")() is True
        finally:
            await runner.cleanup()

    async def test_not_ready_when_nothing_listens(self):
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        assert await http_readiness_probe(f"http://127.0.0.1:{port}", timeout=1)() is False
