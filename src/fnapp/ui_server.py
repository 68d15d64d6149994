"""Bundler in watch mode plus a static HTTP server for the frontend.

The bundler writes its output to the dev dist directory; an embedded aiohttp
server serves that directory.  If the requested port is taken, the server
binds an OS-chosen port instead, and :meth:`UiDevServer.serve` returns the
port that was actually bound.
"""

from __future__ import annotations

import asyncio
import errno
from pathlib import Path

from aiohttp import web

from fnapp.logger import logger
from fnapp.registry import BoundServer, ResourceRegistry, SpawnedProcess


def _index_handler(dist_dir: Path, entry_name: str):
    async def handle(request: web.Request) -> web.StreamResponse:
        index = dist_dir / entry_name
        if not index.exists():
            return web.Response(status=503, text="Bundle not ready yet, reload in a moment.")
        return web.FileResponse(index)

    return handle


class UiDevServer:
    """Serves the frontend during a dev session."""

    def __init__(
        self,
        dist_dir: Path,
        *,
        host: str = "127.0.0.1",
        bundler_command: list[str] | None = None,
    ) -> None:
        self.dist_dir = dist_dir
        self.host = host
        self.bundler_command = bundler_command or []

    async def _start_bundler(self, entry_file: Path, registry: ResourceRegistry) -> None:
        argv = [
            part.format(entry=str(entry_file), dist=str(self.dist_dir))
            for part in self.bundler_command
        ]
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(entry_file.parent),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        registry.add(SpawnedProcess(name="ui-bundler", process=process))
        logger.info("Bundler started", command=argv[0], pid=process.pid)

    async def serve(
        self,
        entry_file: Path,
        requested_port: int,
        *,
        registry: ResourceRegistry,
    ) -> int:
        """Start bundling *entry_file* and serving it; return the bound port."""
        self.dist_dir.mkdir(parents=True, exist_ok=True)
        if self.bundler_command:
            await self._start_bundler(entry_file, registry)

        app = web.Application()
        app.router.add_get("/", _index_handler(self.dist_dir, entry_file.name))
        app.router.add_static("/", self.dist_dir, show_index=False)

        runner = web.AppRunner(app)
        await runner.setup()
        registry.add(BoundServer(name="ui-dev-server", runner=runner))

        site = web.TCPSite(runner, self.host, requested_port)
        try:
            await site.start()
        except OSError as exc:
            if exc.errno != errno.EADDRINUSE:
                raise
            await site.stop()
            logger.warning("UI port in use, picking a free one", requested=requested_port)
            await web.TCPSite(runner, self.host, 0).start()

        bound_port = runner.addresses[0][1]
        logger.info("UI dev server listening", port=bound_port, dist=str(self.dist_dir))
        return bound_port
