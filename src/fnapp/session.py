"""Dev session — startup phases, interrupt handling, teardown.

A :class:`DevSession` stands up the whole local development environment and
owns everything it creates through its :class:`ResourceRegistry`.

Startup runs in explicit phases (see :meth:`DevSession.start`):

1. Backend environment: preflight, local runtime and guest credentials
   (local) or credential validation (remote)
2. Baseline build-deploy cycle
3. Action watcher and frontend config injection
4. UI dev server
5. IDE debug configuration

Interrupts are routed through a ``stop_event`` handed in at construction.
The session installs one SIGINT/SIGTERM handler that sets it, and removes
that handler when it exits, so repeated sessions in one process never stack
handlers.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Awaitable, Callable
from typing import Any

from fnapp.build import build_actions
from fnapp.config import Settings
from fnapp.credentials import (
    install_local_credentials,
    load_credentials,
    write_debug_credentials,
)
from fnapp.cycle import CycleRunner
from fnapp.debug_config import generate_debug_config, write_debug_config
from fnapp.deploy import deploy_actions
from fnapp.errors import CredentialError
from fnapp.local_runtime import ensure_runtime_artifact, start_runtime
from fnapp.logger import logger
from fnapp.manifest import load_manifest
from fnapp.preflight import check_local_prerequisites
from fnapp.registry import ResourceRegistry, StartedWatcher
from fnapp.types import Endpoint, ManifestAction, RuntimeCredentials, SessionInfo
from fnapp.ui_server import UiDevServer
from fnapp.watcher import ChangeWatcher
from fnapp.web_config import inject_web_config, refresh_web_config

BuildFn = Callable[[Settings, list[ManifestAction]], Awaitable[Any]]
DeployFn = Callable[..., Awaitable[list[Endpoint]]]
RuntimeLauncher = Callable[[Settings, ResourceRegistry], Awaitable[Any]]

_SIGNALS = (signal.SIGINT, signal.SIGTERM)


async def launch_local_runtime(settings: Settings, registry: ResourceRegistry) -> Any:
    """Download the runtime if needed, start it, and wait for readiness."""
    rt = settings.local_runtime
    artifact = await ensure_runtime_artifact(rt.jar_url, settings.runtime_jar_path)
    return await start_runtime(
        artifact,
        rt.host,
        registry=registry,
        init_wait_ms=rt.init_wait_ms,
        poll_interval_ms=rt.poll_interval_ms,
        timeout_ms=rt.timeout_ms,
        java_args=rt.java_args,
    )


class DevSession:
    """One ``fnapp dev`` run, from preflight to teardown."""

    def __init__(
        self,
        settings: Settings,
        *,
        is_local: bool = True,
        port: int | None = None,
        stop_event: asyncio.Event | None = None,
        build: BuildFn = build_actions,
        deploy: DeployFn = deploy_actions,
        preflight: Callable[[list[str]], None] = check_local_prerequisites,
        runtime_launcher: RuntimeLauncher = launch_local_runtime,
        ui_server: UiDevServer | None = None,
    ) -> None:
        self.settings = settings
        self.stop_event = stop_event or asyncio.Event()
        self.registry = ResourceRegistry()
        self.info = SessionInfo(
            is_local=is_local,
            ui_port=port if port is not None else settings.web.port,
        )
        self.actions: list[ManifestAction] = []
        self.credentials: RuntimeCredentials | None = None
        self.runner: CycleRunner | None = None
        self.watcher: ChangeWatcher | None = None
        self._build = build
        self._deploy = deploy
        self._preflight = preflight
        self._runtime_launcher = runtime_launcher
        self._ui_server = ui_server or UiDevServer(
            settings.web_dist_dev_dir,
            host=settings.web.host,
            bundler_command=settings.web.bundler_command,
        )
        self._installed_signals: list[signal.Signals] = []
        self._web_config_injected = False

    # ------------------------------------------------------------------
    # Interrupt handling
    # ------------------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in _SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Not the main thread, or a platform without signal support
                continue
            self._installed_signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed_signals:
            loop.remove_signal_handler(sig)
        self._installed_signals.clear()

    def _on_signal(self, sig: signal.Signals) -> None:
        if not self.stop_event.is_set():
            logger.info("Interrupt received, shutting down", signal=sig.name)
        self.stop_event.set()

    # ------------------------------------------------------------------
    # Startup phases
    # ------------------------------------------------------------------

    async def _prepare_backend(self) -> RuntimeCredentials:
        s = self.settings
        keys = s.credentials.keys
        if self.info.is_local:
            self._preflight(list(s.local_runtime.required_tools))
            await self._runtime_launcher(s, self.registry)
            install_local_credentials(
                s.env_file_path,
                s.env_backup_path,
                s.local_runtime.host,
                s.local_runtime.namespace,
                s.local_runtime.auth,
                registry=self.registry,
                keys=keys,
            )
        creds = load_credentials(s.env_file_path, keys)
        if creds is None:
            raise CredentialError(
                "Missing runtime credentials: set "
                f"{', '.join(keys)} in {s.env_file_path.name} or the environment"
            )
        return creds

    def _make_runner(self, credentials: RuntimeCredentials) -> CycleRunner:
        s = self.settings

        async def build() -> Any:
            return await self._build(s, self.actions)

        async def deploy(is_local: bool) -> list[Endpoint]:
            return await self._deploy(s, self.actions, credentials, is_local_dev=is_local)

        return CycleRunner(
            build,
            deploy,
            is_local=self.info.is_local,
            on_failure=self._on_cycle_failure,
            on_success=self._on_cycle_success,
        )

    async def _on_cycle_failure(self, exc: Exception) -> None:
        if self.watcher is not None:
            await self.watcher.close()
        logger.warning("Auto refresh stopped; fix the error and restart fnapp dev", err=str(exc))

    def _on_cycle_success(self, endpoints: list[Endpoint]) -> None:
        self.info.endpoints = endpoints
        if self._web_config_injected:
            refresh_web_config(self.settings.web_src_dir / self.settings.web.config_file, endpoints)

    async def _start_backend(self) -> None:
        s = self.settings
        self.credentials = await self._prepare_backend()
        write_debug_credentials(s.debug_props_path, self.credentials, registry=self.registry)

        self.runner = self._make_runner(self.credentials)
        logger.info("Building and deploying actions", count=len(self.actions))
        self.info.endpoints = await self.runner.run_cycle()

        self.watcher = ChangeWatcher(s.actions_src_dir, self.runner.notify_change)
        self.watcher.start()
        self.registry.add(StartedWatcher(watcher=self.watcher))

    async def _start_frontend(self) -> None:
        s = self.settings
        if self.info.has_backend:
            inject_web_config(
                s.web_src_dir / s.web.config_file,
                self.info.endpoints,
                registry=self.registry,
            )
            self._web_config_injected = True
        bound_port = await self._ui_server.serve(
            s.web_src_dir / s.web.entry,
            self.info.ui_port,
            registry=self.registry,
        )
        self.info.frontend_url = f"http://localhost:{bound_port}"

    def _write_debug_config(self) -> None:
        s = self.settings
        document = generate_debug_config(
            self.actions,
            self.info.endpoints,
            self.info.has_frontend,
            self.info.frontend_url,
            project_root=s.project_root,
            settings=s,
        )
        write_debug_config(
            s.launch_file_path,
            document,
            registry=self.registry,
            backup=s.launch_backup_path,
        )

    async def start(self) -> SessionInfo:
        """Bring everything up. On failure the caller must call :meth:`teardown`."""
        s = self.settings
        self.actions = load_manifest(s.manifest_path)
        self.info.has_backend = bool(self.actions) and s.actions_src_dir.is_dir()
        self.info.has_frontend = (s.web_src_dir / s.web.entry).exists()
        if not (self.info.has_backend or self.info.has_frontend):
            logger.warning(
                "Nothing to run: no actions in the manifest and no web entry",
                manifest=str(s.manifest_path),
                web_entry=str(s.web_src_dir / s.web.entry),
            )

        if self.info.has_backend:
            await self._start_backend()
        if self.info.has_frontend:
            await self._start_frontend()
        if self.info.has_backend or self.info.has_frontend:
            self._write_debug_config()

        for endpoint in self.info.endpoints:
            logger.info("Action available", action=endpoint.name, url=endpoint.url)
        if self.info.frontend_url:
            logger.info("Frontend available", url=self.info.frontend_url)
        return self.info

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def teardown(self) -> None:
        """Release every registered resource. Safe to call more than once."""
        if self.runner is not None:
            self.runner.close()
            await self.runner.wait_idle()
        await self.registry.teardown()

    async def run(self) -> SessionInfo:
        """Start, wait for an interrupt, tear down.

        A startup error triggers teardown and is then re-raised; if teardown
        fails as well, that failure is logged and the startup error wins.
        An interrupt that arrives during startup takes effect once startup
        has finished or failed.
        """
        self._install_signal_handlers()
        try:
            try:
                await self.start()
            except BaseException as exc:
                logger.error("Dev session failed to start, cleaning up", err=str(exc))
                try:
                    await self.teardown()
                except Exception as teardown_exc:
                    logger.error("Cleanup after failed start also failed", exc_info=teardown_exc)
                raise

            logger.info("Press Ctrl+C to stop")
            await self.stop_event.wait()
            await self.teardown()
            logger.info("Dev session stopped")
            return self.info
        finally:
            self._remove_signal_handlers()
