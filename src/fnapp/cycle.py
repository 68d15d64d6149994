"""Build-deploy cycle runner with change coalescing.

At most one cycle runs at a time.  A change that arrives while a cycle is
running is not lost and does not start a second cycle: it marks the runner
as having a pending change, and exactly one follow-up cycle runs when the
current one finishes, however many changes arrived meanwhile.

asyncio.create_task doesn't run the coroutine synchronously up to its first
await, so ``notify_change`` moves the state to RUNNING in the synchronous
caller before scheduling.  The check and the transition never straddle an
await, which is what makes the state safe without a lock.
"""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Awaitable, Callable

from fnapp.errors import BuildError, DeployError
from fnapp.logger import logger
from fnapp.types import Endpoint
from fnapp.utils import create_background_task

BuildFn = Callable[[], Awaitable[object]]
DeployFn = Callable[[bool], Awaitable[list[Endpoint]]]
FailureFn = Callable[[Exception], Awaitable[None]]


class CycleState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    RUNNING_WITH_PENDING = "running-with-pending"


class CycleRunner:
    """Serializes build+deploy of all actions.

    *build* packages every action; *deploy* receives ``is_local`` and returns
    the deployed endpoints.  *on_failure* is awaited when a watch-triggered
    cycle fails (the session uses it to close the watcher).
    """

    def __init__(
        self,
        build: BuildFn,
        deploy: DeployFn,
        *,
        is_local: bool,
        on_failure: FailureFn | None = None,
        on_success: Callable[[list[Endpoint]], None] | None = None,
    ) -> None:
        self._build = build
        self._deploy = deploy
        self._is_local = is_local
        self._on_failure = on_failure
        self._on_success = on_success
        self._state = CycleState.IDLE
        self._closed = False
        self._task: asyncio.Task[None] | None = None
        self.cycles_run = 0

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    # -- transitions -----------------------------------------------------

    def notify_change(self, path: str = "") -> asyncio.Task[None] | None:
        """Entry point for the watcher.

        Starts a cycle when idle; otherwise records that one more cycle is
        needed and returns immediately.
        """
        if self._closed:
            return None
        if self._state is not CycleState.IDLE:
            self._state = CycleState.RUNNING_WITH_PENDING
            logger.debug(
                "Change during deployment, will redeploy after completion",
                path=path,
            )
            return None
        self._state = CycleState.RUNNING
        logger.info("Change detected, redeploying actions", path=path)
        self._task = create_background_task(self._watch_cycles(), name="build-deploy")
        return self._task

    def on_cycle_complete(self) -> bool:
        """Finish a cycle. Returns True when exactly one more cycle must run."""
        if self._state is CycleState.RUNNING_WITH_PENDING:
            # Clear the pending flag but stay RUNNING for the follow-up cycle
            self._state = CycleState.RUNNING
            return True
        self._state = CycleState.IDLE
        return False

    def close(self) -> None:
        """Ignore all further change notifications.

        A change already pending is dropped; an in-flight cycle finishes
        but no follow-up cycle starts after it.
        """
        self._closed = True
        if self._state is CycleState.RUNNING_WITH_PENDING:
            self._state = CycleState.RUNNING

    # -- execution -------------------------------------------------------

    async def run_cycle(self) -> list[Endpoint]:
        """Run one build-then-deploy pass and return the deployed endpoints.

        Used directly for the baseline cycle; errors propagate to the caller.
        Raises RuntimeError if a cycle is already running.
        """
        if self._state is not CycleState.IDLE:
            raise RuntimeError("A build-deploy cycle is already running")
        self._state = CycleState.RUNNING
        try:
            return await self._build_and_deploy()
        finally:
            self._state = CycleState.IDLE

    async def _build_and_deploy(self) -> list[Endpoint]:
        try:
            await self._build()
        except BuildError:
            raise
        except Exception as exc:
            raise BuildError(f"Building actions failed: {exc}") from exc
        try:
            endpoints = await self._deploy(self._is_local)
        except DeployError:
            raise
        except Exception as exc:
            raise DeployError(f"Deploying actions failed: {exc}") from exc
        self.cycles_run += 1
        if self._on_success is not None:
            self._on_success(endpoints)
        return endpoints

    async def _watch_cycles(self) -> None:
        while True:
            try:
                endpoints = await self._build_and_deploy()
            except (BuildError, DeployError) as exc:
                logger.error(
                    "Error while deploying actions, stopping auto refresh",
                    err=str(exc),
                    exc_info=exc,
                )
                self._state = CycleState.IDLE
                self._closed = True
                if self._on_failure is not None:
                    await self._on_failure(exc)
                return
            logger.info("Deployment successful", actions=len(endpoints))
            if self._closed:
                self._state = CycleState.IDLE
                return
            if not self.on_cycle_complete():
                return
            logger.info("Code changed during deployment, deploying again")

    async def wait_idle(self) -> None:
        """Wait for an in-flight watch cycle (and its follow-up) to finish."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task})
