"""Resource registry: every reversible side effect of a dev session.

Each step of the session that touches the outside world (writes a file,
spawns a process, binds a port, starts a watcher) registers a record here as
soon as the side effect exists.  Teardown walks the records and undoes each
one.  Records are independent of each other and of the reason they were
created, so the undo of a record is a function of the record alone.

Undo is idempotent: a record remembers that it has been released, and a
resource that has already disappeared (file deleted by hand, process exited
on its own) is treated as released.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from fnapp.errors import StaleBackupError, TeardownError
from fnapp.logger import logger

if TYPE_CHECKING:
    from aiohttp import web

    from fnapp.watcher import ChangeWatcher

_PROCESS_STOP_TIMEOUT = 5.0  # seconds between SIGTERM and SIGKILL


@dataclass
class ResourceRecord(ABC):
    kind: ClassVar[str]
    released: bool = field(default=False, init=False)

    @property
    @abstractmethod
    def label(self) -> str:
        """Human-readable identity for logs."""

    @abstractmethod
    async def _undo(self) -> None: ...

    async def undo(self) -> None:
        """Release the resource once; later calls do nothing."""
        if self.released:
            return
        # Mark first so a failing undo is not retried on a second teardown
        self.released = True
        await self._undo()


@dataclass
class CreatedFile(ResourceRecord):
    """A file that did not exist before the session. Undo deletes it."""

    kind: ClassVar[str] = "temp-file-created"
    path: Path

    @property
    def label(self) -> str:
        return str(self.path)

    async def _undo(self) -> None:
        self.path.unlink(missing_ok=True)


@dataclass
class CreatedDirectory(ResourceRecord):
    """A directory that did not exist before the session.

    Undo removes it only when it is empty again, so anything else put there
    meanwhile survives.
    """

    kind: ClassVar[str] = "directory-created"
    path: Path

    @property
    def label(self) -> str:
        return str(self.path)

    async def _undo(self) -> None:
        if not self.path.is_dir():
            return
        if any(self.path.iterdir()):
            logger.info("Leaving non-empty directory in place", path=str(self.path))
            return
        self.path.rmdir()


@dataclass
class BackedUpFile(ResourceRecord):
    """A file overwritten after moving the original aside.

    Undo moves the backup back over the file, so the restored content is
    the original bytes.
    """

    kind: ClassVar[str] = "file-overwritten-with-backup"
    path: Path
    backup: Path

    @property
    def label(self) -> str:
        return str(self.path)

    async def _undo(self) -> None:
        if self.backup.exists():
            os.replace(self.backup, self.path)


@dataclass
class UnsetEnvironment(ResourceRecord):
    """Variables removed from ``os.environ``. Undo puts the old values back."""

    kind: ClassVar[str] = "environment-vars-unset"
    values: dict[str, str]

    @property
    def label(self) -> str:
        return ", ".join(sorted(self.values))

    async def _undo(self) -> None:
        os.environ.update(self.values)


@dataclass
class SpawnedProcess(ResourceRecord):
    """A child process. Undo terminates it, escalating to kill."""

    kind: ClassVar[str] = "process-spawned"
    name: str
    process: asyncio.subprocess.Process

    @property
    def label(self) -> str:
        return f"{self.name} (pid {self.process.pid})"

    async def _undo(self) -> None:
        proc = self.process
        if proc.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=_PROCESS_STOP_TIMEOUT)
        except TimeoutError:
            logger.warning("Process did not exit after SIGTERM, killing", process=self.name)
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()


@dataclass
class BoundServer(ResourceRecord):
    """An aiohttp server holding a port. Undo shuts it down."""

    kind: ClassVar[str] = "server-bound"
    name: str
    runner: web.AppRunner

    @property
    def label(self) -> str:
        return self.name

    async def _undo(self) -> None:
        await self.runner.cleanup()


@dataclass
class StartedWatcher(ResourceRecord):
    """A filesystem watcher. Undo stops its observer thread."""

    kind: ClassVar[str] = "watcher-started"
    watcher: ChangeWatcher

    @property
    def label(self) -> str:
        return str(self.watcher.path)

    async def _undo(self) -> None:
        await self.watcher.close()


class ResourceRegistry:
    """Ordered list of everything a session must undo on exit."""

    def __init__(self) -> None:
        self._records: list[ResourceRecord] = []

    @property
    def records(self) -> list[ResourceRecord]:
        return list(self._records)

    def add(self, record: ResourceRecord) -> ResourceRecord:
        self._records.append(record)
        logger.debug("Resource registered", kind=record.kind, resource=record.label)
        return record

    async def teardown(self) -> None:
        """Undo every record, newest first.

        Every record is attempted even if an earlier one fails.  Failures are
        collected and raised together as :class:`TeardownError` at the end.
        """
        failures: list[tuple[str, BaseException]] = []
        pending = [r for r in reversed(self._records) if not r.released]
        if pending:
            logger.info("Releasing session resources", count=len(pending))
        for record in pending:
            try:
                await record.undo()
                logger.debug("Resource released", kind=record.kind, resource=record.label)
            except Exception as exc:
                logger.error(
                    "Failed to release resource",
                    kind=record.kind,
                    resource=record.label,
                    exc_info=exc,
                )
                failures.append((record.label, exc))
        if failures:
            raise TeardownError(failures)


def write_managed_file(
    registry: ResourceRegistry,
    path: Path,
    content: str,
    *,
    backup: Path,
) -> ResourceRecord:
    """Write *content* to *path* as a reversible resource.

    If *path* does not exist the file is registered as created (teardown
    deletes it).  Otherwise the original is moved to *backup* first and the
    write is registered as backed up (teardown moves the original back).
    Exactly one of the two paths runs.

    Parent directories that are missing are created and registered too,
    outermost first, so teardown removes them after the file.

    A leftover *backup* from an earlier session that was never torn down
    holds the only copy of the original, so :class:`StaleBackupError` is
    raised before anything is touched.
    """
    if path.exists() and backup.exists():
        raise StaleBackupError(path, backup)
    _make_parents(registry, path)
    if path.exists():
        os.replace(path, backup)
        record: ResourceRecord = registry.add(BackedUpFile(path=path, backup=backup))
    else:
        record = registry.add(CreatedFile(path=path))
    path.write_text(content)
    return record


def _make_parents(registry: ResourceRegistry, path: Path) -> None:
    missing: list[Path] = []
    parent = path.parent
    while not parent.exists():
        missing.append(parent)
        parent = parent.parent
    for directory in reversed(missing):
        directory.mkdir(exist_ok=True)
        registry.add(CreatedDirectory(path=directory))
