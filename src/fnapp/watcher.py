"""Action source watcher.

Uses watchdog (inotify on Linux, FSEvents on macOS) to observe the action
tree.  Events arrive on the observer thread and are handed to the asyncio
loop with ``call_soon_threadsafe``; nothing else crosses threads.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from fnapp.logger import logger


class _ChangeEventHandler(FileSystemEventHandler):
    """Forwards file events to a callback on the event loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_change: Callable[[str], Any],
    ) -> None:
        super().__init__()
        self._loop = loop
        self._on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type in ("opened", "closed", "closed_no_write"):
            return
        path = getattr(event, "dest_path", "") or event.src_path
        if isinstance(path, bytes):
            path = path.decode(errors="replace")
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._on_change, path)


class ChangeWatcher:
    """Recursive watcher that reports every changed path to *on_change*.

    The path is informational; callers rebuild everything.
    """

    def __init__(self, path: Path, on_change: Callable[[str], Any]) -> None:
        self.path = path
        self._on_change = on_change
        self._observer: Any = None
        self._closed = False

    @property
    def running(self) -> bool:
        return self._observer is not None and not self._closed

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        handler = _ChangeEventHandler(loop, self._on_change)
        observer = Observer()
        observer.schedule(handler, str(self.path), recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("Watching for changes", path=str(self.path))

    async def close(self) -> None:
        """Stop the observer thread. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._observer is None:
            return
        self._observer.stop()
        await asyncio.to_thread(self._observer.join, 5)
        logger.info("Stopped watching for changes", path=str(self.path))
