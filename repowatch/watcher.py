from __future__ import annotations

import asyncio
import fnmatch
import logging
import os
from typing import Callable, Iterable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class _InvalidateHandler(FileSystemEventHandler):
    """Forwards every filesystem event to the owning event loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_change: Callable[[], None],
        root: str,
        ignore: tuple[str, ...],
    ) -> None:
        super().__init__()
        self._loop = loop
        self._on_change = on_change
        self._root = root
        self._ignore = ignore

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in ("opened", "closed", "closed_no_write"):
            return
        # A directory listing changes whenever an entry inside it does; the
        # entry reports its own event.
        if event.is_directory and event.event_type == "modified":
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        if all(self._should_ignore(str(path)) for path in paths if path):
            return
        try:
            self._loop.call_soon_threadsafe(self._on_change)
        except RuntimeError as exc:
            logger.warning("Dropping change event for %s: %s", event.src_path, exc)

    def _should_ignore(self, path: str) -> bool:
        if not self._ignore:
            return False
        rel = os.path.relpath(path, self._root).replace("\\", "/")
        return any(fnmatch.fnmatch(rel, pattern) for pattern in self._ignore)


class ChangeWatcher:
    def __init__(
        self,
        root: str,
        on_change: Callable[[], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
        ignore: Iterable[str] = (),
    ) -> None:
        self.root = root
        self._on_change = on_change
        self._loop = loop
        self._ignore = tuple(ignore)
        self._observer: Optional[Observer] = None

    @property
    def running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> bool:
        if self._observer is not None:
            return self.running
        if not os.path.isdir(self.root):
            logger.error("Not watching %s: not a directory", self.root)
            return False
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning("Not watching %s: no running event loop", self.root)
                return False
        handler = _InvalidateHandler(loop, self._on_change, self.root, self._ignore)
        observer = Observer()
        try:
            observer.schedule(handler, self.root, recursive=True)
            observer.start()
        except OSError as exc:
            logger.error("Failed to watch %s: %s", self.root, exc)
            return False
        self._observer = observer
        logger.debug("Watching %s", self.root)
        return True

    def stop(self) -> None:
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        if observer.is_alive():
            observer.join()
