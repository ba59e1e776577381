"""
Directory watching built on top of watchdog.

watchdog calls its handlers on the observer thread; every notification is
normalized to an FsEvent and handed to the event loop with
``call_soon_threadsafe``.

Raw event -> FsEvent:
- created  -> create
- modified -> write (files only)
- closed   -> write
- deleted  -> remove
- moved    -> rename(src) + create(dest)
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, Dict, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch
from watchdog.observers.polling import PollingObserver

from .models import FsEvent, FsEventKind
from ..exceptions import WatcherError
from ..utils.patterns import IgnorePatterns

logger = logging.getLogger(__name__)


def normalize_event(event: FileSystemEvent) -> List[FsEvent]:
    """Translate a watchdog event into zero or more FsEvents."""
    src = os.fsdecode(event.src_path)
    kind = event.event_type
    if kind == "moved":
        events = [FsEvent(src, FsEventKind.RENAME)]
        dest = getattr(event, "dest_path", None)
        if dest:
            events.append(FsEvent(os.fsdecode(dest), FsEventKind.CREATE))
        return events
    if kind == "created":
        return [FsEvent(src, FsEventKind.CREATE)]
    if kind == "modified":
        # Directory mtime changes whenever a child changes
        if event.is_directory:
            return []
        return [FsEvent(src, FsEventKind.WRITE)]
    if kind == "closed":
        return [FsEvent(src, FsEventKind.WRITE)]
    if kind == "deleted":
        return [FsEvent(src, FsEventKind.REMOVE)]
    # opened, closed_no_write and unknown events
    return []


class _ForwardingHandler(FileSystemEventHandler):
    """Forward normalized events from the observer thread to the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, sink: Callable[[FsEvent], None]):
        self._loop = loop
        self._sink = sink

    def on_any_event(self, event: FileSystemEvent) -> None:
        for fs_event in normalize_event(event):
            try:
                self._loop.call_soon_threadsafe(self._sink, fs_event)
            except RuntimeError:
                # Loop already closed during shutdown
                logger.debug("Dropped %s, event loop is closed", fs_event)


def build_observer(use_polling: bool = False) -> BaseObserver:
    """
    Create a watchdog observer. PollingObserver is slower but more compatible
    across filesystems; used as a fallback when requested.
    """
    if use_polling:
        return PollingObserver()
    return Observer()


class DirectoryWatcher:
    """
    Registers directories with a watchdog observer.

    Every directory is scheduled non-recursively; in recursive mode adding a
    root walks its tree and schedules each non-ignored directory, and
    directories created later are added by the coalescer once they settle.
    """

    def __init__(
        self,
        sink: Callable[[FsEvent], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
        ignore: Optional[IgnorePatterns] = None,
        recursive: bool = True,
        observer: Optional[BaseObserver] = None,
    ):
        self._loop = loop or asyncio.get_running_loop()
        self._handler = _ForwardingHandler(self._loop, sink)
        self._ignore = ignore or IgnorePatterns()
        self._recursive = recursive
        self._observer = observer or build_observer()
        self._watches: Dict[str, ObservedWatch] = {}

    @property
    def watched(self) -> List[str]:
        return sorted(self._watches)

    def start(self) -> None:
        try:
            self._observer.start()
        except OSError as exc:
            raise WatcherError(f"can't start filesystem observer: {exc}") from exc

    def stop(self) -> None:
        self._observer.stop()
        self._observer.join()
        self._watches.clear()

    def add_root(self, path: str) -> None:
        """Watch ``path`` (and, in recursive mode, every directory below it)."""
        root = os.path.abspath(path)
        if not os.path.isdir(root):
            raise WatcherError(f"can't watch {root}: not a directory")

        if not self._recursive:
            self._schedule(root)
            return

        for dirpath, dirnames, _ in os.walk(root):
            if self._ignore.matches(dirpath):
                dirnames[:] = []
                continue
            self._schedule(dirpath)

    def discard(self, path: str) -> None:
        """Drop the watch on ``path`` and on every directory below it."""
        root = os.path.abspath(path)
        prefix = root.rstrip(os.sep) + os.sep
        for watched in [p for p in self._watches if p == root or p.startswith(prefix)]:
            watch = self._watches.pop(watched)
            try:
                self._observer.unschedule(watch)
            except KeyError:
                pass
            logger.debug("Stopped watching %s", watched)

    def _schedule(self, directory: str) -> None:
        if directory in self._watches:
            return
        try:
            watch = self._observer.schedule(self._handler, directory, recursive=False)
        except OSError as exc:
            raise WatcherError(f"can't watch {directory}: {exc}") from exc
        self._watches[directory] = watch
        logger.info("Watching %s", directory)
