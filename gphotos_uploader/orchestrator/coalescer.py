"""
Debounced filesystem-event coalescer.

Operating systems often report a single logical write several times (temp
file swaps, repeated flushes). Every write/create re-arms a per-path timer;
only when the timer settles is the path handed to the upload pool.
Removals and renames cancel the timer and forget the path right away.

One task owns the timer map: notifications arrive through an inbox queue
and timer callbacks run on the same event loop, so the map needs no lock.
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Awaitable, Callable, Dict, Optional

from .models import FsEvent, FsEventKind
from ..utils.channels import STOPPED, receive
from ..utils.patterns import IgnorePatterns

logger = logging.getLogger(__name__)


class EventCoalescer:
    """
    Collapse bursts of notifications per path into one upload or forget signal.

    Args:
        event_delay: Debounce window in seconds
        on_upload: Called with a settled file path
        on_forget: Awaited with a removed/renamed path
        on_directory: Called with a settled directory path (recursive mode)
        ignore: Patterns excluding settled paths
        recursive: Register settled directories as new watch roots
    """

    def __init__(
        self,
        event_delay: float,
        on_upload: Callable[[str], None],
        on_forget: Callable[[str], Awaitable[None]],
        on_directory: Optional[Callable[[str], None]] = None,
        ignore: Optional[IgnorePatterns] = None,
        recursive: bool = True,
    ):
        self._event_delay = max(0.0, float(event_delay))
        self._on_upload = on_upload
        self._on_forget = on_forget
        self._on_directory = on_directory
        self._ignore = ignore or IgnorePatterns()
        self._recursive = recursive

        self._inbox: asyncio.Queue = asyncio.Queue()
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False

    @property
    def event_delay(self) -> float:
        return self._event_delay

    def pending_paths(self) -> set:
        """Paths whose timer has not settled yet."""
        return set(self._timers)

    def submit(self, event: FsEvent) -> None:
        """Hand a notification to the owning task. Must be called on the loop thread."""
        self._inbox.put_nowait(event)

    async def run(self, stop: asyncio.Event) -> None:
        """Consume notifications until ``stop`` is set, then cancel pending timers."""
        self._loop = asyncio.get_running_loop()
        self._running = True
        try:
            while True:
                event = await receive(self._inbox, stop)
                if event is STOPPED:
                    break
                await self._handle(event)
        finally:
            self._running = False
            for handle in self._timers.values():
                handle.cancel()
            if self._timers:
                logger.debug("Dropped %d unsettled path(s) on shutdown", len(self._timers))
            self._timers.clear()

    async def _handle(self, event: FsEvent) -> None:
        path = event.path
        timer = self._timers.pop(path, None)
        if timer is not None:
            timer.cancel()

        if event.kind.is_removal:
            logger.debug("%s %s, forgetting it", event.kind.value, path)
            try:
                await self._on_forget(path)
            except Exception as exc:
                logger.error("Can't forget %s: %s", path, exc)
            return

        if timer is not None:
            logger.debug("Postponing %s by %.2fs", path, self._event_delay)
        self._timers[path] = self._loop.call_later(self._event_delay, self._settle, path)

    def _settle(self, path: str) -> None:
        self._timers.pop(path, None)
        if not self._running:
            return
        logger.info("Finally consuming events for %s", path)

        if not os.path.exists(path):
            logger.debug("%s disappeared before settling", path)
            return
        if self._ignore.matches(path):
            return

        try:
            if os.path.isdir(path):
                if self._recursive and self._on_directory is not None:
                    self._on_directory(path)
                return
            self._on_upload(path)
        except Exception as exc:
            logger.error("Can't dispatch settled path %s: %s", path, exc)
