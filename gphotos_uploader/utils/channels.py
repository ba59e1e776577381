"""Helpers for consumer loops that read a queue until told to stop."""
from __future__ import annotations

import asyncio
from typing import Any

STOPPED = object()


async def receive(queue: asyncio.Queue, stop: asyncio.Event) -> Any:
    """
    Wait for the next queue item or for the stop token.

    Returns the item, or ``STOPPED`` once ``stop`` is set. Items still queued
    at that point stay in the queue; use ``drain_nowait`` to collect them.
    """
    if stop.is_set():
        return STOPPED

    getter = asyncio.ensure_future(queue.get())
    stopper = asyncio.ensure_future(stop.wait())
    try:
        done, _ = await asyncio.wait({getter, stopper}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        getter.cancel()
        stopper.cancel()
        raise

    stopper.cancel()
    if getter in done:
        return getter.result()

    getter.cancel()
    return STOPPED


def drain_nowait(queue: asyncio.Queue) -> list:
    """Pop every item currently queued without waiting."""
    items = []
    while True:
        try:
            items.append(queue.get_nowait())
        except asyncio.QueueEmpty:
            return items
