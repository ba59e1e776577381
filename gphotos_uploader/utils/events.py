from typing import Callable, Dict, Hashable, List
import inspect
import logging
logger = logging.getLogger(__name__)


class EventEmitter:
    """
    Listener registry keyed by event kind (for the reporter, an OutcomeKind).

    Listeners may be plain callables or coroutine functions; they run in
    registration order and one failing listener never stops the others.
    """

    def __init__(self):
        self._listeners: Dict[Hashable, List[Callable]] = {}

    def on(self, kind: Hashable, callback: Callable) -> None:
        callbacks = self._listeners.setdefault(kind, [])
        if callback not in callbacks:
            callbacks.append(callback)

    def listeners(self, kind: Hashable) -> List[Callable]:
        return list(self._listeners.get(kind, []))

    async def emit(self, kind: Hashable, *args) -> int:
        """Call every listener of ``kind``. Returns how many of them failed."""
        failures = 0
        for callback in self.listeners(kind):
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                failures += 1
                logger.exception("Listener %r for %s failed", callback, kind)
        return failures
