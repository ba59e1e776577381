from typing import Callable
import asyncio
import logging

from gphotos_uploader.orchestrator.models import OutcomeKind, RunSummary, UploadOutcome
from gphotos_uploader.utils.channels import STOPPED, drain_nowait, receive
from gphotos_uploader.utils.events import EventEmitter
logger = logging.getLogger(__name__)


class OutcomeReporter:
    """
    Single consumer of the pool's outcome channel.

    Counts outcomes, logs them and forwards each one to registered listeners.
    The counters belong to the consumer task alone.

    Usage:
        reporter = OutcomeReporter(pool.outcomes)
        reporter.on_completed(lambda outcome: print(outcome.path))
        task = asyncio.create_task(reporter.run(stop))
        ...
        stop.set()
        await task
    """

    def __init__(self, outcomes: asyncio.Queue):
        self._outcomes = outcomes
        self._events = EventEmitter()
        self._summary = RunSummary()

    def on_completed(self, callback: Callable[[UploadOutcome], None]):
        """Called when an upload completes. Receives UploadOutcome."""
        self._events.on(OutcomeKind.COMPLETED, callback)

    def on_ignored(self, callback: Callable[[UploadOutcome], None]):
        """Called when a path is skipped. Receives UploadOutcome."""
        self._events.on(OutcomeKind.IGNORED, callback)

    def on_error(self, callback: Callable[[UploadOutcome], None]):
        """Called when an upload fails. Receives UploadOutcome."""
        self._events.on(OutcomeKind.ERROR, callback)

    @property
    def summary(self) -> RunSummary:
        return RunSummary(
            uploaded=self._summary.uploaded,
            ignored=self._summary.ignored,
            errors=self._summary.errors,
        )

    async def run(self, stop: asyncio.Event) -> None:
        """Consume outcomes until ``stop`` is set, then drain what is already queued."""
        while True:
            outcome = await receive(self._outcomes, stop)
            if outcome is STOPPED:
                break
            await self._report(outcome)

        for outcome in drain_nowait(self._outcomes):
            await self._report(outcome)
        logger.debug("Outcome reporter stopped (%s)", self._summary)

    async def _report(self, outcome: UploadOutcome) -> None:
        if outcome.kind == OutcomeKind.COMPLETED:
            self._summary.uploaded += 1
            logger.info("Upload of '%s' completed", outcome.path)
        elif outcome.kind == OutcomeKind.IGNORED:
            self._summary.ignored += 1
            logger.info("Not uploading '%s': %s", outcome.path, outcome.reason or "ignored")
        else:
            self._summary.errors += 1
            logger.warning("Upload error for '%s': %s", outcome.path, outcome.error)

        await self._events.emit(outcome.kind, outcome)
