"""Core orchestrator - wires store, pool, reporter and watcher together."""
import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from ..models import UploaderConfig
from ..protocols import IStatusStore, IUploadOperation, IWatchRegistry
from ..utils.patterns import IgnorePatterns

from .coalescer import EventCoalescer
from .file_collector import FileCollector
from .models import RunSummary, UploadOutcome
from .pool import UploadWorkerPool
from .reporter import OutcomeReporter
from .watcher import DirectoryWatcher

logger = logging.getLogger(__name__)


class UploadOrchestrator:
    """
    Orchestrates uploads using injected services.

    Follows:
    - Dependency Injection (store, upload operation and credentials injected)
    - Single Responsibility (delegates to pool, coalescer, reporter)

    Usage:
        async with StatusStore(db_path) as store:
            async with UploadOrchestrator(config, store, client, credentials) as orchestrator:
                await orchestrator.run(stop_event)
            summary = orchestrator.summary

    Leaving the context drains in-flight uploads, then stops the reporter.
    """

    def __init__(
        self,
        config: UploaderConfig,
        store: IStatusStore,
        upload_operation: IUploadOperation,
        credentials: Any = None,
        watcher_factory: Optional[Callable[..., IWatchRegistry]] = None,
    ):
        self._config = config
        self._store = store
        self._upload_operation = upload_operation
        self._credentials = credentials
        self._watcher_factory = watcher_factory or DirectoryWatcher
        self._ignore = IgnorePatterns(config.ignore_patterns)

        self._outcomes: asyncio.Queue = asyncio.Queue()
        self._pool = UploadWorkerPool(
            store,
            upload_operation,
            credentials=credentials,
            album=config.album,
            max_concurrent=config.max_concurrent_uploads,
            ignore=self._ignore,
            media_only=config.media_only,
            outcomes=self._outcomes,
        )
        self._reporter = OutcomeReporter(self._outcomes)
        self._reporter_stop = asyncio.Event()
        self._reporter_task: Optional[asyncio.Task] = None
        self._watcher: Optional[IWatchRegistry] = None
        self._closed = False

    @property
    def pool(self) -> UploadWorkerPool:
        return self._pool

    @property
    def summary(self) -> RunSummary:
        return self._reporter.summary

    def on_completed(self, callback: Callable[[UploadOutcome], None]):
        self._reporter.on_completed(callback)

    def on_ignored(self, callback: Callable[[UploadOutcome], None]):
        self._reporter.on_ignored(callback)

    def on_error(self, callback: Callable[[UploadOutcome], None]):
        self._reporter.on_error(callback)

    async def __aenter__(self):
        """Start the outcome consumer and the pool."""
        self._reporter_task = asyncio.create_task(
            self._reporter.run(self._reporter_stop), name="outcome-reporter"
        )
        await self._pool.start()
        return self

    async def __aexit__(self, *args):
        await self.shutdown()

    async def shutdown(self) -> None:
        """Drain the pool, then stop the reporter and wait for it."""
        if self._closed:
            return
        self._closed = True
        if self._pool.unfinished:
            logger.info("Waiting for %d upload(s) to finish ...", self._pool.unfinished)
        await self._pool.close()
        self._reporter_stop.set()
        if self._reporter_task is not None:
            await self._reporter_task

    def upload_paths(self, names: Iterable) -> int:
        """Enqueue every file under the given files/directories. Returns the count."""
        count = 0
        for file_path in FileCollector(self._ignore).collect(names):
            self._pool.enqueue(file_path)
            count += 1
        if count:
            logger.info("Queued %d file(s) from arguments", count)
        return count

    async def retry_failed(self) -> int:
        """Enqueue every path whose last known status is not Success."""
        paths = await self._store.list_not_success()
        for path in paths:
            self._pool.enqueue(path)
        logger.info("Queued %d previously failed file(s)", len(paths))
        return len(paths)

    async def wait_completed(self, stop: Optional[asyncio.Event] = None) -> None:
        """
        Wait until every queued path is terminal. When ``stop`` is set first,
        queued uploads are abandoned and only the ones in flight are awaited.
        """
        if stop is None:
            await self._pool.wait_completed()
            return

        drained = asyncio.create_task(self._pool.wait_completed())
        stopped = asyncio.create_task(stop.wait())
        try:
            await asyncio.wait({drained, stopped}, return_when=asyncio.FIRST_COMPLETED)
            if not drained.done():
                self._pool.abandon_pending()
                await drained
        finally:
            drained.cancel()
            stopped.cancel()

    async def watch(self, directories: Iterable, stop: asyncio.Event) -> None:
        """Watch directories until ``stop`` is set. Raises WatcherError if a root can't be watched."""
        coalescer = EventCoalescer(
            self._config.event_delay,
            on_upload=self._pool.enqueue,
            on_forget=self._forget,
            on_directory=self._add_directory,
            ignore=self._ignore,
            recursive=self._config.watch_recursively,
        )
        self._watcher = self._watcher_factory(
            coalescer.submit,
            loop=asyncio.get_running_loop(),
            ignore=self._ignore,
            recursive=self._config.watch_recursively,
        )
        for directory in directories:
            self._watcher.add_root(str(Path(directory).expanduser().absolute()))
        self._watcher.start()

        coalescer_stop = asyncio.Event()
        coalescer_task = asyncio.create_task(coalescer.run(coalescer_stop), name="event-coalescer")
        logger.info("Watching %d director(ies), press CTRL + C to stop", len(self._watcher.watched))
        try:
            await stop.wait()
        finally:
            # Timers may still register or drop watches until the coalescer is done
            coalescer_stop.set()
            await coalescer_task
            await asyncio.to_thread(self._watcher.stop)
            self._watcher = None

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """
        Upload argument files, optionally retry failed ones, then watch.

        Returns once the initial uploads drained and, when directories are
        watched, after ``stop`` is set. Setting ``stop`` during the initial
        uploads abandons the queued ones and skips watching. Read ``summary``
        after leaving the context for the final counters.
        """
        stop = stop or asyncio.Event()
        self.upload_paths(self._config.files_to_upload)
        if self._config.reupload_failed:
            await self.retry_failed()

        await self.wait_completed(stop)
        if stop.is_set():
            logger.info("Stopped during the initial uploads")
            return

        if self._config.watching:
            await self.watch(self._config.directories_to_watch, stop)
            await self.wait_completed()

    async def _forget(self, path: str) -> None:
        if self._watcher is not None:
            self._watcher.discard(path)
        if await self._store.delete(path):
            logger.info("Deleted record: %s", path)

    def _add_directory(self, path: str) -> None:
        if self._watcher is not None:
            self._watcher.add_root(path)
