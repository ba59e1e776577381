from pathlib import Path
from typing import Any, Optional, Set
import asyncio
import logging

from gphotos_uploader.models import AlbumTarget, FileStatus, UploadResult
from gphotos_uploader.orchestrator.models import UploadOutcome
from gphotos_uploader.protocols import IStatusStore, IUploadOperation
from gphotos_uploader.services.media import is_media
from gphotos_uploader.utils.patterns import IgnorePatterns
logger = logging.getLogger(__name__)

ABANDONED = "abandoned on shutdown"


class UploadWorkerPool:
    """
    Uploads queued paths with a bounded number of simultaneous transfers.

    - enqueue() never blocks and never refuses a path
    - at most ``max_concurrent`` upload operations run at once; the checks
      before and the status writes after an upload do not count
    - every dequeued path produces exactly one outcome on ``outcomes``

    Usage:
        pool = UploadWorkerPool(store, client, credentials, max_concurrent=2)
        await pool.start()
        pool.enqueue("/photos/a.jpg")
        await pool.wait_completed()
        await pool.close()
    """

    def __init__(
        self,
        store: IStatusStore,
        upload_operation: IUploadOperation,
        credentials: Any = None,
        album: Optional[AlbumTarget] = None,
        max_concurrent: int = 1,
        ignore: Optional[IgnorePatterns] = None,
        media_only: bool = True,
        outcomes: Optional[asyncio.Queue] = None,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be a positive integer")
        self._store = store
        self._upload_operation = upload_operation
        self._credentials = credentials
        self._album = album or AlbumTarget()
        self._max_concurrent = max_concurrent
        self._ignore = ignore or IgnorePatterns()
        self._media_only = media_only
        self.outcomes: asyncio.Queue = outcomes if outcomes is not None else asyncio.Queue()

        self._queue: asyncio.Queue = asyncio.Queue()
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._dispatcher: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

        # Paths enqueued and not yet terminal
        self._unfinished = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._in_flight = 0
        self._enqueued_total = 0
        self._abandoning = False

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def in_flight(self) -> int:
        """Uploads currently inside the upload operation."""
        return self._in_flight

    @property
    def unfinished(self) -> int:
        return self._unfinished

    @property
    def enqueued_total(self) -> int:
        return self._enqueued_total

    async def start(self) -> None:
        if self._dispatcher is None:
            self._dispatcher = asyncio.create_task(self._dispatch(), name="upload-dispatcher")

    def enqueue(self, path) -> None:
        """Queue a path for upload. Non-blocking, accepted unconditionally."""
        self._unfinished += 1
        self._enqueued_total += 1
        self._idle.clear()
        self._queue.put_nowait(str(path))
        logger.debug("Enqueued %s (%d unfinished)", path, self._unfinished)

    async def wait_completed(self) -> None:
        """Block until the queue is empty and no path is being processed."""
        await self._idle.wait()

    def abandon_pending(self) -> None:
        """
        Stop starting new uploads. Uploads already in flight still finish and
        are recorded; every other path gets an ignored outcome and keeps the
        status it had (Pending when it was already marked).
        """
        if not self._abandoning:
            self._abandoning = True
            logger.info("Abandoning %d queued path(s)", max(self._unfinished - self._in_flight, 0))

    async def close(self) -> None:
        """Wait for queued work, then stop the dispatcher."""
        await self.wait_completed()
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None

    async def _dispatch(self) -> None:
        while True:
            path = await self._queue.get()
            task = asyncio.create_task(self._run_one(path))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run_one(self, path: str) -> None:
        try:
            outcome = await self.process(path)
        except Exception as exc:
            logger.exception("Unexpected failure while processing %s", path)
            outcome = UploadOutcome.failed(path, str(exc) or type(exc).__name__)
        try:
            self.outcomes.put_nowait(outcome)
        finally:
            self._queue.task_done()
            self._unfinished -= 1
            if self._unfinished == 0:
                self._idle.set()

    async def process(self, path: str) -> UploadOutcome:
        """Run the dedup / upload / record pipeline for one path."""
        file_path = Path(path)

        if self._abandoning:
            return UploadOutcome.ignored(path, ABANDONED)

        # 1. eligibility
        reason = self._exclusion_reason(file_path)
        if reason:
            return UploadOutcome.ignored(path, reason)

        # 2. dedup
        try:
            status = await self._store.get_status(path)
        except Exception as exc:
            return UploadOutcome.failed(path, f"status lookup failed: {exc}")
        if status == FileStatus.SUCCESS:
            return UploadOutcome.ignored(path, "already uploaded")

        # 3. pending
        try:
            await self._store.upsert_pending(path)
        except Exception as exc:
            return UploadOutcome.failed(path, f"can't mark pending: {exc}")

        # 4. upload
        result = await self._upload(file_path)
        if result is None:
            return UploadOutcome.ignored(path, ABANDONED)

        # 5./6. outcome
        status = FileStatus.SUCCESS if result.success else FileStatus.FAILED
        try:
            await self._store.record_outcome(path, status)
        except Exception as exc:
            return UploadOutcome.failed(path, f"can't record {status.value}: {exc}")

        if result.success:
            return UploadOutcome.completed(path)
        return UploadOutcome.failed(path, result.error or "upload failed")

    def _exclusion_reason(self, file_path: Path) -> Optional[str]:
        if not file_path.is_file():
            return "not a regular file"
        if self._ignore.matches(file_path):
            return "matches ignore pattern"
        if self._media_only and not is_media(file_path):
            return "not an image or video"
        return None

    async def _upload(self, file_path: Path) -> Optional[UploadResult]:
        async with self._semaphore:
            if self._abandoning:
                return None
            self._in_flight += 1
            logger.info("Uploading %s (%d/%d slots)", file_path, self._in_flight, self._max_concurrent)
            try:
                return await self._upload_operation.upload(file_path, self._album, self._credentials)
            except Exception as exc:
                logger.debug("Upload operation raised for %s", file_path, exc_info=True)
                return UploadResult.fail(file_path, str(exc) or type(exc).__name__)
            finally:
                self._in_flight -= 1
