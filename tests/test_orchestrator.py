"""Tests for UploadOrchestrator wiring."""
import asyncio
import time

import pytest

from gphotos_uploader.exceptions import WatcherError
from gphotos_uploader.models import FileStatus, UploaderConfig
from gphotos_uploader.orchestrator import UploadOrchestrator
from gphotos_uploader.orchestrator.models import FsEvent, FsEventKind, RunSummary

from conftest import FakeUploadOperation


class FakeWatcher:
    """Stands in for DirectoryWatcher; tests push events through ``sink``."""

    instances = []

    def __init__(self, sink, loop=None, ignore=None, recursive=True):
        self.sink = sink
        self.recursive = recursive
        self.roots = []
        self.discarded = []
        self.started = False
        self.stopped = False
        FakeWatcher.instances.append(self)

    @property
    def watched(self):
        return list(self.roots)

    def add_root(self, path):
        self.roots.append(path)

    def discard(self, path):
        self.discarded.append(path)

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True


@pytest.fixture(autouse=True)
def reset_watchers():
    FakeWatcher.instances.clear()
    yield
    FakeWatcher.instances.clear()


class TestArgumentUploads:
    @pytest.mark.asyncio
    async def test_uploads_files_and_directories(self, store, upload_operation, make_photo, tmp_path):
        single = make_photo("single.jpg")
        make_photo("album/a.jpg")
        make_photo("album/sub/b.mp4")
        make_photo("album/notes.txt", b"text")
        config = UploaderConfig(files_to_upload=(single, tmp_path / "album"))

        async with UploadOrchestrator(config, store, upload_operation) as orchestrator:
            await orchestrator.run()

        assert orchestrator.summary == RunSummary(uploaded=3, ignored=1, errors=0)
        assert sorted(upload_operation.calls) == sorted([
            str(single),
            str(tmp_path / "album" / "a.jpg"),
            str(tmp_path / "album" / "sub" / "b.mp4"),
        ])

    @pytest.mark.asyncio
    async def test_ignore_patterns_skip_argument_files(self, store, upload_operation, make_photo, tmp_path):
        make_photo("album/a.jpg")
        make_photo("album/.thumbnails/a.jpg")
        config = UploaderConfig(
            files_to_upload=(tmp_path / "album",),
            ignore_patterns=(r"\.thumbnails",),
        )

        async with UploadOrchestrator(config, store, upload_operation) as orchestrator:
            queued = orchestrator.upload_paths(config.files_to_upload)
            await orchestrator.wait_completed()

        assert queued == 1
        assert upload_operation.calls == [str(tmp_path / "album" / "a.jpg")]

    @pytest.mark.asyncio
    async def test_second_run_skips_uploaded_files(self, store, upload_operation, make_photo):
        photo = make_photo("a.jpg")
        config = UploaderConfig(files_to_upload=(photo,))

        async with UploadOrchestrator(config, store, upload_operation) as first:
            await first.run()
        async with UploadOrchestrator(config, store, upload_operation) as second:
            await second.run()

        assert first.summary.uploaded == 1
        assert second.summary == RunSummary(uploaded=0, ignored=1, errors=0)
        assert upload_operation.calls == [str(photo)]

    @pytest.mark.asyncio
    async def test_failures_are_counted(self, store, make_photo):
        good = make_photo("good.jpg")
        bad = make_photo("bad.jpg")
        config = UploaderConfig(files_to_upload=(good, bad))

        async with UploadOrchestrator(config, store, FakeUploadOperation(fail={"bad.jpg"})) as orchestrator:
            await orchestrator.run()

        assert orchestrator.summary == RunSummary(uploaded=1, ignored=0, errors=1)
        assert await store.get_status(str(bad)) == FileStatus.FAILED

    @pytest.mark.asyncio
    async def test_listeners_are_forwarded(self, store, upload_operation, make_photo):
        photo = make_photo("a.jpg")
        completed = []
        config = UploaderConfig(files_to_upload=(photo,))

        async with UploadOrchestrator(config, store, upload_operation) as orchestrator:
            orchestrator.on_completed(completed.append)
            await orchestrator.run()

        assert [outcome.path for outcome in completed] == [str(photo)]

    @pytest.mark.asyncio
    async def test_shutdown_drains_queued_uploads(self, store, make_photo):
        photos = [make_photo(f"{i}.jpg") for i in range(4)]
        operation = FakeUploadOperation(delay=0.02)
        config = UploaderConfig(max_concurrent_uploads=2)

        async with UploadOrchestrator(config, store, operation) as orchestrator:
            orchestrator.upload_paths(photos)

        assert orchestrator.summary.uploaded == 4
        assert await store.list_not_success() == []

    @pytest.mark.asyncio
    async def test_stop_during_initial_uploads_skips_the_rest(self, store, make_photo, tmp_path):
        photos = [make_photo(f"batch/{i:02d}.jpg") for i in range(20)]
        operation = FakeUploadOperation(delay=0.05)
        config = UploaderConfig(
            files_to_upload=(tmp_path / "batch",),
            directories_to_watch=(tmp_path,),
        )
        stop = asyncio.Event()
        asyncio.get_running_loop().call_later(0.1, stop.set)

        async with UploadOrchestrator(
            config, store, operation, watcher_factory=FakeWatcher
        ) as orchestrator:
            await asyncio.wait_for(orchestrator.run(stop), timeout=2)

        assert len(operation.calls) < 20
        assert FakeWatcher.instances == []
        summary = orchestrator.summary
        assert summary.uploaded == len(operation.calls)
        assert summary.uploaded + summary.ignored + summary.errors == 20
        for photo in photos:
            if str(photo) not in operation.calls:
                assert await store.get_status(str(photo)) != FileStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, store, upload_operation):
        orchestrator = UploadOrchestrator(UploaderConfig(), store, upload_operation)
        await orchestrator.__aenter__()
        await orchestrator.shutdown()
        await orchestrator.shutdown()


class TestRetryFailed:
    @pytest.mark.asyncio
    async def test_enqueues_everything_not_successful(self, store, upload_operation, make_photo):
        done = make_photo("a.jpg")
        failed = make_photo("b.jpg")
        pending = make_photo("c.jpg")
        await store.record_outcome(str(done), FileStatus.SUCCESS)
        await store.record_outcome(str(failed), FileStatus.FAILED)
        await store.upsert_pending(str(pending))
        config = UploaderConfig(reupload_failed=True)

        async with UploadOrchestrator(config, store, upload_operation) as orchestrator:
            await orchestrator.run()

        assert sorted(upload_operation.calls) == sorted([str(failed), str(pending)])
        assert orchestrator.summary == RunSummary(uploaded=2, ignored=0, errors=0)
        assert await store.list_not_success() == []

    @pytest.mark.asyncio
    async def test_vanished_failed_file_stays_failed(self, store, upload_operation, tmp_path):
        gone = str(tmp_path / "gone.jpg")
        await store.record_outcome(gone, FileStatus.FAILED)
        config = UploaderConfig(reupload_failed=True)

        async with UploadOrchestrator(config, store, upload_operation) as orchestrator:
            assert await orchestrator.retry_failed() == 1
            await orchestrator.wait_completed()

        assert orchestrator.summary.ignored == 1
        assert await store.get_status(gone) == FileStatus.FAILED


class TestWatch:
    @pytest.mark.asyncio
    async def test_settled_file_is_uploaded(self, store, upload_operation, make_photo, tmp_path):
        config = UploaderConfig(directories_to_watch=(tmp_path,), event_delay=0.05)
        stop = asyncio.Event()

        async with UploadOrchestrator(
            config, store, upload_operation, watcher_factory=FakeWatcher
        ) as orchestrator:
            run_task = asyncio.create_task(orchestrator.run(stop))
            await asyncio.sleep(0.02)
            watcher = FakeWatcher.instances[0]
            photo = make_photo("new.jpg")
            watcher.sink(FsEvent(str(photo), FsEventKind.CREATE))
            watcher.sink(FsEvent(str(photo), FsEventKind.WRITE))
            await asyncio.sleep(0.2)
            stop.set()
            await asyncio.wait_for(run_task, timeout=2)

        assert watcher.roots == [str(tmp_path)]
        assert watcher.started and watcher.stopped
        assert upload_operation.calls == [str(photo)]
        assert orchestrator.summary.uploaded == 1

    @pytest.mark.asyncio
    async def test_removed_file_is_forgotten(self, store, upload_operation, make_photo, tmp_path):
        photo = make_photo("old.jpg")
        await store.record_outcome(str(photo), FileStatus.SUCCESS)
        config = UploaderConfig(directories_to_watch=(tmp_path,), event_delay=0.05)
        stop = asyncio.Event()

        async with UploadOrchestrator(
            config, store, upload_operation, watcher_factory=FakeWatcher
        ) as orchestrator:
            run_task = asyncio.create_task(orchestrator.run(stop))
            await asyncio.sleep(0.02)
            watcher = FakeWatcher.instances[0]
            photo.unlink()
            watcher.sink(FsEvent(str(photo), FsEventKind.REMOVE))
            await asyncio.sleep(0.1)
            stop.set()
            await asyncio.wait_for(run_task, timeout=2)

        assert await store.get(str(photo)) is None
        assert watcher.discarded == [str(photo)]
        assert upload_operation.calls == []

    @pytest.mark.asyncio
    async def test_new_directory_becomes_watch_root(self, store, upload_operation, tmp_path):
        config = UploaderConfig(directories_to_watch=(tmp_path,), event_delay=0.05)
        stop = asyncio.Event()

        async with UploadOrchestrator(
            config, store, upload_operation, watcher_factory=FakeWatcher
        ) as orchestrator:
            run_task = asyncio.create_task(orchestrator.run(stop))
            await asyncio.sleep(0.02)
            watcher = FakeWatcher.instances[0]
            new_dir = tmp_path / "2024"
            new_dir.mkdir()
            watcher.sink(FsEvent(str(new_dir), FsEventKind.CREATE))
            await asyncio.sleep(0.15)
            stop.set()
            await asyncio.wait_for(run_task, timeout=2)

        assert watcher.roots == [str(tmp_path), str(new_dir)]

    @pytest.mark.asyncio
    async def test_coalescer_stops_before_watcher(self, store, upload_operation, tmp_path):
        class SlowStoppingWatcher(FakeWatcher):
            def stop(self):
                time.sleep(0.1)
                super().stop()

        config = UploaderConfig(directories_to_watch=(tmp_path,), event_delay=0.05)
        stop = asyncio.Event()

        async with UploadOrchestrator(
            config, store, upload_operation, watcher_factory=SlowStoppingWatcher
        ) as orchestrator:
            run_task = asyncio.create_task(orchestrator.run(stop))
            await asyncio.sleep(0.02)
            watcher = FakeWatcher.instances[0]
            new_dir = tmp_path / "2024"
            new_dir.mkdir()
            watcher.sink(FsEvent(str(new_dir), FsEventKind.CREATE))
            stop.set()
            await asyncio.wait_for(run_task, timeout=2)
            await asyncio.sleep(0.1)

        assert watcher.stopped
        assert watcher.roots == [str(tmp_path)]

    @pytest.mark.asyncio
    async def test_unwatchable_root_raises(self, store, upload_operation, tmp_path):
        class RejectingWatcher(FakeWatcher):
            def add_root(self, path):
                raise WatcherError(f"can't watch {path}")

        config = UploaderConfig(directories_to_watch=(tmp_path / "missing",))

        with pytest.raises(WatcherError):
            async with UploadOrchestrator(
                config, store, upload_operation, watcher_factory=RejectingWatcher
            ) as orchestrator:
                await orchestrator.run(asyncio.Event())
