"""Orchestrator package - coordinates the upload pipeline."""
from .coalescer import EventCoalescer
from .core import UploadOrchestrator
from .models import FsEvent, FsEventKind, OutcomeKind, RunSummary, UploadOutcome
from .pool import UploadWorkerPool
from .reporter import OutcomeReporter
from .watcher import DirectoryWatcher

__all__ = [
    "DirectoryWatcher",
    "EventCoalescer",
    "FsEvent",
    "FsEventKind",
    "OutcomeKind",
    "OutcomeReporter",
    "RunSummary",
    "UploadOrchestrator",
    "UploadOutcome",
    "UploadWorkerPool",
]
