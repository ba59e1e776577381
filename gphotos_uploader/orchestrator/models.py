"""Orchestrator data models."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FsEventKind(Enum):
    """Kind of a raw filesystem notification."""
    CREATE = "create"
    WRITE = "write"
    REMOVE = "remove"
    RENAME = "rename"

    @property
    def is_removal(self) -> bool:
        return self in (FsEventKind.REMOVE, FsEventKind.RENAME)


@dataclass(frozen=True)
class FsEvent:
    """Raw filesystem notification for one path."""
    path: str
    kind: FsEventKind


class OutcomeKind(Enum):
    """Terminal outcome of one dequeued path."""
    COMPLETED = "completed"
    IGNORED = "ignored"
    ERROR = "error"


@dataclass(frozen=True)
class UploadOutcome:
    """Result the worker pool emits for every dequeued path."""
    kind: OutcomeKind
    path: str
    error: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def completed(cls, path: str):
        return cls(kind=OutcomeKind.COMPLETED, path=path)

    @classmethod
    def ignored(cls, path: str, reason: str):
        return cls(kind=OutcomeKind.IGNORED, path=path, reason=reason)

    @classmethod
    def failed(cls, path: str, error: str):
        return cls(kind=OutcomeKind.ERROR, path=path, error=error)


@dataclass
class RunSummary:
    """Counters of a whole run."""
    uploaded: int = 0
    ignored: int = 0
    errors: int = 0

    @property
    def total(self) -> int:
        return self.uploaded + self.ignored + self.errors

    def __str__(self) -> str:
        return (
            f"{self.uploaded} files uploaded, "
            f"{self.ignored} files ignored, "
            f"{self.errors} errors"
        )
