"""
Models for gphotos_uploader.

Immutable dataclasses following Single Responsibility Principle.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple


DEFAULT_DB_PATH = Path.home() / ".cache" / "gphotos-uploader" / "db.sqlite3"


class FileStatus(Enum):
    """Last known upload outcome of a local file."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class AlbumTarget:
    """Album the uploaded items go to. Passed through to the upload operation."""
    album_id: Optional[str] = None
    album_name: Optional[str] = None

    @property
    def is_set(self) -> bool:
        return bool(self.album_id or self.album_name)


@dataclass(frozen=True)
class UploadResult:
    """Immutable result of an upload operation."""
    path: str
    status: FileStatus = FileStatus.SUCCESS
    upload_token: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == FileStatus.SUCCESS

    @classmethod
    def ok(cls, path, upload_token: Optional[str] = None):
        return cls(path=str(path), status=FileStatus.SUCCESS, upload_token=upload_token)

    @classmethod
    def fail(cls, path, error: str):
        return cls(path=str(path), status=FileStatus.FAILED, error=error)


@dataclass(frozen=True)
class UploaderConfig:
    """Immutable configuration for an uploader run."""
    auth_file: Path = Path("auth.json")
    files_to_upload: Tuple[Path, ...] = ()
    directories_to_watch: Tuple[Path, ...] = ()
    album: AlbumTarget = field(default_factory=AlbumTarget)
    max_concurrent_uploads: int = 1
    watch_recursively: bool = True
    event_delay: float = 3.0  # seconds
    ignore_patterns: Tuple[str, ...] = ()
    reupload_failed: bool = False
    media_only: bool = True
    db_path: Path = DEFAULT_DB_PATH

    def __post_init__(self):
        if self.max_concurrent_uploads < 1:
            raise ValueError("max_concurrent_uploads must be a positive integer")
        if self.event_delay < 0:
            raise ValueError("event_delay must not be negative")

    @property
    def watching(self) -> bool:
        return len(self.directories_to_watch) > 0
