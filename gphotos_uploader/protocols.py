"""
Protocols (Interfaces) for Dependency Inversion.

Following Interface Segregation Principle - small, focused interfaces.
"""
from pathlib import Path
from typing import Any, List, Optional, Protocol, runtime_checkable

from .models import AlbumTarget, FileStatus, UploadResult


@runtime_checkable
class IUploadOperation(Protocol):
    """Interface for the network upload of a single file."""

    async def upload(self, path: Path, album: AlbumTarget, credentials: Any) -> UploadResult:
        """Upload file to the remote service."""
        ...


@runtime_checkable
class IStatusStore(Protocol):
    """Interface for the durable path -> status mapping."""

    async def upsert_pending(self, path: str) -> None:
        ...

    async def record_outcome(self, path: str, status: FileStatus) -> None:
        ...

    async def delete(self, path: str) -> bool:
        ...

    async def list_not_success(self) -> List[str]:
        ...

    async def get_status(self, path: str) -> Optional[FileStatus]:
        ...


@runtime_checkable
class IWatchRegistry(Protocol):
    """Interface for adding and dropping watched directories."""

    def add_root(self, path: str) -> None:
        ...

    def discard(self, path: str) -> None:
        ...
