"""
gphotos_uploader - upload local photos and videos, on demand or by watching directories.

Follows SOLID principles:
- Single Responsibility: store, pool, coalescer and reporter each handle one concern
- Dependency Injection: the status store, upload operation and credentials
  are injected into the orchestrator

Usage:
    from gphotos_uploader import StatusStore, UploadOrchestrator, UploaderConfig

    config = UploaderConfig(files_to_upload=(Path("~/Pictures"),), max_concurrent_uploads=2)
    async with StatusStore(config.db_path) as store:
        async with UploadOrchestrator(config, store, client, credentials) as orchestrator:
            await orchestrator.run(stop_event)
        print(orchestrator.summary)
"""
from .models import AlbumTarget, FileStatus, UploadResult, UploaderConfig
from .orchestrator import RunSummary, UploadOrchestrator, UploadOutcome
from .services import CredentialProvider, PhotosUploadClient, StatusStore

__version__ = "0.3.0"
__all__ = [
    # Main
    "UploadOrchestrator",
    "RunSummary",
    "UploadOutcome",
    # Models
    "AlbumTarget",
    "FileStatus",
    "UploadResult",
    "UploaderConfig",
    # Services
    "CredentialProvider",
    "PhotosUploadClient",
    "StatusStore",
]
