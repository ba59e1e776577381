"""Exception types for the upload pipeline.

Convention:
- Errors raised while building shared infrastructure (credentials, the status
  database, the filesystem observer) are fatal and stop the process.
- Errors raised while handling a single file are turned into an ``error``
  outcome for that file and never stop the pipeline.
"""
from __future__ import annotations


class UploaderError(Exception):
    """Base class for all uploader errors."""


class CredentialsError(UploaderError):
    """Raised when valid credentials cannot be loaded, validated or scraped."""


class StoreError(UploaderError):
    """Raised when the status database fails."""


class WatcherError(UploaderError):
    """Raised when a directory cannot be watched."""


class UploadError(UploaderError):
    """Raised by the HTTP upload adapter when the remote service rejects a file."""
