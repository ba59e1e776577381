"""Services for gphotos_uploader."""
from .api_client import PhotosUploadClient
from .credentials import (
    CookieCredentials,
    CredentialProvider,
    CredentialsValidity,
    SessionCredentials,
)
from .status_store import StatusStore
from .token_scraper import AtTokenScraper

__all__ = [
    "AtTokenScraper",
    "CookieCredentials",
    "CredentialProvider",
    "CredentialsValidity",
    "PhotosUploadClient",
    "SessionCredentials",
    "StatusStore",
]
