"""HTTP adapter for the remote photo service upload."""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from ..exceptions import UploadError
from ..models import AlbumTarget, UploadResult

logger = logging.getLogger(__name__)

UPLOAD_URL = "https://photos.google.com/_/upload/uploadmedia/interactive"
BATCH_EXECUTE_URL = "https://photos.google.com/_/PhotosUi/data/batchexecute"
ADD_TO_ALBUM_RPC = "E1Cajb"
CREATE_ALBUM_RPC = "OXvT9"


class PhotosUploadClient:
    """
    Upload operation adapter.

    Implements IUploadOperation protocol:
    1. open a resumable upload session for the file
    2. send the bytes and finalize the session, which yields an upload token
    3. when an album is targeted, attach the token to it

    Transient 5xx answers are retried; everything else becomes a failed
    UploadResult.
    """

    def __init__(self, max_retries: int = 3, chunk_size: int = 1024 * 1024, backoff: float = 0.5):
        self._max_retries = max_retries
        self._chunk_size = chunk_size
        self._backoff = backoff

    async def upload(self, path: Path, album: AlbumTarget, credentials: Any) -> UploadResult:
        path = Path(path)
        try:
            size = path.stat().st_size
            upload_url = await self._start_session(credentials.client, path, size)
            token = await self._send_bytes(credentials.client, upload_url, path)
            if album.is_set:
                await self._attach_to_album(credentials, token, album)
        except (UploadError, httpx.HTTPError, OSError) as exc:
            logger.debug("Upload of %s failed", path, exc_info=True)
            return UploadResult.fail(path, str(exc) or type(exc).__name__)
        return UploadResult.ok(path, upload_token=token)

    async def _start_session(self, client: httpx.AsyncClient, path: Path, size: int) -> str:
        body = {
            "protocolVersion": "0.8",
            "createSessionRequest": {
                "fields": [
                    {"external": {"name": "file", "filename": path.name, "put": {}, "size": size}},
                ]
            },
        }
        response = await self._post(
            client,
            UPLOAD_URL,
            headers={
                "X-Goog-Upload-Command": "start",
                "X-Goog-Upload-Protocol": "resumable",
                "X-Goog-Upload-Header-Content-Length": str(size),
            },
            content=json.dumps(body),
        )
        upload_url = response.headers.get("X-Goog-Upload-URL")
        if not upload_url:
            raise UploadError("upload session was not opened (no upload URL)")
        return upload_url

    async def _send_bytes(self, client: httpx.AsyncClient, upload_url: str, path: Path) -> str:
        response = await self._post(
            client,
            upload_url,
            headers={"X-Goog-Upload-Command": "upload, finalize", "X-Goog-Upload-Offset": "0"},
            content=self._read_chunks(path),
            retry=False,
        )
        return _extract_upload_token(response)

    async def _read_chunks(self, path: Path):
        with open(path, "rb") as f:
            while True:
                chunk = await asyncio.to_thread(f.read, self._chunk_size)
                if not chunk:
                    break
                yield chunk

    async def _attach_to_album(self, credentials: Any, token: str, album: AlbumTarget) -> None:
        if album.album_id:
            rpc_id, args = ADD_TO_ALBUM_RPC, [[token], album.album_id]
        else:
            rpc_id, args = CREATE_ALBUM_RPC, [[token], None, album.album_name]
        payload = json.dumps([[[rpc_id, json.dumps(args), None, "generic"]]])
        await self._post(
            credentials.client,
            BATCH_EXECUTE_URL,
            params={"rpcids": rpc_id},
            data={"f.req": payload, "at": credentials.at_token},
        )

    async def _post(self, client: httpx.AsyncClient, url: str, retry: bool = True, **kwargs) -> httpx.Response:
        attempts = max(self._max_retries, 1) if retry else 1

        for attempt in range(attempts):
            response = await client.post(url, **kwargs)

            if response.status_code >= 500 and attempt < attempts - 1:
                await asyncio.sleep(self._backoff * (attempt + 1))
                continue

            if response.status_code >= 400:
                raise UploadError(f"API error {response.status_code} on POST {url}: {response.text[:200]}")

            return response


def _extract_upload_token(response: httpx.Response) -> str:
    """Read the upload token from a finalized session answer."""
    try:
        data: Dict[str, Any] = response.json()
    except ValueError:
        token = response.text.strip()
        if not token:
            raise UploadError("upload finalized without an upload token")
        return token

    if not isinstance(data, dict):
        raise UploadError("unexpected answer when finalizing the upload")
    info: Optional[Dict[str, Any]] = (
        data.get("sessionStatus", {})
        .get("additionalInfo", {})
        .get("uploader_service.GoogleRupioAdditionalInfo", {})
        .get("completionInfo", {})
        .get("customerSpecificInfo")
    )
    token = (info or {}).get("upload_token_base64")
    if not token:
        raise UploadError("upload finalized without an upload token")
    return token
