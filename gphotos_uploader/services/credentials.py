"""
Credential Provider - authenticated HTTP client plus a fresh at token.

Credentials are browser cookies kept in a JSON auth file:

    {
        "cookies": [{"name": "SID", "value": "...", "domain": ".google.com", "path": "/"}],
        "persistentParameters": {"userId": "..."}
    }

When the file is missing or its cookies are no longer accepted, an
interactive session may paste a fresh ``Cookie`` header copied from the
browser; the result is written back to the auth file.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..exceptions import CredentialsError
from .token_scraper import GOOGLE_PHOTOS_URL, AtTokenScraper

logger = logging.getLogger(__name__)

SIGN_IN_HOST = "accounts.google.com"
DEFAULT_COOKIE_DOMAIN = ".google.com"
USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)


@dataclass
class CookieCredentials:
    """Browser cookies and the parameters that survive between runs."""
    cookies: List[Dict[str, Any]]
    persistent_parameters: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: Path) -> "CookieCredentials":
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise CredentialsError(f"can't use '{path}' as auth file: {exc}") from exc
        cookies = data.get("cookies") if isinstance(data, dict) else None
        if not isinstance(cookies, list) or not cookies:
            raise CredentialsError(f"auth file '{path}' contains no cookies")
        return cls(cookies=cookies, persistent_parameters=data.get("persistentParameters") or {})

    @classmethod
    def from_cookie_header(cls, header: str, domain: str = DEFAULT_COOKIE_DOMAIN) -> "CookieCredentials":
        """Build credentials from a ``name=value; name2=value2`` header."""
        cookies = []
        for part in header.split(";"):
            if "=" not in part:
                continue
            name, value = part.split("=", 1)
            name = name.strip()
            if not name:
                continue
            cookies.append({"name": name, "value": value.strip(), "domain": domain, "path": "/"})
        if not cookies:
            raise CredentialsError("the cookie header contains no cookies")
        return cls(cookies=cookies)

    def to_file(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"cookies": self.cookies, "persistentParameters": self.persistent_parameters}
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def cookie_jar(self) -> httpx.Cookies:
        jar = httpx.Cookies()
        for cookie in self.cookies:
            jar.set(
                cookie["name"],
                cookie.get("value", ""),
                domain=cookie.get("domain", DEFAULT_COOKIE_DOMAIN),
                path=cookie.get("path", "/"),
            )
        return jar


@dataclass(frozen=True)
class CredentialsValidity:
    valid: bool
    reason: str = ""


@dataclass
class SessionCredentials:
    """What the upload operation needs: an authenticated client and the at token."""
    client: httpx.AsyncClient
    cookies: CookieCredentials
    at_token: str

    async def aclose(self) -> None:
        await self.client.aclose()


class CredentialProvider:
    """
    Loads, validates and (interactively) recovers credentials.

    Any failure to end up with valid credentials raises CredentialsError,
    which is fatal to startup.
    """

    def __init__(
        self,
        auth_file: Path,
        timeout: int = 60,
        interactive: bool = True,
        prompt: Callable[[str], str] = input,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        homepage_url: str = GOOGLE_PHOTOS_URL,
    ):
        self._auth_file = Path(auth_file)
        self._timeout = timeout
        self._interactive = interactive
        self._prompt = prompt
        self._transport = transport
        self._homepage_url = homepage_url

    def new_client(self, credentials: CookieCredentials) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            cookies=credentials.cookie_jar(),
            follow_redirects=True,
            timeout=self._timeout,
            headers={"User-Agent": USER_AGENT},
            transport=self._transport,
        )

    async def check(self, client: httpx.AsyncClient) -> CredentialsValidity:
        """A redirect to the sign-in page means the cookies are no longer accepted."""
        try:
            response = await client.get(self._homepage_url)
        except httpx.HTTPError as exc:
            raise CredentialsError(f"can't check validity of credentials ({exc})") from exc

        if response.url.host == SIGN_IN_HOST:
            return CredentialsValidity(False, "redirected to the sign-in page")
        if response.status_code >= 400:
            return CredentialsValidity(False, f"homepage answered {response.status_code}")
        return CredentialsValidity(True)

    async def obtain(self) -> SessionCredentials:
        credentials = self._load()
        client: Optional[httpx.AsyncClient] = None

        if credentials is not None:
            logger.info("Auth file loaded, checking validity ...")
            client = self.new_client(credentials)
            validity = await self._check_or_close(client)
            if validity.valid:
                logger.info("Auth file seems to be valid")
            else:
                logger.warning("Credentials are not valid! %s", validity.reason)
                await client.aclose()
                client = None
                credentials = None

        if credentials is None:
            credentials = await self._recover()
            client = self.new_client(credentials)
            validity = await self._check_or_close(client)
            if not validity.valid:
                await client.aclose()
                raise CredentialsError(f"the pasted cookies are not valid: {validity.reason}")
            credentials.to_file(self._auth_file)
            logger.info("Credentials saved to %s", self._auth_file)

        logger.info("Getting a new At token ...")
        try:
            token = await AtTokenScraper(client, self._homepage_url).scrape()
        except CredentialsError:
            await client.aclose()
            raise
        logger.info("At token taken")
        return SessionCredentials(client=client, cookies=credentials, at_token=token)

    def _load(self) -> Optional[CookieCredentials]:
        try:
            return CookieCredentials.from_file(self._auth_file)
        except CredentialsError as exc:
            logger.warning("%s", exc)
            return None

    async def _check_or_close(self, client: httpx.AsyncClient) -> CredentialsValidity:
        try:
            return await self.check(client)
        except CredentialsError:
            await client.aclose()
            raise

    async def _recover(self) -> CookieCredentials:
        if not self._interactive:
            raise CredentialsError("the uploader can't continue without valid authentication cookies")

        answer = await asyncio.to_thread(
            self._prompt,
            "The uploader can't continue without valid authentication cookies.\n"
            "Would you like to paste a Cookie header copied from a signed-in browser? [Yes/No] ",
        )
        if not answer.strip().lower().startswith("y"):
            raise CredentialsError("it's not possible to continue without valid credentials")

        header = await asyncio.to_thread(self._prompt, "Cookie: ")
        return CookieCredentials.from_cookie_header(header)
