"""
AtTokenScraper - fetch a fresh session ("at") token from the web UI.

The token is user dependent: the homepage embeds a ``<script data-id="_gd">``
block that assigns a JSON object to a global; the token is its ``SNlM0e``
member.
"""
from __future__ import annotations

import json
import logging
from html.parser import HTMLParser
from typing import List, Optional

import httpx

from ..exceptions import CredentialsError

logger = logging.getLogger(__name__)

GOOGLE_PHOTOS_URL = "https://photos.google.com/"
TOKEN_SCRIPT_ID = "_gd"
TOKEN_KEY = "SNlM0e"


class _TokenScriptFinder(HTMLParser):
    """Collect the text of the first ``<script data-id="_gd">`` element."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._inside = False
        self._done = False
        self._chunks: List[str] = []

    def handle_starttag(self, tag, attrs):
        if self._done or tag != "script":
            return
        if ("data-id", TOKEN_SCRIPT_ID) in attrs:
            self._inside = True

    def handle_endtag(self, tag):
        if self._inside and tag == "script":
            self._inside = False
            self._done = True

    def handle_data(self, data):
        if self._inside:
            self._chunks.append(data)

    @property
    def script(self) -> Optional[str]:
        if not self._done and not self._chunks:
            return None
        return "".join(self._chunks)


def find_script(page: str) -> str:
    finder = _TokenScriptFinder()
    finder.feed(page)
    finder.close()
    script = finder.script
    if script is None:
        raise CredentialsError("can't find the script tag with the token in the response")
    return script


def find_token_in_script(script: str) -> str:
    """Strip the ``window.X = ...;`` assignment and read the token from the JSON object."""
    equals_index = script.find("=")
    if equals_index < 0:
        raise CredentialsError("the token script has no assignment")
    payload = script[equals_index + 1:].strip().rstrip(";").strip()
    try:
        container = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise CredentialsError(f"can't parse the JSON object that contains the at token ({exc})") from exc

    token = container.get(TOKEN_KEY) if isinstance(container, dict) else None
    if not token:
        raise CredentialsError("the at token is missing from the page, are the credentials still valid?")
    return token


class AtTokenScraper:
    """
    Scrapes the at token with an authenticated client.

    Create one scraper per credentials object.
    """

    def __init__(self, client: httpx.AsyncClient, url: str = GOOGLE_PHOTOS_URL):
        self._client = client
        self._url = url

    async def scrape(self) -> str:
        try:
            response = await self._client.get(self._url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise CredentialsError(f"can't complete the request to get the homepage ({exc})") from exc

        token = find_token_in_script(find_script(response.text))
        logger.debug("At token scraped (%d chars)", len(token))
        return token
