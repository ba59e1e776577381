"""Tests for credentials loading, validation and at token scraping."""
import json

import httpx
import pytest

from gphotos_uploader.exceptions import CredentialsError
from gphotos_uploader.services.credentials import CookieCredentials, CredentialProvider
from gphotos_uploader.services.token_scraper import (
    AtTokenScraper,
    find_script,
    find_token_in_script,
)

HOMEPAGE = (
    "<html><head>"
    "<script nonce=\"n\">var unrelated = 1;</script>"
    "<script data-id=\"_gd\" nonce=\"n\">"
    "window.WIZ_global_data = {\"SNlM0e\":\"AT-token-123\",\"FdrFJe\":\"-42\"};"
    "</script>"
    "</head><body></body></html>"
)


def _write_auth(path, cookies=None):
    cookies = cookies if cookies is not None else [
        {"name": "SID", "value": "sid-1", "domain": ".google.com", "path": "/"}
    ]
    path.write_text(json.dumps({"cookies": cookies, "persistentParameters": {"userId": "me"}}))
    return path


def _homepage_transport(signed_in: bool):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.google.com":
            return httpx.Response(200, text="<html>Sign in</html>")
        if not signed_in:
            return httpx.Response(302, headers={"Location": "https://accounts.google.com/ServiceLogin"})
        return httpx.Response(200, text=HOMEPAGE)

    return httpx.MockTransport(handler)


class TestTokenScraping:
    def test_find_script(self):
        assert find_script(HOMEPAGE).startswith("window.WIZ_global_data")

    def test_missing_script(self):
        with pytest.raises(CredentialsError):
            find_script("<html><script>var a = 1;</script></html>")

    def test_find_token(self):
        assert find_token_in_script(find_script(HOMEPAGE)) == "AT-token-123"

    def test_invalid_json(self):
        with pytest.raises(CredentialsError):
            find_token_in_script("window.x = {not json};")

    def test_missing_token(self):
        with pytest.raises(CredentialsError):
            find_token_in_script('window.x = {"other": 1};')

    def test_no_assignment(self):
        with pytest.raises(CredentialsError):
            find_token_in_script('{"SNlM0e": "x"}')

    @pytest.mark.asyncio
    async def test_scrape(self):
        async with httpx.AsyncClient(transport=_homepage_transport(True)) as client:
            assert await AtTokenScraper(client).scrape() == "AT-token-123"

    @pytest.mark.asyncio
    async def test_scrape_http_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(CredentialsError):
                await AtTokenScraper(client).scrape()


class TestCookieCredentials:
    def test_from_file(self, tmp_path):
        credentials = CookieCredentials.from_file(_write_auth(tmp_path / "auth.json"))
        assert credentials.cookies[0]["name"] == "SID"
        assert credentials.persistent_parameters == {"userId": "me"}

    def test_missing_file(self, tmp_path):
        with pytest.raises(CredentialsError):
            CookieCredentials.from_file(tmp_path / "auth.json")

    def test_file_without_cookies(self, tmp_path):
        with pytest.raises(CredentialsError):
            CookieCredentials.from_file(_write_auth(tmp_path / "auth.json", cookies=[]))

    def test_from_cookie_header(self):
        credentials = CookieCredentials.from_cookie_header("SID=abc; HSID=def=ghi;  ;junk")
        assert [(c["name"], c["value"]) for c in credentials.cookies] == [
            ("SID", "abc"),
            ("HSID", "def=ghi"),
        ]
        assert credentials.cookies[0]["domain"] == ".google.com"

    def test_empty_cookie_header(self):
        with pytest.raises(CredentialsError):
            CookieCredentials.from_cookie_header("   ")

    def test_file_roundtrip_keeps_parameters(self, tmp_path):
        original = CookieCredentials(cookies=[{"name": "SID", "value": "x"}], persistent_parameters={"a": 1})
        original.to_file(tmp_path / "nested" / "auth.json")
        assert CookieCredentials.from_file(tmp_path / "nested" / "auth.json") == original


class TestCredentialProvider:
    @pytest.mark.asyncio
    async def test_valid_auth_file(self, tmp_path):
        provider = CredentialProvider(
            _write_auth(tmp_path / "auth.json"),
            interactive=False,
            transport=_homepage_transport(True),
        )

        session = await provider.obtain()
        try:
            assert session.at_token == "AT-token-123"
            assert session.cookies.cookies[0]["value"] == "sid-1"
        finally:
            await session.aclose()

    @pytest.mark.asyncio
    async def test_redirect_to_sign_in_is_invalid(self, tmp_path):
        provider = CredentialProvider(tmp_path / "auth.json", transport=_homepage_transport(False))

        async with provider.new_client(CookieCredentials(cookies=[{"name": "SID", "value": "x"}])) as client:
            validity = await provider.check(client)

        assert validity.valid is False
        assert "sign-in" in validity.reason

    @pytest.mark.asyncio
    async def test_expired_cookies_without_terminal_is_fatal(self, tmp_path):
        provider = CredentialProvider(
            _write_auth(tmp_path / "auth.json"),
            interactive=False,
            transport=_homepage_transport(False),
        )

        with pytest.raises(CredentialsError):
            await provider.obtain()

    @pytest.mark.asyncio
    async def test_declined_recovery_is_fatal(self, tmp_path):
        answers = iter(["no"])
        provider = CredentialProvider(
            tmp_path / "auth.json",
            prompt=lambda message: next(answers),
            transport=_homepage_transport(True),
        )

        with pytest.raises(CredentialsError):
            await provider.obtain()

    @pytest.mark.asyncio
    async def test_pasted_cookies_are_saved(self, tmp_path):
        auth_file = tmp_path / "auth.json"
        answers = iter(["Yes", "SID=fresh; HSID=other"])
        provider = CredentialProvider(
            auth_file,
            prompt=lambda message: next(answers),
            transport=_homepage_transport(True),
        )

        session = await provider.obtain()
        await session.aclose()

        saved = json.loads(auth_file.read_text())
        assert [c["name"] for c in saved["cookies"]] == ["SID", "HSID"]
        assert session.at_token == "AT-token-123"

    @pytest.mark.asyncio
    async def test_pasted_cookies_still_invalid(self, tmp_path):
        auth_file = tmp_path / "auth.json"
        answers = iter(["y", "SID=stale"])
        provider = CredentialProvider(
            auth_file,
            prompt=lambda message: next(answers),
            transport=_homepage_transport(False),
        )

        with pytest.raises(CredentialsError):
            await provider.obtain()
        assert not auth_file.exists()

    @pytest.mark.asyncio
    async def test_network_failure_is_credentials_error(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("name resolution failed", request=request)

        provider = CredentialProvider(
            _write_auth(tmp_path / "auth.json"),
            interactive=False,
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(CredentialsError):
            await provider.obtain()
