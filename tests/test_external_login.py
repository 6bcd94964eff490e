"""
tests/test_external_login.py -- Integration tests for the external login flow.

The authlib registry on app.state is replaced with a fake client, so no
network traffic happens. Covers:
  - begin: redirect to the provider, signed loginRedirect cookie, callback URI
  - callback: member created on first sight, both cookies set, loginRedirect
    cleared, 302 to the captured target
  - target selection: explicit, Referer, default, untrusted, forged cookie
  - failures: provider error, missing subject, disabled provider -> 401 and
    no credential cookies
  - provider listing
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from authlib.integrations.starlette_client import OAuthError
from fastapi.responses import RedirectResponse

from api.main import app
from auth.directory import external_username
from auth.tokens import create_redirect_token, verify_access_token

FRONT = "http://localhost:3000"
PROVIDER_URL = "https://accounts.google.com/o/oauth2/v2/auth?state=xyz"


@pytest.fixture
def fake_provider(api_client, monkeypatch) -> MagicMock:
    provider = MagicMock()
    provider.authorize_redirect = AsyncMock(return_value=RedirectResponse(PROVIDER_URL, status_code=302))
    provider.authorize_access_token = AsyncMock(
        return_value={"access_token": "t", "userinfo": {"sub": "g-100", "name": "Grace"}}
    )
    registry = MagicMock()
    registry.create_client.return_value = provider
    monkeypatch.setattr(app.state, "oauth", registry)
    return provider


def _login(client, **begin_kwargs):
    begin = client.get("/oauth2/authorization/google", **begin_kwargs)
    callback = client.get("/login/oauth2/code/google", params={"code": "abc", "state": "xyz"})
    return begin, callback


def _set_cookies(resp) -> list[str]:
    return resp.headers.get_list("set-cookie")


class TestBegin:
    def test_redirects_to_provider_with_signed_target(self, client, fake_provider):
        resp = client.get("/oauth2/authorization/google", params={"redirectUrl": f"{FRONT}/posts/1"})
        assert resp.status_code == 302
        assert resp.headers["location"] == PROVIDER_URL
        assert "loginRedirect" in resp.cookies
        redirect_uri = fake_provider.authorize_redirect.await_args.args[1]
        assert redirect_uri.endswith("/login/oauth2/code/google")

    def test_disabled_provider_is_401(self, client, fake_provider):
        resp = client.get("/oauth2/authorization/github")
        assert resp.status_code == 401
        assert resp.json()["code"] == "401-1"
        fake_provider.authorize_redirect.assert_not_awaited()


class TestCallback:
    def test_blank_target_lands_on_front_url(self, client, api_client, fake_provider):
        _, resp = _login(client)
        assert resp.status_code == 302
        assert resp.headers["location"] == FRONT
        assert resp.headers["cache-control"] == "no-store"

        member = api_client.store.get_by_external_login("google", "g-100")
        assert member.username == external_username("google", "g-100")
        assert member.nickname == "Grace"
        assert verify_access_token(resp.cookies["accessToken"]) == member.id
        assert resp.cookies["apiKey"] == member.api_key
        assert any(c.startswith("loginRedirect=") and "Max-Age=0" in c for c in _set_cookies(resp))

    def test_issued_cookies_authenticate(self, client, fake_provider):
        _login(client)
        assert client.get("/api/v1/members/me").json()["data"]["nickname"] == "Grace"

    def test_second_login_reuses_member(self, client, api_client, fake_provider):
        _, first = _login(client)
        client.cookies.clear()
        _, second = _login(client)
        assert first.cookies["apiKey"] == second.cookies["apiKey"]

    def test_trusted_target(self, client, fake_provider):
        _, resp = _login(client, params={"redirectUrl": f"{FRONT}/posts/7"})
        assert resp.headers["location"] == f"{FRONT}/posts/7"

    def test_configured_origin_target(self, client, fake_provider):
        _, resp = _login(client, params={"redirectUrl": "https://cdpn.io/pen/abc"})
        assert resp.headers["location"] == "https://cdpn.io/pen/abc"

    def test_untrusted_target_falls_back(self, client, fake_provider):
        _, resp = _login(client, params={"redirectUrl": "https://evil.example/steal"})
        assert resp.headers["location"] == FRONT

    def test_referer_fallback(self, client, fake_provider):
        _, resp = _login(client, headers={"Referer": f"{FRONT}/posts/3"})
        assert resp.headers["location"] == f"{FRONT}/posts/3"

    def test_missing_redirect_cookie_uses_default(self, client, fake_provider):
        resp = client.get("/login/oauth2/code/google", params={"code": "abc"})
        assert resp.status_code == 302
        assert resp.headers["location"] == FRONT

    def test_signed_untrusted_cookie_is_rechecked(self, client, fake_provider):
        client.cookies.set("loginRedirect", create_redirect_token("https://evil.example/"))
        resp = client.get("/login/oauth2/code/google", params={"code": "abc"})
        assert resp.headers["location"] == FRONT

    def test_forged_cookie_is_ignored(self, client, fake_provider):
        client.cookies.set("loginRedirect", "eyJhbGciOiJIUzI1NiJ9.e30.forged")
        resp = client.get("/login/oauth2/code/google", params={"code": "abc"})
        assert resp.headers["location"] == FRONT


class TestCallbackFailures:
    def _assert_failed(self, resp) -> None:
        assert resp.status_code == 401
        body = resp.json()
        assert body["code"] == "401-1"
        assert body["data"] is None
        assert not any(c.startswith(("accessToken=", "apiKey=")) for c in _set_cookies(resp))

    def test_provider_error(self, client, fake_provider):
        fake_provider.authorize_access_token.side_effect = OAuthError(error="access_denied")
        _, resp = _login(client)
        self._assert_failed(resp)

    def test_profile_without_subject(self, client, fake_provider):
        fake_provider.authorize_access_token.return_value = {"userinfo": {"name": "No Sub"}}
        _, resp = _login(client)
        self._assert_failed(resp)

    def test_disabled_provider_callback(self, client, fake_provider):
        self._assert_failed(client.get("/login/oauth2/code/github", params={"code": "abc"}))


def test_provider_listing_is_public(client):
    resp = client.get("/api/v1/auth/providers")
    assert resp.status_code == 200
    names = [p["name"] for p in resp.json()]
    assert "google" in names
    assert "github" not in names
