"""
tests/test_oauth_profiles.py -- Provider profile normalization.

Covers the (provider, subject, nickname) triple produced for each provider,
nickname fallbacks, and ExternalLoginFailed for responses without a stable
subject id. The profile carries nothing the member directory does not store.
"""

from __future__ import annotations

import asyncio
import dataclasses
from unittest.mock import AsyncMock, MagicMock

import pytest

from auth.errors import ExternalLoginFailed
from auth.models import ExternalProfile
from auth.oauth import get_external_profile


def _client_returning(payload: dict) -> MagicMock:
    response = MagicMock()
    response.json.return_value = payload
    client = MagicMock()
    client.get = AsyncMock(return_value=response)
    return client


def _profile(client, provider: str, token: dict) -> ExternalProfile:
    return asyncio.run(get_external_profile(client, provider, token))


def test_profile_fields_match_what_is_stored():
    assert [f.name for f in dataclasses.fields(ExternalProfile)] == ["provider", "subject", "nickname"]


def test_oidc_profile_from_userinfo():
    token = {"userinfo": {"sub": "abc", "name": "Ada", "email": "ada@example.com", "email_verified": True}}
    assert _profile(MagicMock(), "google", token) == ExternalProfile("google", "abc", "Ada")


def test_oidc_nickname_falls_back_to_preferred_username():
    token = {"userinfo": {"sub": "abc", "preferred_username": "ada"}}
    assert _profile(MagicMock(), "oidc", token).nickname == "ada"


@pytest.mark.parametrize("token", [{}, {"userinfo": {"name": "Ada"}}])
def test_oidc_without_subject_fails(token):
    with pytest.raises(ExternalLoginFailed):
        _profile(MagicMock(), "google", token)


def test_github_profile():
    client = _client_returning({"id": 42, "login": "octocat", "name": None})
    assert _profile(client, "github", {"access_token": "t"}) == ExternalProfile("github", "42", "octocat")
    client.get.assert_awaited_once()


def test_kakao_profile():
    client = _client_returning({"id": 7, "properties": {"nickname": "Kim"}})
    assert _profile(client, "kakao", {"access_token": "t"}) == ExternalProfile("kakao", "7", "Kim")


@pytest.mark.parametrize("provider", ["github", "kakao"])
def test_profile_without_id_fails(provider):
    with pytest.raises(ExternalLoginFailed):
        _profile(_client_returning({"login": "x"}), provider, {"access_token": "t"})


def test_unknown_provider_fails():
    with pytest.raises(ExternalLoginFailed):
        _profile(MagicMock(), "myspace", {})
