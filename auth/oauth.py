"""
auth/oauth.py -- Authlib OAuth/OIDC provider configuration.

Reads configuration from core.config.get_settings() at module load to decide
which providers are active. Only providers with both client ID and secret
configured get registered.

The OAuth state parameter (CSRF protection) is handled by authlib via
Starlette SessionMiddleware. The post-login redirect target is NOT kept in
the session -- it travels in its own signed cookie (see auth.tokens).

Supported providers:
  github -- Authorization code flow; static endpoints.
  google -- Authorization code flow; OIDC discovery.
  kakao  -- Authorization code flow; static endpoints.
  oidc   -- Generic OIDC discovery (Okta, Azure AD, Keycloak, Authentik, etc.)

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from auth.errors import ExternalLoginFailed
from auth.models import ExternalProfile
from core.config import get_settings

logger = logging.getLogger("gatekeeper.auth.oauth")

# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()

_cfg = get_settings()

if _cfg.github_client_id and _cfg.github_client_secret:
    oauth.register(
        name="github",
        client_id=_cfg.github_client_id,
        client_secret=_cfg.github_client_secret,
        access_token_url="https://github.com/login/oauth/access_token",  # noqa: S106 -- URL, not a password
        authorize_url="https://github.com/login/oauth/authorize",
        api_base_url="https://api.github.com/",
        client_kwargs={"scope": "read:user"},
    )
    logger.info("GitHub OAuth provider registered")

if _cfg.google_client_id and _cfg.google_client_secret:
    oauth.register(
        name="google",
        client_id=_cfg.google_client_id,
        client_secret=_cfg.google_client_secret,
        server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
        client_kwargs={"scope": "openid profile"},
    )
    logger.info("Google OAuth provider registered")

if _cfg.kakao_client_id and _cfg.kakao_client_secret:
    oauth.register(
        name="kakao",
        client_id=_cfg.kakao_client_id,
        client_secret=_cfg.kakao_client_secret,
        access_token_url="https://kauth.kakao.com/oauth/token",  # noqa: S106 -- URL, not a password
        authorize_url="https://kauth.kakao.com/oauth/authorize",
        api_base_url="https://kapi.kakao.com/",
        client_kwargs={"scope": "profile_nickname", "token_endpoint_auth_method": "client_secret_post"},
    )
    logger.info("Kakao OAuth provider registered")

if _cfg.oidc_client_id and _cfg.oidc_client_secret and _cfg.oidc_discovery_url:
    oauth.register(
        name="oidc",
        client_id=_cfg.oidc_client_id,
        client_secret=_cfg.oidc_client_secret,
        server_metadata_url=_cfg.oidc_discovery_url,
        client_kwargs={"scope": "openid profile"},
    )
    logger.info("Generic OIDC provider registered (display name: %s)", _cfg.oidc_display_name)


# ---------------------------------------------------------------------------
# Provider metadata
# ---------------------------------------------------------------------------


def get_enabled_providers() -> list[dict]:
    """Return {"name", "label"} for every provider with credentials configured."""
    cfg = get_settings()
    providers: list[dict] = []
    if cfg.github_client_id and cfg.github_client_secret:
        providers.append({"name": "github", "label": "GitHub"})
    if cfg.google_client_id and cfg.google_client_secret:
        providers.append({"name": "google", "label": "Google"})
    if cfg.kakao_client_id and cfg.kakao_client_secret:
        providers.append({"name": "kakao", "label": "Kakao"})
    if cfg.oidc_client_id and cfg.oidc_client_secret and cfg.oidc_discovery_url:
        providers.append({"name": "oidc", "label": cfg.oidc_display_name})
    return providers


def is_enabled(provider: str) -> bool:
    return any(p["name"] == provider for p in get_enabled_providers())


# ---------------------------------------------------------------------------
# Profile extraction -- provider-specific normalization
# ---------------------------------------------------------------------------


async def get_external_profile(client, provider: str, token: dict) -> ExternalProfile:
    """Normalize a provider token response into an ExternalProfile.

    Raises:
        ExternalLoginFailed: the provider response lacks a stable subject id.
    """
    if provider == "github":
        return await _get_github_profile(client, token)
    if provider == "kakao":
        return await _get_kakao_profile(client, token)
    if provider in ("google", "oidc"):
        return _get_oidc_profile(token, provider)
    raise ExternalLoginFailed(f"Unknown OAuth provider: {provider!r}")


async def _get_github_profile(client, token: dict) -> ExternalProfile:
    resp = await client.get("user", token=token)
    resp.raise_for_status()
    profile = resp.json()
    if "id" not in profile:
        raise ExternalLoginFailed("github OAuth: profile has no id")
    return ExternalProfile(
        provider="github",
        subject=str(profile["id"]),
        nickname=profile.get("name") or profile.get("login") or "",
    )


async def _get_kakao_profile(client, token: dict) -> ExternalProfile:
    resp = await client.get("v2/user/me", token=token)
    resp.raise_for_status()
    profile = resp.json()
    if "id" not in profile:
        raise ExternalLoginFailed("kakao OAuth: profile has no id")
    properties = profile.get("properties") or {}
    return ExternalProfile(
        provider="kakao",
        subject=str(profile["id"]),
        nickname=properties.get("nickname") or "",
    )


def _get_oidc_profile(token: dict, provider: str) -> ExternalProfile:
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ExternalLoginFailed(f"{provider} OAuth: no userinfo in token response")
    subject = userinfo.get("sub")
    if not subject:
        raise ExternalLoginFailed(f"{provider} OAuth: missing sub claim in userinfo")
    return ExternalProfile(
        provider=provider,
        subject=str(subject),
        nickname=userinfo.get("name") or userinfo.get("preferred_username") or "",
    )
