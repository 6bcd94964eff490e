"""
api/routes/v1/oauth.py -- External-login HTTP surface.

Routes:
  GET /oauth2/authorization/{provider}?redirectUrl=...  -- begin: capture target, redirect to provider
  GET /login/oauth2/code/{provider}                      -- provider callback: issue credentials, redirect
  GET /api/v1/auth/providers                             -- enabled providers (public)

Flow (auth/login.py owns the state machine):
  1. begin_login() picks the redirect target (redirectUrl param, else Referer,
     else SITE_FRONT_URL) -> PENDING. The target is stored in the signed,
     short-lived loginRedirect cookie.
  2. authlib redirects the browser to the provider; the OAuth state value
     lives in the Starlette session cookie.
  3. Callback: exchange the code, normalize the profile, resolve/create the
     member -> AUTHENTICATED.
  4. Issue the access credential, set accessToken + apiKey cookies, delete
     loginRedirect -> REDIRECTED, 302 to the target.

Any provider failure raises ExternalLoginFailed, which the application's
exception handler renders as a 401 envelope. No cookie is written on a
failed callback.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from httpx import HTTPError

from api.models import OAuthProviderInfo
from auth.directory import MemberDirectory
from auth.errors import ExternalLoginFailed
from auth.login import LoginFlow, authenticate, begin_login, finish, safe_redirect_target
from auth.oauth import get_enabled_providers, get_external_profile, is_enabled
from auth.tokens import (
    LOGIN_REDIRECT_COOKIE,
    clear_redirect_cookie,
    read_redirect_token,
    set_credential_cookies,
    set_redirect_cookie,
)
from core.config import get_settings

logger = logging.getLogger("gatekeeper.api.oauth")

router = APIRouter()
api_router = APIRouter()


@router.get("/oauth2/authorization/{provider}")
async def begin_external_login(request: Request, provider: str):
    """Capture the post-login target and redirect to the provider."""
    if not is_enabled(provider):
        raise ExternalLoginFailed(f"provider {provider!r} is not enabled")

    settings = get_settings()
    flow = begin_login(
        request.query_params.get("redirectUrl"),
        request.headers.get("Referer"),
        settings.site_front_url,
        settings.trusted_origins,
    )

    client = request.app.state.oauth.create_client(provider)
    redirect_uri = str(request.url_for("external_login_callback", provider=provider))
    response = await client.authorize_redirect(request, redirect_uri)
    set_redirect_cookie(response, flow.redirect_target)
    return response


@router.get("/login/oauth2/code/{provider}", name="external_login_callback")
async def external_login_callback(request: Request, provider: str):
    """Complete the handshake, issue credentials, and redirect to the captured target."""
    if not is_enabled(provider):
        raise ExternalLoginFailed(f"provider {provider!r} is not enabled")

    settings = get_settings()
    directory: MemberDirectory = request.app.state.member_directory
    client = request.app.state.oauth.create_client(provider)

    try:
        token = await client.authorize_access_token(request)
        profile = await get_external_profile(client, provider, token)
    except (OAuthError, HTTPError) as exc:
        logger.warning("OAuth handshake failed for provider %r: %s", provider, exc)
        raise ExternalLoginFailed(f"{provider} handshake failed") from exc

    target = safe_redirect_target(
        read_redirect_token(request.cookies.get(LOGIN_REDIRECT_COOKIE)),
        settings.site_front_url,
        settings.trusted_origins,
    )
    flow = finish(authenticate(LoginFlow(redirect_target=target), directory, profile), directory)
    logger.info("Member %d signed in via %s", flow.member.id, provider)

    response = RedirectResponse(flow.redirect_target, status_code=302)
    set_credential_cookies(response, flow.access_token, flow.api_key)
    clear_redirect_cookie(response)
    response.headers["Cache-Control"] = "no-store"
    return response


@api_router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return the configured external login providers. Public."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers()]
