"""
api/gateway.py -- Authentication filter and policy enforcement chain.

Pattern: Chain of Responsibility as plain function composition. Each stage
has the shape

    stage(request, context) -> AuthContext | Response

Returning an AuthContext passes an updated context to the next stage;
returning a Response ends the chain and is sent as-is (the route handler
never runs). The chain is:

  1. authenticate -- extract credentials, resolve the member, attach the
                     context. Never rejects: an unusable credential yields
                     the anonymous context.
  2. enforce      -- consult the PolicyTable for (method, path, member) and
                     deny with the 401-1 / 403-1 envelope when required.

The resulting context is stored on request.state.auth, which route
dependencies read (auth/dependencies.py). Nothing is kept in globals.

Credential sources, in priority order:
  access credential -- Authorization: Bearer <token>  (or the two-part
                       "Bearer <apiKey> <token>" form), then the accessToken
                       cookie.
  API key           -- X-API-Key header, then the two-part bearer form, then
                       the apiKey cookie.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from starlette.responses import Response

from api.envelope import forbidden_response, unauthenticated_response
from auth.errors import Unauthenticated
from auth.models import ANONYMOUS, AuthContext
from auth.policy import Decision
from auth.resolver import VIA_API_KEY, resolve
from auth.tokens import ACCESS_TOKEN_COOKIE, API_KEY_COOKIE, set_access_cookie
from core.config import get_settings

logger = logging.getLogger("gatekeeper.gateway")

Stage = Callable[[Request, AuthContext], "AuthContext | Response"]


def extract_credentials(request: Request) -> tuple[str | None, str | None]:
    """Return (bearer access credential, API key) presented by the request."""
    bearer: str | None = None
    api_key: str | None = None

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        parts = auth_header[7:].split()
        if len(parts) == 1:
            bearer = parts[0]
        elif len(parts) == 2:
            api_key, bearer = parts

    if not bearer:
        bearer = request.cookies.get(ACCESS_TOKEN_COOKIE) or None

    header_key = request.headers.get("X-API-Key")
    if header_key:
        api_key = header_key
    if not api_key:
        api_key = request.cookies.get(API_KEY_COOKIE) or None

    return bearer, api_key


def authenticate(request: Request, context: AuthContext) -> AuthContext:
    bearer, api_key = extract_credentials(request)
    if not bearer and not api_key:
        return ANONYMOUS

    directory = request.app.state.member_directory
    try:
        resolution = resolve(directory, bearer=bearer, api_key=api_key)
    except Unauthenticated:
        logger.debug("Credentials presented on %s %s did not resolve", request.method, request.url.path)
        return ANONYMOUS

    refreshed: str | None = None
    if resolution.via == VIA_API_KEY and get_settings().refresh_access_cookie:
        refreshed, _ = directory.issue_credential(resolution.member)
    return AuthContext(member=resolution.member, via=resolution.via, refreshed_token=refreshed)


def enforce(request: Request, context: AuthContext) -> AuthContext | Response:
    decision = request.app.state.policy.decide(request.method, request.url.path, context.member)
    if decision is Decision.ALLOW:
        return context
    logger.info(
        "Denied %s %s (%s, member=%s)",
        request.method,
        request.url.path,
        decision.value,
        context.member.id if context.member else None,
    )
    if decision is Decision.DENY_FORBIDDEN:
        return forbidden_response()
    return unauthenticated_response()


DEFAULT_STAGES: tuple[Stage, ...] = (authenticate, enforce)


def run_chain(request: Request, stages: Sequence[Stage] = DEFAULT_STAGES) -> AuthContext | Response:
    """Run the stages in order; stop at the first one that returns a Response."""
    context = ANONYMOUS
    request.state.auth = context
    for stage in stages:
        outcome = stage(request, context)
        if isinstance(outcome, Response):
            return outcome
        context = outcome
        request.state.auth = context
    return context


async def auth_gateway(request: Request, call_next):
    """HTTP middleware entry point: run the chain, then the route."""
    # Directory lookups are blocking SQLAlchemy calls; keep them off the event loop.
    outcome = await run_in_threadpool(run_chain, request)
    if isinstance(outcome, Response):
        return outcome
    response = await call_next(request)
    if outcome.refreshed_token and not _sets_cookie(response, ACCESS_TOKEN_COOKIE):
        set_access_cookie(response, outcome.refreshed_token)
    return response


def _sets_cookie(response: Response, name: str) -> bool:
    # A handler that already wrote (or cleared) the cookie, e.g. logout, wins.
    return any(value.startswith(f"{name}=") for value in response.headers.getlist("set-cookie"))
