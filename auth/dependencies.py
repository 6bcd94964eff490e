"""
auth/dependencies.py -- FastAPI Depends() helpers that read the auth context.

The gateway middleware (api/gateway.py) resolves the caller once per request
and attaches an AuthContext to request.state.auth. These helpers only read
that context; they never decode credentials themselves.

optional_member() is the soft variant (returns None for anonymous callers).
current_member() raises HTTP 401 if the request is anonymous.
require_admin() wraps current_member() and raises HTTP 403 if not admin.

The policy table already blocks these cases before a handler runs; the
dependencies keep handlers safe when mounted under a permissive rule.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import ANONYMOUS, AuthContext, Member


def get_auth_context(request: Request) -> AuthContext:
    return getattr(request.state, "auth", ANONYMOUS)


def optional_member(request: Request) -> Member | None:
    return get_auth_context(request).member


def current_member(request: Request) -> Member:
    """Require authentication. Raises HTTP 401 if the request is anonymous."""
    member = optional_member(request)
    if member is None:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials.")
    return member


def require_admin(request: Request) -> Member:
    """Require the ADMIN role. Raises HTTP 401 if anonymous, HTTP 403 if not admin."""
    member = current_member(request)
    if not member.is_admin:
        raise HTTPException(status_code=403, detail="You do not have permission to access this resource.")
    return member
