"""
auth/login.py -- External-login coordinator state machine.

A login flow moves through three states:

  PENDING        begin_login() captured the post-login redirect target.
  AUTHENTICATED  authenticate() resolved the provider identity to a member.
  REDIRECTED     finish() issued the credentials; the HTTP layer sets the
                 cookies and redirects to flow.redirect_target.

This module holds no HTTP objects. api/routes/v1/oauth.py drives it and owns
the provider round trip and cookie writes, which only happen after finish()
succeeds -- an aborted flow leaves nothing behind.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

from auth.directory import MemberDirectory
from auth.errors import LoginStateError
from auth.models import ExternalProfile, Member


class LoginState(str, Enum):
    PENDING = "pending"
    AUTHENTICATED = "authenticated"
    REDIRECTED = "redirected"


@dataclass
class LoginFlow:
    redirect_target: str
    state: LoginState = LoginState.PENDING
    member: Member | None = None
    access_token: str | None = None
    api_key: str | None = None


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}".lower()


def safe_redirect_target(candidate: str | None, default_url: str, trusted_origins: list[str]) -> str:
    """Return candidate if it is usable as a post-login target, else default_url.

    Blank values fall back to the default. Relative paths are accepted
    (protocol-relative "//host" is not). Absolute URLs must point at one of
    the trusted origins, which blocks open redirects off-site.
    """
    if candidate is None or not candidate.strip():
        return default_url
    candidate = candidate.strip()
    if candidate.startswith("/"):
        return candidate if not candidate.startswith("//") else default_url
    parts = urlsplit(candidate)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return default_url
    trusted = {_origin(o) for o in trusted_origins} | {_origin(default_url)}
    return candidate if _origin(candidate) in trusted else default_url


def begin_login(
    redirect_param: str | None,
    referrer: str | None,
    default_url: str,
    trusted_origins: list[str],
) -> LoginFlow:
    """Capture the post-login redirect target and enter PENDING.

    The explicit parameter wins over the Referer header; both blank means the
    configured default front-end URL.
    """
    candidate = redirect_param if redirect_param and redirect_param.strip() else referrer
    return LoginFlow(redirect_target=safe_redirect_target(candidate, default_url, trusted_origins))


def authenticate(flow: LoginFlow, directory: MemberDirectory, profile: ExternalProfile) -> LoginFlow:
    """PENDING -> AUTHENTICATED: resolve or create the local member."""
    if flow.state is not LoginState.PENDING:
        raise LoginStateError(f"cannot authenticate a flow in state {flow.state.value}")
    flow.member = directory.find_or_create_by_external_login(profile)
    flow.state = LoginState.AUTHENTICATED
    return flow


def finish(flow: LoginFlow, directory: MemberDirectory) -> LoginFlow:
    """AUTHENTICATED -> REDIRECTED: issue the access credential and API key."""
    if flow.state is not LoginState.AUTHENTICATED or flow.member is None:
        raise LoginStateError(f"cannot finish a flow in state {flow.state.value}")
    flow.access_token, flow.api_key = directory.issue_credential(flow.member)
    flow.state = LoginState.REDIRECTED
    return flow
