"""
auth/tokens.py -- Access credentials, password hashing, API keys, and cookies.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry the
       member id (sub), issue time (iat), and expiry (exp). Verification raises
       a specific CredentialError subclass; the resolver normalizes every one
       of them to Unauthenticated so callers never see which defect occurred.
       python-jose compares HMAC signatures with hmac.compare_digest, so the
       signature check is constant time.

       Expiry is checked here rather than by python-jose so verification can be
       driven by an explicit `now` (deterministic tests, clock-skew option).

  Passwords: bcrypt directly. _DUMMY_HASH enables timing equalization in
       authenticate_member() so response time does not reveal whether a
       username exists.

  API keys: secrets.token_hex(32) gives 256 bits of entropy. The raw key is
       kept in the directory because the login flow hands it back to the
       browser as the apiKey cookie on every sign-in.

  Login redirect: the post-login target is carried in a short-lived signed
       JWT cookie instead of server-side session state.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import BadSignature, ExpiredCredential, MalformedCredential
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import Member
    from auth.store import MemberStore

logger = logging.getLogger("gatekeeper.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"
_REDIRECT_PURPOSE = "login_redirect"

ACCESS_TOKEN_COOKIE = "accessToken"
API_KEY_COOKIE = "apiKey"
LOGIN_REDIRECT_COOKIE = "loginRedirect"


def _timestamp(now: datetime | None) -> int:
    return int((now or datetime.now(timezone.utc)).timestamp())


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash. Computed once at module load so the
# first login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("gatekeeper_timing_dummy")


def authenticate_member(store: MemberStore, username: str, password: str) -> Member | None:
    """Authenticate a local username/password login with timing equalization.

    Always runs bcrypt whether or not the member exists, so an attacker cannot
    enumerate usernames by measuring response time. Returns None on any failure.
    """
    member = store.get_by_username(username)
    if member is None or member.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, member.hashed_password):
        return None
    return member


# ---------------------------------------------------------------------------
# Access credential encode / decode
# ---------------------------------------------------------------------------


def create_access_token(
    member_id: int,
    now: datetime | None = None,
    expire_seconds: int = 0,
    username: str | None = None,
) -> str:
    """Encode a signed access credential bound to one member.

    Args:
        member_id:      Internal key of the member the credential is bound to.
        now:            Issue time. Defaults to the current UTC time.
        expire_seconds: Lifetime in seconds. If 0 (default), uses
                        Settings.access_token_expire_seconds.
        username:       Informational claim; never trusted on verification.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.access_token_expire_seconds
    issued_at = _timestamp(now)
    payload: dict = {
        "sub": str(member_id),
        "iat": issued_at,
        "exp": issued_at + duration,
    }
    if username:
        payload["username"] = username
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def verify_access_token(token: str, now: datetime | None = None, clock_skew: int | None = None) -> int:
    """Verify an access credential and return the member id it is bound to.

    The credential is rejected when its expiry is at or before `now`; a
    positive clock_skew (seconds) extends that boundary.

    Raises:
        MalformedCredential: the token or its claims cannot be parsed.
        BadSignature:        the signature does not match SECRET_KEY.
        ExpiredCredential:   the credential is past its expiry.
    """
    skew = _settings.clock_skew_seconds if clock_skew is None else clock_skew

    try:
        jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise MalformedCredential(str(exc)) from exc

    try:
        claims = jwt.decode(
            token,
            _settings.secret_key,
            algorithms=[_ALGORITHM],
            options={"verify_exp": False, "verify_nbf": False},
        )
    except JWTError as exc:
        raise BadSignature(str(exc)) from exc

    try:
        member_id = int(claims["sub"])
        expires_at = int(claims["exp"])
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedCredential("missing or invalid sub/exp claim") from exc

    if expires_at + skew <= _timestamp(now):
        raise ExpiredCredential(f"credential expired at {expires_at}")
    return member_id


# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------


def generate_api_key() -> str:
    """Generate a new API key in the format: gk_<64 hex chars>."""
    return f"gk_{secrets.token_hex(32)}"


# ---------------------------------------------------------------------------
# Signed login-redirect value
# ---------------------------------------------------------------------------


def create_redirect_token(target: str, now: datetime | None = None) -> str:
    """Sign the post-login redirect target for the loginRedirect cookie."""
    issued_at = _timestamp(now)
    payload = {
        "purpose": _REDIRECT_PURPOSE,
        "target": target,
        "exp": issued_at + _settings.login_redirect_max_age,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def read_redirect_token(token: str | None) -> str | None:
    """Return the redirect target carried by a loginRedirect cookie.

    Returns None for a missing, tampered, expired, or foreign token; the
    coordinator then falls back to the default front-end URL.
    """
    if not token:
        return None
    try:
        claims = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        logger.debug("Discarding unreadable login redirect cookie")
        return None
    if claims.get("purpose") != _REDIRECT_PURPOSE:
        return None
    target = claims.get("target")
    return target if isinstance(target, str) else None


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def _set_cookie(response, name: str, value: str, max_age: int) -> None:
    response.set_cookie(
        name,
        value=value,
        max_age=max_age,
        path="/",
        domain=_settings.cookie_domain,
        httponly=_settings.cookie_httponly,
        secure=_settings.cookie_secure,
        samesite=_settings.cookie_samesite,
    )


def set_access_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the access credential cookie; max_age matches the token lifetime."""
    duration = expire_seconds if expire_seconds > 0 else _settings.access_token_expire_seconds
    _set_cookie(response, ACCESS_TOKEN_COOKIE, token, duration)


def set_credential_cookies(response, access_token: str, api_key: str) -> None:
    """Write both the access credential and the API key cookies."""
    set_access_cookie(response, access_token)
    _set_cookie(response, API_KEY_COOKIE, api_key, _settings.api_key_cookie_max_age)


def clear_credential_cookies(response) -> None:
    for name in (ACCESS_TOKEN_COOKIE, API_KEY_COOKIE):
        response.delete_cookie(name, path="/", domain=_settings.cookie_domain)


def set_redirect_cookie(response, target: str) -> None:
    _set_cookie(response, LOGIN_REDIRECT_COOKIE, create_redirect_token(target), _settings.login_redirect_max_age)


def clear_redirect_cookie(response) -> None:
    response.delete_cookie(LOGIN_REDIRECT_COOKIE, path="/", domain=_settings.cookie_domain)
