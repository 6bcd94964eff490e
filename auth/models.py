"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, minimal logic). Stores and the
resolver do the work; these classes only own the domain shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"


@dataclass(frozen=True)
class ExternalLogin:
    """A (provider, subject) pair linking a member to a third-party account.

    subject is the provider's stable user ID (GitHub numeric id, OIDC `sub`).
    The pair is unique across all members.
    """

    provider: str
    subject: str


@dataclass
class Member:
    """Represents an identity known to the Member Directory.

    api_key is the long-lived static secret. It is unique across members and
    rotated through MemberStore.rotate_api_key(). hashed_password is None for
    members that only ever signed in through an external provider.
    """

    username: str
    nickname: str
    api_key: str
    roles: frozenset[str] = frozenset({ROLE_USER})
    id: int | None = None
    hashed_password: str | None = None  # None = external-login-only member
    external_logins: list[ExternalLogin] = field(default_factory=list)
    created_at: str | None = None

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return ROLE_ADMIN in self.roles


@dataclass(frozen=True)
class ExternalProfile:
    """Normalized profile returned by a provider after a successful handshake."""

    provider: str
    subject: str
    nickname: str


@dataclass(frozen=True)
class AuthContext:
    """Per-request authentication result, attached to request.state.auth.

    member is None for anonymous requests. refreshed_token holds a newly
    issued access credential when the request authenticated through its API
    key; the gateway writes it back as the accessToken cookie.
    """

    member: Member | None = None
    via: str | None = None
    refreshed_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.member is not None


ANONYMOUS = AuthContext()
