"""
auth/policy.py -- Access Policy Table and its decision function.

A PolicyTable is an ordered, immutable list of PolicyRule entries built once
at startup. decide() walks the rules top to bottom; the first rule whose
method and path pattern match determines the requirement. When nothing
matches, the table's explicit default applies (permit or deny).

Path pattern syntax (segments separated by "/"):
  literal   -- must equal the request segment exactly
  *         -- exactly one segment, any value
  {name}    -- exactly one segment made only of ASCII digits (numeric id)
  **        -- only as the last segment: zero or more remaining segments

Decisions are a pure function of (rules, default, method, path, member).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from auth.models import ROLE_ADMIN, Member


class Decision(str, Enum):
    ALLOW = "allow"
    DENY_UNAUTHENTICATED = "deny_unauthenticated"
    DENY_FORBIDDEN = "deny_forbidden"


@dataclass(frozen=True)
class Requirement:
    kind: str  # "public", "authenticated", "role"
    role: str | None = None

    @classmethod
    def public(cls) -> Requirement:
        return cls("public")

    @classmethod
    def authenticated(cls) -> Requirement:
        return cls("authenticated")

    @classmethod
    def has_role(cls, role: str) -> Requirement:
        return cls("role", role)

    def evaluate(self, member: Member | None) -> Decision:
        if self.kind == "public":
            return Decision.ALLOW
        if member is None:
            return Decision.DENY_UNAUTHENTICATED
        if self.kind == "role" and not member.has_role(self.role):
            return Decision.DENY_FORBIDDEN
        return Decision.ALLOW


def _split(path: str) -> list[str]:
    return [s for s in path.split("/") if s]


def _is_id_wildcard(segment: str) -> bool:
    return len(segment) > 2 and segment.startswith("{") and segment.endswith("}")


@dataclass(frozen=True)
class PathPattern:
    raw: str
    segments: tuple[str, ...]

    @classmethod
    def parse(cls, raw: str) -> PathPattern:
        segments = tuple(_split(raw))
        if "**" in segments[:-1]:
            raise ValueError(f"'**' is only allowed as the last segment: {raw!r}")
        if sum(1 for s in segments if _is_id_wildcard(s)) > 1:
            raise ValueError(f"at most one numeric id wildcard per pattern: {raw!r}")
        return cls(raw=raw, segments=segments)

    def matches(self, path: str) -> bool:
        parts = _split(path)
        segments = self.segments
        if segments and segments[-1] == "**":
            segments = segments[:-1]
            if len(parts) < len(segments):
                return False
            parts = parts[: len(segments)]
        elif len(parts) != len(segments):
            return False
        for pattern, part in zip(segments, parts):
            if pattern == "*":
                continue
            if _is_id_wildcard(pattern):
                if not (part.isascii() and part.isdigit()):
                    return False
                continue
            if pattern != part:
                return False
        return True


@dataclass(frozen=True)
class PolicyRule:
    method: str | None  # None or "*" = any method
    pattern: PathPattern
    requirement: Requirement

    @classmethod
    def of(cls, method: str | None, pattern: str, requirement: Requirement) -> PolicyRule:
        return cls(method=method.upper() if method else None, pattern=PathPattern.parse(pattern), requirement=requirement)

    def matches(self, method: str, path: str) -> bool:
        if self.method not in (None, "*") and self.method != method.upper():
            return False
        return self.pattern.matches(path)


class PolicyTable:
    """Ordered rule list with an explicit no-match default."""

    def __init__(self, rules: list[PolicyRule], default_permit: bool = True) -> None:
        self._rules: tuple[PolicyRule, ...] = tuple(rules)
        self.default_permit = default_permit

    @property
    def rules(self) -> tuple[PolicyRule, ...]:
        return self._rules

    def requirement_for(self, method: str, path: str) -> Requirement | None:
        for rule in self._rules:
            if rule.matches(method, path):
                return rule.requirement
        return None

    def decide(self, method: str, path: str, member: Member | None) -> Decision:
        requirement = self.requirement_for(method, path)
        if requirement is None:
            if self.default_permit:
                return Decision.ALLOW
            return Decision.DENY_UNAUTHENTICATED if member is None else Decision.DENY_FORBIDDEN
        return requirement.evaluate(member)


PUBLIC = Requirement.public()
AUTHENTICATED = Requirement.authenticated()
ADMIN = Requirement.has_role(ROLE_ADMIN)

# Order matters: first match wins.
DEFAULT_RULES: list[PolicyRule] = [
    PolicyRule.of(None, "/h2-console/**", PUBLIC),
    PolicyRule.of("GET", "/api/*/posts/{id}", PUBLIC),
    PolicyRule.of("GET", "/api/*/posts", PUBLIC),
    PolicyRule.of("GET", "/api/*/posts/{postId}/comments", PUBLIC),
    PolicyRule.of("GET", "/api/*/posts/{postId}/genFiles", PUBLIC),
    PolicyRule.of(None, "/api/*/members/login", PUBLIC),
    PolicyRule.of(None, "/api/*/members/join", PUBLIC),
    PolicyRule.of(None, "/api/*/members/logout", PUBLIC),
    PolicyRule.of("GET", "/api/*/auth/providers", PUBLIC),
    PolicyRule.of("GET", "/api/*/health", PUBLIC),
    PolicyRule.of(None, "/api/v1/posts/statistics", ADMIN),
    PolicyRule.of("DELETE", "/api/*/members/{id}", ADMIN),
    PolicyRule.of(None, "/api/*/**", AUTHENTICATED),
]
