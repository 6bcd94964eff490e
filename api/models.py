"""
API request and response models for Gatekeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Member

# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class ResultEnvelope(BaseModel):
    """Uniform {code, message, data} body for success and error responses."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    data: Any = None


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class JoinRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=255)
    nickname: str = Field(min_length=1, max_length=100)


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MemberDto(BaseModel):
    """Public view of a member. The API key is never part of it."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    nickname: str
    roles: list[str]
    external_providers: list[str]
    created_at: str

    @classmethod
    def from_member(cls, member: Member) -> "MemberDto":
        return cls(
            id=member.id,
            username=member.username,
            nickname=member.nickname,
            roles=sorted(member.roles),
            external_providers=[link.provider for link in member.external_logins],
            created_at=member.created_at or "",
        )


class LoginResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: MemberDto
    api_key: str = Field(serialization_alias="apiKey")
    access_token: str = Field(serialization_alias="accessToken")


class ApiKeyResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    api_key: str = Field(serialization_alias="apiKey")


class OAuthProviderInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: Optional[dict[str, str]] = None
