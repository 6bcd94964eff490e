"""
auth/resolver.py -- Identity Resolver.

Turns a raw bearer credential and/or a static API key into a verified Member.

Resolution order:
  1. Bearer access credential -- verified by auth.tokens, then the bound
     member id is looked up in the directory.
  2. API key -- looked up directly. Tried when no bearer credential was
     presented, or when the bearer credential failed (e.g. expired). In the
     second case the caller is expected to hand the client a fresh access
     credential.

Every failure -- credential defect, directory miss, directory error --
surfaces as Unauthenticated. The specific cause is logged at debug level only.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from auth.directory import MemberDirectory
from auth.errors import CredentialError, Unauthenticated
from auth.models import Member
from auth.tokens import verify_access_token

logger = logging.getLogger("gatekeeper.auth.resolver")

VIA_BEARER = "bearer"
VIA_API_KEY = "api_key"


@dataclass(frozen=True)
class Resolution:
    member: Member
    via: str  # VIA_BEARER or VIA_API_KEY


def _from_bearer(directory: MemberDirectory, token: str, now: datetime | None) -> Member | None:
    try:
        member_id = verify_access_token(token, now=now)
    except CredentialError as exc:
        logger.debug("Bearer credential rejected: %s", type(exc).__name__)
        return None
    return directory.find_by_internal_key(member_id)


def _from_api_key(directory: MemberDirectory, api_key: str) -> Member | None:
    member = directory.find_by_api_key(api_key)
    if member is None or not hmac.compare_digest(member.api_key.encode(), api_key.encode()):
        return None
    return member


def resolve(
    directory: MemberDirectory,
    bearer: str | None = None,
    api_key: str | None = None,
    now: datetime | None = None,
) -> Resolution:
    """Resolve the presented credentials to a Member.

    Raises:
        Unauthenticated: no presented credential yields a known member.
    """
    try:
        if bearer:
            member = _from_bearer(directory, bearer, now)
            if member is not None:
                return Resolution(member=member, via=VIA_BEARER)
        if api_key:
            member = _from_api_key(directory, api_key)
            if member is not None:
                return Resolution(member=member, via=VIA_API_KEY)
    except SQLAlchemyError:
        logger.exception("Member directory lookup failed")
        raise Unauthenticated("directory unavailable") from None
    raise Unauthenticated("no usable credential")
