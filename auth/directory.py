"""
auth/directory.py -- Member Directory: the identity collaborator of the gateway.

MemberDirectory wraps MemberStore with the four operations the gateway needs:
  find_by_api_key / find_by_internal_key   -- identity resolution
  find_or_create_by_external_login         -- external-login coordinator
  issue_credential                         -- mint (access token, API key)

The store stays a plain repository; anything that combines persistence with
credential minting lives here.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from auth.models import ROLE_USER, ExternalProfile, Member
from auth.store import MemberStore
from auth.tokens import create_access_token, generate_api_key

logger = logging.getLogger("gatekeeper.auth.directory")


def external_username(provider: str, subject: str) -> str:
    """Login name assigned to a member created from an external login."""
    return f"{provider.upper()}__{subject}"


class MemberDirectory:
    def __init__(self, store: MemberStore) -> None:
        self.store = store

    def find_by_api_key(self, api_key: str) -> Member | None:
        return self.store.get_by_api_key(api_key)

    def find_by_internal_key(self, member_id: int) -> Member | None:
        return self.store.get_by_id(member_id)

    def find_or_create_by_external_login(self, profile: ExternalProfile) -> Member:
        """Resolve a provider identity to a local member, creating it on first sight.

        Returning members get their nickname refreshed from the provider
        profile. A first login races safely: if another request linked the
        same (provider, subject) in between, the IntegrityError is swallowed
        and the winner's record is returned.
        """
        member = self.store.get_by_external_login(profile.provider, profile.subject)
        if member is not None:
            if profile.nickname and profile.nickname != member.nickname:
                self.store.update_nickname(member.id, profile.nickname)
                member.nickname = profile.nickname
            return member

        new_member = Member(
            username=external_username(profile.provider, profile.subject),
            nickname=profile.nickname or profile.subject,
            api_key=generate_api_key(),
            roles=frozenset({ROLE_USER}),
        )
        try:
            member_id = self.store.create_external_member(new_member, profile.provider, profile.subject)
        except IntegrityError:
            existing = self.store.get_by_external_login(profile.provider, profile.subject)
            if existing is None:
                raise
            return existing
        logger.info("Created member %d from %s login", member_id, profile.provider)
        created = self.store.get_by_id(member_id)
        if created is None:
            raise LookupError(f"member {member_id} vanished after insert")
        return created

    def issue_credential(self, member: Member, now: datetime | None = None) -> tuple[str, str]:
        """Return (access credential, API key) for a member."""
        token = create_access_token(member.id, now=now, username=member.username)
        return token, member.api_key

    def rotate_api_key(self, member: Member) -> str:
        new_key = generate_api_key()
        self.store.rotate_api_key(member.id, new_key)
        member.api_key = new_key
        return new_key
