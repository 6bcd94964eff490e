"""
auth/errors.py -- Exception hierarchy for credential and access failures.

The three credential defects (malformed, expired, bad signature) are distinct
so the codec can be tested precisely. The resolver collapses all of them into
Unauthenticated before anything reaches a caller -- clients never learn which
defect occurred.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error raised by the auth package."""


class CredentialError(AuthError):
    """An access credential could not be accepted."""


class MalformedCredential(CredentialError):
    """The credential cannot be parsed."""


class ExpiredCredential(CredentialError):
    """The credential's expiry is at or before the verification time."""


class BadSignature(CredentialError):
    """The credential's signature does not match the process secret."""


class Unauthenticated(AuthError):
    """No usable identity for a request that requires one."""


class Forbidden(AuthError):
    """An identity is present but lacks the required role."""


class ExternalLoginFailed(AuthError):
    """The third-party provider denied, aborted, or returned unusable data."""


class LoginStateError(AuthError):
    """An external-login flow was driven through an illegal transition."""
