"""
api/limiter.py -- Shared slowapi rate limiter for the member endpoints.

api/main.py mounts it as middleware; api/routes/v1/members.py applies
per-route limits with @limiter.limit(). Counters are keyed by client IP and
kept in RATE_LIMIT_STORAGE_URI (in-process memory unless configured).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri=get_settings().rate_limit_storage_uri)
