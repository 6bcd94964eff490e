"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Gatekeeper happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode generates a SECRET_KEY with a warning, production mode
      refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and
    the signed login-redirect cookie both rely on key entropy.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a
    hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatekeeper.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = "sqlite:///gatekeeper.db"

    # ------------------------------------------------------------------
    # Access credentials
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 3600
    clock_skew_seconds: int = 0
    # Re-issue the accessToken cookie when a request authenticated via API key.
    refresh_access_cookie: bool = True

    # ------------------------------------------------------------------
    # Cookies
    # ------------------------------------------------------------------

    cookie_httponly: bool = True
    cookie_secure: bool = False
    cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    cookie_domain: str | None = None
    # apiKey cookie lifetime; the key itself never expires.
    api_key_cookie_max_age: int = 60 * 60 * 24 * 365

    # ------------------------------------------------------------------
    # Front-end / CORS
    # ------------------------------------------------------------------

    site_front_url: str = "http://localhost:3000"
    cors_allowed_origins: list[str] = ["https://cdpn.io"]
    api_prefix: str = "/api/"
    allowed_hosts: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Access policy
    # ------------------------------------------------------------------

    # Outcome when no policy rule matches a request.
    default_policy: Literal["permit", "deny"] = "permit"

    # ------------------------------------------------------------------
    # External login
    # ------------------------------------------------------------------

    login_redirect_max_age: int = 600

    github_client_id: str = ""
    github_client_secret: str = ""
    google_client_id: str = ""
    google_client_secret: str = ""
    kakao_client_id: str = ""
    kakao_client_secret: str = ""

    # Generic OIDC (Okta, Azure AD, Keycloak, Authentik, etc.)
    oidc_client_id: str = ""
    oidc_client_secret: str = ""
    oidc_discovery_url: str = ""
    oidc_display_name: str = "SSO"

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    # Any limits storage URI, e.g. "redis://localhost:6379" when running several workers.
    rate_limit_storage_uri: str = "memory://"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Credentials will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Credentials will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @property
    def trusted_origins(self) -> list[str]:
        """CORS allow-list plus the front-end origin, without duplicates."""
        origins = [o.rstrip("/") for o in self.cors_allowed_origins]
        front = self.site_front_url.rstrip("/")
        if front not in origins:
            origins.append(front)
        return origins


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
