"""Configuration management for wabridge."""

from __future__ import annotations

import logging
import secrets
import warnings
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings

if TYPE_CHECKING:
    from wabridge.security import SecretStore

logger = logging.getLogger(__name__)

# Option names used for secure (encrypted at rest) connection settings
N8N_BASE_URL_OPTION = "n8n_base_url"
N8N_AUTH_TOKEN_OPTION = "n8n_auth_token"
SHARED_SECRET_OPTION = "n8n_shared_secret"


def _generate_dev_secret() -> str:
    """Random 64-character hex secret for development and test runs."""
    return secrets.token_hex(32)


class DispatcherConfig(BaseModel):
    """Connection settings handed to the webhook dispatcher.

    Attributes:
        base_url: n8n webhook base URL. Empty means "not configured".
        auth_token: Optional bearer token sent as Authorization header.
        shared_secret: Shared secret sent as X-WWEA-SECRET and used to sign bodies.
        timeout_seconds: Outbound request timeout.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = Field(default="", description="n8n webhook base URL")
    auth_token: str = Field(default="", description="Optional bearer token")
    shared_secret: str = Field(default="", description="Shared secret for n8n")
    timeout_seconds: float = Field(default=30.0, gt=0, le=300)

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url.strip())


class Settings(BaseSettings):
    """wabridge configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the WABRIDGE_ prefix. For example:
        WABRIDGE_N8N_BASE_URL=https://n8n.example/webhook
        WABRIDGE_STORAGE_BACKEND=sqlite

    Security Notes:
        - In production, secret_salt and auth_secret_key must be set
        - In development/test, random values are generated at startup
    """

    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # n8n connection
    n8n_base_url: str = Field(
        default="",
        description="Base URL of the n8n webhooks (event type is appended)",
    )
    n8n_auth_token: str = Field(
        default="",
        description="Optional bearer token for n8n",
    )
    shared_secret: str = Field(
        default="",
        description="Shared secret authenticating calls between n8n and wabridge",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout for outbound n8n requests",
    )

    # Storage
    storage_backend: Literal["memory", "sqlite"] = Field(
        default="memory",
        description="Key-value store backend",
    )
    sqlite_path: str = Field(
        default="wabridge.sqlite3",
        description="Database file for the sqlite backend",
    )

    # Cache
    cache_prefix: str = Field(
        default="wabridge_",
        description="Prefix for every cache key",
    )
    cache_default_ttl: int = Field(
        default=3600,
        ge=1,
        description="Default cache TTL in seconds",
    )
    cache_cleanup_interval_seconds: int = Field(
        default=86400,
        ge=60,
        description="Interval of the scheduled expired-entry sweep (daily by default)",
    )
    status_cache_ttl: int = Field(
        default=60,
        ge=0,
        description="Seconds a session status response is served from cache (0 disables)",
    )

    # Secrets
    master_key: str | None = Field(
        default=None,
        description="Master encryption secret. Generated and persisted if not set.",
    )
    secret_salt: str | None = Field(
        default=None,
        description="Host salt mixed into per-context key derivation",
    )
    token_ttl_seconds: int = Field(
        default=3600,
        ge=60,
        description="Lifetime of anti-forgery tokens",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "text"] = Field(default="json", description="Log output format")

    # Vendor authentication (stand-in for the host session)
    auth_secret_key: str | None = Field(
        default=None,
        description="Secret for vendor bearer tokens. REQUIRED in production.",
    )
    auth_token_expire_minutes: int = Field(default=60, ge=1)
    vendor_ids: list[int] = Field(
        default_factory=list,
        description="User IDs holding the vendor role (stand-in for the marketplace directory)",
    )

    # CORS
    cors_enabled: bool = Field(default=False, description="Enable CORS middleware")
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    cors_allow_methods: list[str] = Field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    cors_allow_headers: list[str] = Field(default_factory=lambda: ["*"])

    _runtime_salt: str | None = None
    _runtime_auth_secret: str | None = None

    model_config = {
        "env_prefix": "WABRIDGE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_security_settings(self) -> Settings:
        """Require explicit secrets in production, generate them otherwise."""
        if self.env == "production":
            missing = [
                name
                for name in ("secret_salt", "auth_secret_key")
                if getattr(self, name) is None
            ]
            if missing:
                raise ValueError(
                    f"{', '.join('WABRIDGE_' + m.upper() for m in missing)} must be set in "
                    "production."
                )
            if not self.shared_secret:
                warnings.warn(
                    "WABRIDGE_SHARED_SECRET is empty: inbound n8n webhooks will be rejected.",
                    UserWarning,
                    stacklevel=2,
                )
                logger.warning("Shared secret not configured in production")
        else:
            if self.secret_salt is None:
                object.__setattr__(self, "_runtime_salt", _generate_dev_secret())
            if self.auth_secret_key is None:
                object.__setattr__(self, "_runtime_auth_secret", _generate_dev_secret())
                logger.debug("Generated random auth secret for development")
        return self

    @property
    def effective_secret_salt(self) -> str:
        if self.secret_salt is not None:
            return self.secret_salt
        if self._runtime_salt is not None:
            return self._runtime_salt
        raise ValueError("No secret salt available")

    @property
    def effective_auth_secret_key(self) -> str:
        if self.auth_secret_key is not None:
            return self.auth_secret_key
        if self._runtime_auth_secret is not None:
            return self._runtime_auth_secret
        raise ValueError("No auth secret key available")

    def dispatcher_config(self) -> DispatcherConfig:
        """Build a DispatcherConfig from environment values only."""
        return DispatcherConfig(
            base_url=self.n8n_base_url,
            auth_token=self.n8n_auth_token,
            shared_secret=self.shared_secret,
            timeout_seconds=self.request_timeout_seconds,
        )


def resolve_dispatcher_config(
    settings: Settings, secret_store: SecretStore | None = None
) -> DispatcherConfig:
    """Resolve the dispatcher configuration.

    Secure options saved through the SecretStore take precedence over
    environment values.

    Args:
        settings: Environment settings.
        secret_store: Optional SecretStore holding persisted options.

    Returns:
        DispatcherConfig ready for WebhookDispatcher.
    """
    base = settings.dispatcher_config()
    if secret_store is None:
        return base

    def _option(name: str, fallback: str) -> str:
        return secret_store.get_secure_option(name, "") or fallback

    return DispatcherConfig(
        base_url=_option(N8N_BASE_URL_OPTION, base.base_url),
        auth_token=_option(N8N_AUTH_TOKEN_OPTION, base.auth_token),
        shared_secret=_option(SHARED_SECRET_OPTION, base.shared_secret),
        timeout_seconds=base.timeout_seconds,
    )


settings = Settings()
