"""Request authentication for the wabridge API.

Provides:
- Shared-secret check for inbound n8n webhooks (X-WWEA-SECRET)
- Bearer token authentication identifying the vendor
- Anti-forgery token check (X-WP-Nonce) for vendor actions
- FastAPI dependencies for route protection
"""

from __future__ import annotations

import hashlib
import hmac
import time
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field

from wabridge.container import Container
from wabridge.exceptions import AuthenticationError, AuthorizationError
from wabridge.logging import get_logger

from .deps import get_container

logger = get_logger(__name__)

NONCE_ACTION = "wp_rest"


def nonce_action(vendor_id: int) -> str:
    """Token action binding a nonce to the vendor it was issued to."""
    return f"{NONCE_ACTION}_{vendor_id}"


# Security scheme for OpenAPI docs
security = HTTPBearer(auto_error=False)


class AuthenticatedVendor(BaseModel):
    """The vendor a request acts for."""

    model_config = ConfigDict(extra="forbid")

    vendor_id: int = Field(ge=1, description="Marketplace user ID of the vendor")


class TokenValidator:
    """Validates Bearer tokens using HMAC-SHA256.

    Token format: vendor_id:expires_at:signature
    where signature = HMAC(secret, vendor_id:expires_at)
    """

    def __init__(self, secret_key: str, expire_minutes: int = 60) -> None:
        self.secret_key = secret_key.encode()
        self.expire_minutes = expire_minutes

    def _sign(self, payload: str) -> str:
        return hmac.new(self.secret_key, payload.encode(), hashlib.sha256).hexdigest()

    def create_token(self, vendor_id: int, expire_minutes: int | None = None) -> str:
        """Create a signed token for a vendor.

        Args:
            vendor_id: Vendor the token identifies.
            expire_minutes: Lifetime, the validator's default when None.
        """
        if expire_minutes is None:
            expire_minutes = self.expire_minutes
        expires_at = int(time.time()) + (expire_minutes * 60)
        payload = f"{vendor_id}:{expires_at}"
        return f"{payload}:{self._sign(payload)}"

    def validate_token(self, token: str) -> AuthenticatedVendor:
        """Validate a token and return the vendor it was issued for.

        Raises:
            AuthenticationError: If token is malformed, forged or expired.
        """
        try:
            parts = token.split(":")
            if len(parts) != 3:
                raise AuthenticationError("Invalid token format")

            vendor_id_str, expires_at_str, signature = parts
            payload = f"{vendor_id_str}:{expires_at_str}"

            if not hmac.compare_digest(signature, self._sign(payload)):
                raise AuthenticationError("Invalid token signature")

            if time.time() > int(expires_at_str):
                raise AuthenticationError("Token has expired")

            return AuthenticatedVendor(vendor_id=int(vendor_id_str))

        except ValueError as e:
            raise AuthenticationError(f"Invalid token: {e}") from e


@lru_cache(maxsize=1)
def get_token_validator(secret_key: str, expire_minutes: int = 60) -> TokenValidator:
    """Token validator for the given key and lifetime, cached until either changes."""
    return TokenValidator(secret_key, expire_minutes)


ContainerDep = Annotated[Container, Depends(get_container)]


async def verify_shared_secret(
    container: ContainerDep,
    x_wwea_secret: Annotated[str | None, Header(alias="X-WWEA-SECRET")] = None,
) -> None:
    """Reject inbound n8n calls without the configured shared secret."""
    expected = container.dispatcher.config.shared_secret
    if not expected:
        raise AuthenticationError("Shared secret is not configured")
    if not x_wwea_secret or not hmac.compare_digest(x_wwea_secret, expected):
        raise AuthenticationError("Invalid or missing shared secret")


async def get_current_vendor(
    container: ContainerDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> AuthenticatedVendor:
    """Resolve the bearer token to a vendor.

    Raises:
        AuthenticationError: Missing or invalid token.
        AuthorizationError: The user does not hold the vendor role.
    """
    if credentials is None:
        raise AuthenticationError("Missing authentication credentials")

    settings = container.settings
    validator = get_token_validator(
        settings.effective_auth_secret_key, settings.auth_token_expire_minutes
    )
    vendor = validator.validate_token(credentials.credentials)

    if not container.directory.is_vendor(vendor.vendor_id):
        raise AuthorizationError(f"User {vendor.vendor_id} is not a vendor")

    logger.debug("Vendor authenticated", vendor_id=vendor.vendor_id)
    return vendor


CurrentVendor = Annotated[AuthenticatedVendor, Depends(get_current_vendor)]


async def verify_nonce(
    vendor: CurrentVendor,
    container: ContainerDep,
    x_wp_nonce: Annotated[str | None, Header(alias="X-WP-Nonce")] = None,
) -> AuthenticatedVendor:
    """Require a valid anti-forgery token on top of vendor authentication."""
    if not x_wp_nonce or not container.secrets.validate_token(
        x_wp_nonce, nonce_action(vendor.vendor_id)
    ):
        raise AuthenticationError("Invalid or missing nonce")
    return vendor


VerifiedVendor = Annotated[AuthenticatedVendor, Depends(verify_nonce)]
