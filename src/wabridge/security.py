"""Secrets at rest and short-lived anti-forgery tokens.

Each logical secret ("option_n8n_auth_token", ...) gets its own 256-bit
key derived from a master secret and a host salt. Values are encrypted
with AES-256-CBC under a fresh IV and authenticated with HMAC-SHA256
(encrypt-then-MAC). Encrypted values carry an ``enc:`` prefix so values
stored before encryption was enabled still read back unchanged.

Example:
    ```python
    secrets = SecretStore(store, cache, salt=settings.effective_secret_salt)

    secrets.update_secure_option("n8n_auth_token", "tok_123")
    secrets.get_secure_option("n8n_auth_token")  # "tok_123"

    token = secrets.generate_token("wp_rest")
    secrets.validate_token(token.token, "wp_rest")  # True
    ```
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os
import re
import secrets
import time

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives import hmac as crypto_hmac
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from pydantic import BaseModel, ConfigDict

from wabridge.cache import CacheStore, sanitize_key
from wabridge.logging import get_logger
from wabridge.storage import Clock, KeyValueStore

logger = get_logger(__name__)

ENCRYPTED_PREFIX = "enc:"
MASTER_KEY_STORE_KEY = "encryption_master_key"

_IV_SIZE = 16
_TAG_SIZE = 32
_BLOCK_BITS = 128

_PHONE_DISALLOWED = re.compile(r"[^\d+]")
_TOKEN_FORMAT = re.compile(r"[0-9a-f]{32}")


class TokenData(BaseModel):
    """An issued anti-forgery token."""

    model_config = ConfigDict(extra="forbid")

    token: str
    action: str
    expiry: int


def sanitize_phone_number(value: str) -> str:
    """Keep only digits and '+'."""
    return _PHONE_DISALLOWED.sub("", value or "")


class SecretStore:
    """Per-context encryption plus token issuing.

    Cryptographic failures never raise: encrypt/decrypt return None and
    log at error.

    Args:
        store: Persistence for the master secret, context keys and options.
        cache: Cache that holds issued tokens.
        master_key: Explicit master secret. Generated and persisted when None.
        salt: Host salt mixed into key derivation and hashing.
        clock: Time source for token expiry.
    """

    def __init__(
        self,
        store: KeyValueStore,
        cache: CacheStore,
        master_key: str | None = None,
        salt: str = "",
        clock: Clock = time.time,
    ) -> None:
        self._store = store
        self._cache = cache
        self._master_key = master_key
        self._salt = salt
        self._clock = clock

    # Key management

    def _get_master_key(self) -> str | None:
        if self._master_key:
            return self._master_key

        stored = self._store.get(MASTER_KEY_STORE_KEY)
        if stored:
            self._master_key = str(stored)
            return self._master_key

        generated = secrets.token_hex(32)
        if not self._store.set(MASTER_KEY_STORE_KEY, generated):
            logger.error("Could not persist generated master key")
            return None
        logger.info("Generated new master encryption key")
        self._master_key = generated
        return generated

    def _context_key(self, context: str) -> bytes | None:
        """Return the 32-byte key for context, deriving and persisting it once."""
        store_key = f"encryption_key_{sanitize_key(context)}"
        stored = self._store.get(store_key)
        if stored:
            try:
                return bytes.fromhex(stored)
            except (TypeError, ValueError):
                logger.error("Stored encryption key is corrupt", context=context)
                return None

        master = self._get_master_key()
        if master is None:
            return None

        key = hmac.new(
            master.encode("utf-8"), (context + self._salt).encode("utf-8"), hashlib.sha256
        ).digest()
        if not self._store.set(store_key, key.hex()):
            logger.error("Could not persist encryption key", context=context)
            return None
        return key

    @staticmethod
    def _mac_key(key: bytes) -> bytes:
        return hmac.new(key, b"wabridge-mac", hashlib.sha256).digest()

    @staticmethod
    def _tag(mac_key: bytes, data: bytes) -> crypto_hmac.HMAC:
        h = crypto_hmac.HMAC(mac_key, hashes.SHA256())
        h.update(data)
        return h

    # Encryption

    def encrypt(self, context: str, plaintext: str) -> str | None:
        """Encrypt plaintext for context.

        Returns:
            "enc:"-prefixed base64 of iv || ciphertext || tag, "" for empty
            input, None on failure.
        """
        if not plaintext:
            return ""

        key = self._context_key(context)
        if key is None:
            logger.error("Encryption failed: no key", context=context)
            return None

        try:
            iv = os.urandom(_IV_SIZE)
            padder = padding.PKCS7(_BLOCK_BITS).padder()
            padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
            encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
            tag = self._tag(self._mac_key(key), iv + ciphertext).finalize()
        except ValueError as e:
            logger.error("Encryption failed", context=context, error=str(e))
            return None

        return ENCRYPTED_PREFIX + base64.b64encode(iv + ciphertext + tag).decode("ascii")

    def decrypt(self, context: str, value: str) -> str | None:
        """Decrypt a value produced by encrypt().

        Values without the "enc:" prefix are returned unchanged.

        Returns:
            Plaintext, or None when the value is corrupt or was encrypted
            under another key.
        """
        if not value:
            return ""
        if not value.startswith(ENCRYPTED_PREFIX):
            return value

        key = self._context_key(context)
        if key is None:
            logger.error("Decryption failed: no key", context=context)
            return None

        try:
            blob = base64.b64decode(value[len(ENCRYPTED_PREFIX) :], validate=True)
            if len(blob) < _IV_SIZE + _BLOCK_BITS // 8 + _TAG_SIZE:
                raise ValueError("ciphertext too short")
            iv, ciphertext, tag = blob[:_IV_SIZE], blob[_IV_SIZE:-_TAG_SIZE], blob[-_TAG_SIZE:]
            self._tag(self._mac_key(key), iv + ciphertext).verify(tag)

            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except InvalidSignature:
            logger.error("Decryption failed: authentication tag mismatch", context=context)
            return None
        except (binascii.Error, ValueError) as e:
            logger.error("Decryption failed", context=context, error=str(e))
            return None

    # Secure options

    @staticmethod
    def _option_context(name: str) -> str:
        return "option_" + name

    def update_secure_option(self, name: str, value: str) -> bool:
        encrypted = self.encrypt(self._option_context(name), value)
        if encrypted is None:
            return False
        return self._store.set(self._option_context(name), encrypted)

    def get_secure_option(self, name: str, default: str = "") -> str:
        raw = self._store.get(self._option_context(name))
        if raw is None:
            return default
        decrypted = self.decrypt(self._option_context(name), str(raw))
        return default if decrypted is None else decrypted

    # Hashing

    def generate_hash(self, value: str, salt: str = "") -> str:
        return hashlib.sha256((value + salt + self._salt).encode("utf-8")).hexdigest()

    def verify_hash(self, value: str, digest: str, salt: str = "") -> bool:
        return hmac.compare_digest(self.generate_hash(value, salt), digest or "")

    # Tokens

    @staticmethod
    def _token_key(token: str) -> str:
        return f"token_{token}"

    def generate_token(self, action: str, ttl_seconds: int = 3600) -> TokenData:
        """Issue a random 128-bit token bound to action."""
        token = secrets.token_hex(16)
        data = TokenData(token=token, action=action, expiry=int(self._clock()) + ttl_seconds)
        if not self._cache.set(self._token_key(token), data.model_dump(), ttl_seconds):
            logger.warning("Token issued but not stored", action=action)
        return data

    def validate_token(self, token: str, action: str) -> bool:
        """Check that token exists, matches action and has not expired.

        A token that fails the action or expiry check is deleted. Strings
        that are not exactly as issued never reach the lookup.
        """
        if not token or not _TOKEN_FORMAT.fullmatch(token):
            return False

        raw = self._cache.get(self._token_key(token))
        if not raw:
            return False

        data = TokenData.model_validate(raw)
        if data.action != action or data.expiry < self._clock():
            self.invalidate_token(token)
            logger.info("Rejected token", action=action, expected=data.action)
            return False
        return True

    def invalidate_token(self, token: str) -> bool:
        return self._cache.delete(self._token_key(token))
