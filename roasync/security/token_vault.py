"""ROASYNC — Token Vault.

Encrypts third-party API credentials at rest with AES-GCM.

Format: base64(nonce[12] || ciphertext || tag[16]).

Without a configured key the vault runs in degraded mode and stores plaintext.
Decryption of anything that does not decode/authenticate is treated as a
legacy plaintext token and returned unchanged.
"""

import base64
import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlmodel import Session

from roasync.config import settings
from roasync.core.logging import get_logger
from roasync.models.db_models import Integration

logger = get_logger("security.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16


def _load_key(key_hex: str) -> Optional[bytes]:
    """Decode a hex key; return None (degraded mode) when unusable."""
    if not key_hex:
        return None
    try:
        key = bytes.fromhex(key_hex.strip())
    except ValueError:
        logger.error("Encryption key is not valid hex, token encryption disabled")
        return None
    if len(key) not in (16, 24, 32):
        logger.error(
            f"Encryption key must be 16, 24 or 32 bytes (got {len(key)}), token encryption disabled"
        )
        return None
    return key


class TokenVault:
    """AES-GCM wrapper for provider access tokens."""

    def __init__(self, key_hex: str = ""):
        key = _load_key(key_hex)
        self._aead = AESGCM(key) if key else None
        if self._aead is None:
            logger.warning("Token encryption disabled, no usable encryption key")

    @property
    def enabled(self) -> bool:
        return self._aead is not None

    def encrypt(self, plaintext: str) -> str:
        if self._aead is None:
            logger.warning("Encryption key not available, storing token in plaintext")
            return plaintext

        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        if self._aead is None:
            return ciphertext

        try:
            combined = base64.b64decode(ciphertext.encode("ascii"), validate=True)
        except (binascii.Error, ValueError, UnicodeEncodeError):
            logger.info("Token is not base64, assuming legacy plaintext")
            return ciphertext

        if len(combined) < NONCE_SIZE + TAG_SIZE:
            logger.info("Token too short to be ciphertext, assuming legacy plaintext")
            return ciphertext

        nonce, sealed = combined[:NONCE_SIZE], combined[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, sealed, None).decode("utf-8")
        except (InvalidTag, UnicodeDecodeError):
            logger.warning("Decryption failed, assuming legacy plaintext token")
            return ciphertext


_vault: Optional[TokenVault] = None


def get_vault() -> TokenVault:
    """Return the process vault built from settings."""
    global _vault
    if _vault is None:
        _vault = TokenVault(settings.encryption_key)
    return _vault


def encrypt_token(plaintext: str) -> str:
    return get_vault().encrypt(plaintext)


def decrypt_token(ciphertext: str) -> str:
    return get_vault().decrypt(ciphertext)


def store_integration_token(
    session: Session,
    integration: Integration,
    access_token: str,
    vault: Optional[TokenVault] = None,
) -> Integration:
    """Encrypt and attach an access token to an integration."""
    vault = vault or get_vault()
    integration.access_token = vault.encrypt(access_token)
    session.add(integration)
    logger.info(
        f"Stored token for {integration.provider} integration (length={len(access_token)})",
        extra={"integration_id": integration.id},
    )
    return integration
