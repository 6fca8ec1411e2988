"""AES-256 encryption for sensitive stored fields (card provider identifiers)."""

from __future__ import annotations

import base64
import os
from typing import Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from remvana.config import get_settings
from remvana.logging_config import get_logger

logger = get_logger(__name__)

_cipher: Optional[AESGCM] = None


def _get_cipher() -> AESGCM:
    """Return or create the AES-GCM cipher from the configured key."""
    global _cipher
    if _cipher is not None:
        return _cipher

    settings = get_settings()
    key_b64 = settings.remvana_encryption_key
    if not key_b64:
        key = AESGCM.generate_key(bit_length=256)
        logger.warning(
            "encryption_key_missing",
            msg="Generated ephemeral key; set REMVANA_ENCRYPTION_KEY to keep stored values readable",
        )
    else:
        padded = key_b64 + "=" * (-len(key_b64) % 4)
        key = base64.urlsafe_b64decode(padded)
        if len(key) != 32:
            raise ValueError(f"REMVANA_ENCRYPTION_KEY is {len(key)} bytes, need 32")

    _cipher = AESGCM(key)
    return _cipher


def encrypt(plaintext: str) -> str:
    """Encrypt a plaintext string, returning base64-encoded ciphertext with nonce."""
    cipher = _get_cipher()
    nonce = os.urandom(12)
    ciphertext = cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii")


def decrypt(token: str) -> str:
    """Decrypt a base64-encoded token back to plaintext."""
    cipher = _get_cipher()
    padded = token + "=" * (-len(token) % 4)
    raw = base64.urlsafe_b64decode(padded)
    nonce, ciphertext = raw[:12], raw[12:]
    return cipher.decrypt(nonce, ciphertext, None).decode("utf-8")
