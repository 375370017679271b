"""Channel credential vault — AES-256-GCM over ``iv:tag:ciphertext`` base64 segments."""

from __future__ import annotations

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from promptloop.core.errors import ConfigError, DecryptionError

_IV_BYTES = 12
_TAG_BYTES = 16


class SecretVault:
    """Decrypts channel credentials written by the web app.

    The key is SHA-256 of the configured secret, so it can be re-derived at
    every start without being persisted anywhere.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ConfigError("CHANNEL_SECRET_KEY or NEXTAUTH_SECRET is required")
        self._aead = AESGCM(hashlib.sha256(secret.encode("utf-8")).digest())

    @classmethod
    def from_config(cls, config) -> SecretVault:
        return cls(config.channel_secret)

    def decrypt(self, value: str) -> str:
        """Return the plaintext for an ``iv:tag:ciphertext`` payload.

        Raises DecryptionError on a malformed payload, bad base64, or a failed
        authentication check (tampered data or wrong key).
        """
        parts = (value or "").split(":")
        # an empty ciphertext segment is the encryption of ""
        if len(parts) != 3 or not parts[0] or not parts[1]:
            raise DecryptionError("invalid encrypted payload")
        try:
            iv, tag, ciphertext = (base64.b64decode(p, validate=True) for p in parts)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError(f"invalid base64 in encrypted payload: {e}") from e

        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise DecryptionError("authentication failed (tampered data or wrong key)") from e
        except ValueError as e:
            raise DecryptionError(f"invalid encrypted payload: {e}") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("decrypted value is not UTF-8") from e

    def encrypt(self, plaintext: str) -> str:
        """Encrypt ``plaintext`` into the same format ``decrypt`` reads."""
        iv = os.urandom(_IV_BYTES)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-_TAG_BYTES], sealed[-_TAG_BYTES:]
        return ":".join(
            base64.b64encode(part).decode("ascii") for part in (iv, tag, ciphertext)
        )
