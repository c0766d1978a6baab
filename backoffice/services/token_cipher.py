"""Symmetric encryption utilities for protecting stored tokens.

Secrets are stored as ``<iv-hex>:<ciphertext-hex>`` using AES-256-CBC with
PKCS#7 padding, which keeps records written by the previous Node service
readable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from backoffice.core.errors import ConfigurationError, TokenDecryptionError

_IV_BYTES = 16
_KEY_BYTES = 32
_BLOCK_BITS = algorithms.AES.block_size


@dataclass(frozen=True)
class KeyResolution:
    """Outcome of resolving the encryption key from configuration."""

    key: Optional[bytes] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.key is not None

    def unwrap(self) -> bytes:
        if self.key is None:
            raise ConfigurationError(self.error or "ENCRYPTION_KEY not configured")
        return self.key


def resolve_encryption_key(raw: Optional[str]) -> KeyResolution:
    """Decode a hex encoded 32-byte key without raising."""
    if not raw:
        return KeyResolution(error="ENCRYPTION_KEY not configured")
    try:
        key = bytes.fromhex(raw.strip())
    except ValueError:
        return KeyResolution(error="ENCRYPTION_KEY must be 32 bytes hex")
    if len(key) != _KEY_BYTES:
        return KeyResolution(error="ENCRYPTION_KEY must be 32 bytes hex")
    return KeyResolution(key=key)


class TokenCipherService:
    """Encrypt and decrypt sensitive strings with a fixed operator key.

    The key is resolved on first use, so code paths that never touch a
    secret do not require ``ENCRYPTION_KEY`` to be set.
    """

    def __init__(self, *, secret: Optional[str]) -> None:
        self._secret = secret
        self._resolution: Optional[KeyResolution] = None

    def _key(self) -> bytes:
        if self._resolution is None:
            self._resolution = resolve_encryption_key(self._secret)
        return self._resolution.unwrap()

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string and return ``iv_hex:ciphertext_hex``."""
        key = self._key()
        iv = os.urandom(_IV_BYTES)
        padder = padding.PKCS7(_BLOCK_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt an ``iv_hex:ciphertext_hex`` string and return the plaintext."""
        key = self._key()
        iv_hex, sep, body_hex = ciphertext.partition(":")
        if not sep:
            raise TokenDecryptionError(
                "Failed to decrypt token; missing IV delimiter."
            )
        try:
            iv = bytes.fromhex(iv_hex)
            body = bytes.fromhex(body_hex)
        except ValueError as exc:
            raise TokenDecryptionError(
                "Failed to decrypt token; ciphertext is not valid hex."
            ) from exc
        if len(iv) != _IV_BYTES or not body or len(body) % (_BLOCK_BITS // 8):
            raise TokenDecryptionError(
                "Failed to decrypt token; invalid IV or ciphertext length."
            )

        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()
        unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
        try:
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            # CBC without a MAC cannot tell a wrong key from corrupted data.
            raise TokenDecryptionError(
                "Failed to decrypt token; wrong key or corrupted ciphertext."
            ) from exc


__all__ = [
    "KeyResolution",
    "TokenCipherService",
    "resolve_encryption_key",
]
