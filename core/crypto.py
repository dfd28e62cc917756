"""AES-256-GCM record encryption and Argon2id master-key wrapping.

Records are persisted as ``base64(nonce[12] || ciphertext || tag[16])``.
Password-protected master keys are stored as
``b"PSWD" || salt[16] || nonce[12] || AESGCM(raw_key)`` where the wrapping key
is derived from the password with Argon2id.

Updates:
  v0.2.0 - 2026-09-06 - Add Argon2id key wrapping helpers.
  v0.1.0 - 2026-08-28 - Introduce the record cipher.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import Final

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.argon2 import Argon2id

from .exceptions import CryptoError

logger = logging.getLogger("prompt_store.crypto")

KEY_SIZE: Final[int] = 32
NONCE_SIZE: Final[int] = 12
TAG_SIZE: Final[int] = 16
SALT_SIZE: Final[int] = 16
PASSWORD_MAGIC: Final[bytes] = b"PSWD"

# Argon2id defaults: 19 MiB memory, two passes, single lane.
_ARGON2_ITERATIONS: Final[int] = 2
_ARGON2_MEMORY_KIB: Final[int] = 19_456
_ARGON2_LANES: Final[int] = 1

_WRAPPED_HEADER_SIZE: Final[int] = len(PASSWORD_MAGIC) + SALT_SIZE + NONCE_SIZE


def generate_key() -> bytes:
    """Return 32 fresh bytes from the operating system CSPRNG."""
    return AESGCM.generate_key(bit_length=KEY_SIZE * 8)


def _new_nonce() -> bytes:
    return os.urandom(NONCE_SIZE)


class RecordCipher:
    """Encrypt and decrypt record payloads with a single master key."""

    __slots__ = ("_aead",)

    def __init__(self, key: bytes) -> None:
        """Bind the cipher to *key*, which must be exactly 32 bytes."""
        if len(key) != KEY_SIZE:
            raise CryptoError(f"Master key must be {KEY_SIZE} bytes, got {len(key)}.")
        self._aead = AESGCM(bytes(key))

    def encrypt(self, plaintext: bytes) -> str:
        """Return the base64 text for *plaintext* sealed under a fresh nonce."""
        nonce = _new_nonce()
        sealed = self._aead.encrypt(nonce, plaintext, None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, encoded: str | bytes) -> bytes:
        """Return the authenticated plaintext for *encoded* or raise :class:`CryptoError`."""
        try:
            if isinstance(encoded, str):
                encoded = encoded.encode("ascii")
            raw = base64.b64decode(encoded.strip(), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CryptoError("Invalid Base64 data.") from exc
        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise CryptoError("Data is too short to be valid.")
        nonce, sealed = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as exc:
            raise CryptoError("Decryption failed. Check key or password.") from exc


# ---------------------------------------------------------------------------
# Password wrapping
# ---------------------------------------------------------------------------


def is_wrapped_key(data: bytes) -> bool:
    """Return ``True`` when *data* looks like a password-wrapped master key."""
    return data.startswith(PASSWORD_MAGIC) and len(data) != KEY_SIZE


def derive_wrapping_key(password: str, salt: bytes) -> bytes:
    """Return the 32-byte Argon2id key for *password* and *salt*."""
    try:
        kdf = Argon2id(
            salt=salt,
            length=KEY_SIZE,
            iterations=_ARGON2_ITERATIONS,
            lanes=_ARGON2_LANES,
            memory_cost=_ARGON2_MEMORY_KIB,
        )
        return kdf.derive(password.encode("utf-8"))
    except (UnsupportedAlgorithm, ValueError, TypeError) as exc:
        raise CryptoError("KDF error") from exc


def wrap_key(raw_key: bytes, password: str) -> bytes:
    """Return *raw_key* sealed under a key derived from *password*."""
    if len(raw_key) != KEY_SIZE:
        raise CryptoError(f"Master key must be {KEY_SIZE} bytes, got {len(raw_key)}.")
    salt = os.urandom(SALT_SIZE)
    nonce = _new_nonce()
    wrapping_key = derive_wrapping_key(password, salt)
    sealed = AESGCM(wrapping_key).encrypt(nonce, raw_key, None)
    return PASSWORD_MAGIC + salt + nonce + sealed


def unwrap_key(data: bytes, password: str) -> bytes:
    """Return the raw master key stored in *data*.

    Raises:
        CryptoError: If *data* is not password protected, is truncated, the KDF
            fails, or authentication fails (wrong password or corruption).
    """
    if not data.startswith(PASSWORD_MAGIC):
        raise CryptoError("Key is not password protected.")
    if len(data) < _WRAPPED_HEADER_SIZE + TAG_SIZE:
        raise CryptoError("Corrupted password key.")
    salt = data[len(PASSWORD_MAGIC) : len(PASSWORD_MAGIC) + SALT_SIZE]
    nonce = data[len(PASSWORD_MAGIC) + SALT_SIZE : _WRAPPED_HEADER_SIZE]
    sealed = data[_WRAPPED_HEADER_SIZE:]
    wrapping_key = derive_wrapping_key(password, salt)
    try:
        raw = AESGCM(wrapping_key).decrypt(nonce, sealed, None)
    except InvalidTag as exc:
        raise CryptoError("Invalid password.") from exc
    if len(raw) != KEY_SIZE:
        raise CryptoError("Corrupted key.")
    return raw


__all__ = [
    "KEY_SIZE",
    "NONCE_SIZE",
    "PASSWORD_MAGIC",
    "RecordCipher",
    "derive_wrapping_key",
    "generate_key",
    "is_wrapped_key",
    "unwrap_key",
    "wrap_key",
]
