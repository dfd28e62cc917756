"""Master key loading, password unwrapping, and two-phase rotation.

Updates:
  v0.3.0 - 2026-09-20 - Rotate keys in two phases so failed decrypts leave disk untouched.
  v0.2.0 - 2026-09-06 - Support password-wrapped key files.
  v0.1.0 - 2026-08-28 - Load or generate the raw 32-byte master key.
"""

from __future__ import annotations

import getpass
import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from .crypto import (
    KEY_SIZE,
    RecordCipher,
    generate_key,
    is_wrapped_key,
    unwrap_key,
    wrap_key,
)
from .exceptions import CryptoError, StorageIOError, StoreInitError
from .repository.base import ensure_directory, write_secure

if TYPE_CHECKING:  # pragma: no cover - typing helpers
    from .repository import PromptRepository

logger = logging.getLogger("prompt_store.keys")

PasswordPrompt = Callable[[str], str]


def _default_prompt(message: str) -> str:
    return getpass.getpass(message)


class KeyManager:
    """Own the master key file and the cipher derived from it."""

    def __init__(
        self,
        key_path: str | Path,
        *,
        password_prompt: PasswordPrompt | None = None,
    ) -> None:
        self._key_path = Path(key_path).expanduser()
        self._password_prompt = password_prompt or _default_prompt
        self._key: bytes | None = None
        self._protected = False

    @property
    def key_path(self) -> Path:
        return self._key_path

    @property
    def key(self) -> bytes:
        """Return the loaded master key or raise when nothing has been loaded yet."""
        if self._key is None:
            raise StoreInitError("Master key has not been loaded.")
        return self._key

    @property
    def cipher(self) -> RecordCipher:
        return RecordCipher(self.key)

    @property
    def is_password_protected(self) -> bool:
        return self._protected

    @staticmethod
    def wrap(raw_key: bytes, password: str) -> bytes:
        """Return *raw_key* wrapped under *password*."""
        return wrap_key(raw_key, password)

    @staticmethod
    def unwrap(data: bytes, password: str) -> bytes:
        """Return the raw master key sealed in *data*."""
        return unwrap_key(data, password)

    def _write_key_file(self, data: bytes) -> None:
        ensure_directory(self._key_path.parent)
        try:
            write_secure(self._key_path, data)
        except OSError as exc:
            raise StorageIOError(f"Unable to write key file {self._key_path}: {exc}") from exc

    def load_or_generate(
        self,
        password: str | None = None,
        *,
        create: bool = True,
    ) -> tuple[bytes, bool]:
        """Return ``(master_key, is_password_protected)`` for the configured key file.

        A missing key file is generated (raw, unwrapped) unless *create* is
        false, in which case :class:`StoreInitError` is raised. Wrapped key files
        are opened with *password*, falling back to the password prompt.

        Raises:
            CryptoError: If the key file is malformed, no password can be
                obtained for a wrapped key, or the password is wrong.
        """
        if not self._key_path.exists():
            if not create:
                raise StoreInitError(f"Key file {self._key_path} does not exist.")
            key = generate_key()
            self._write_key_file(key)
            logger.info("Generated new master key", extra={"key_path": str(self._key_path)})
            self._key, self._protected = key, False
            return key, False

        try:
            data = self._key_path.read_bytes()
        except OSError as exc:
            raise StorageIOError(f"Unable to read key file {self._key_path}: {exc}") from exc

        if is_wrapped_key(data):
            secret = password
            if secret is None:
                try:
                    secret = self._password_prompt("Enter master password: ")
                except (EOFError, OSError) as exc:
                    raise CryptoError("Password required to unlock the key.") from exc
            if not secret:
                raise CryptoError("Password required to unlock the key.")
            key = unwrap_key(data, secret)
            self._key, self._protected = key, True
            logger.debug("Unlocked password-protected key")
            return key, True

        if len(data) != KEY_SIZE:
            raise CryptoError(f"Invalid key length: expected {KEY_SIZE} bytes, got {len(data)}.")
        self._key, self._protected = data, False
        return data, False

    def rotate(self, repository: PromptRepository, new_password: str | None = None) -> None:
        """Replace the master key and re-encrypt every record in *repository*.

        Every record is decrypted in memory before anything is written. A
        decrypt failure raises :class:`CryptoError` and leaves the key file and
        all records unchanged. The caller must ensure no other operation uses
        the repository while rotation runs.
        """
        if self._key is None:
            raise StoreInitError("Master key has not been loaded.")
        plaintexts = repository.decrypt_all()

        new_key = generate_key()
        key_bytes = wrap_key(new_key, new_password) if new_password else new_key
        self._write_key_file(key_bytes)
        repository.reencrypt_all(plaintexts, RecordCipher(new_key))
        self._key, self._protected = new_key, bool(new_password)
        logger.info(
            "Rotated master key",
            extra={"records": len(plaintexts), "password_protected": self._protected},
        )


__all__ = ["KeyManager", "PasswordPrompt"]
