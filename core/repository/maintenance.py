"""Bulk record maintenance used by key rotation.

Updates:
  v0.2.0 - 2026-09-20 - Include backups and chain metadata in bulk rewrites.
  v0.1.0 - 2026-09-15 - Add decrypt-all and re-encrypt-all helpers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..exceptions import CryptoError, StorageIOError
from .base import BACKUP_SUFFIX, CHAIN_META_NAME, PROMPT_SUFFIX, logger, write_secure

if TYPE_CHECKING:  # pragma: no cover - typing helpers
    from collections.abc import Sequence
    from pathlib import Path

    from ..crypto import RecordCipher


class RepositoryMaintenanceMixin:
    """Operations that touch every encrypted file in the store."""

    _cipher: RecordCipher
    _workspaces_dir: Path

    def iter_record_files(self) -> list[Path]:
        """Return every encrypted file (prompts, chain metadata, backups), sorted."""
        if not self._workspaces_dir.is_dir():
            return []
        files = [
            path
            for path in self._workspaces_dir.rglob("*")
            if path.is_file()
            and not path.name.startswith(".")
            and (
                path.name.endswith((PROMPT_SUFFIX, BACKUP_SUFFIX))
                or path.name == CHAIN_META_NAME
            )
        ]
        return sorted(files)

    def decrypt_all(self) -> list[tuple[Path, bytes]]:
        """Decrypt every record file under the current cipher.

        Raises:
            CryptoError: If any file cannot be read or authenticated. Nothing
                is modified in that case.
        """
        plaintexts: list[tuple[Path, bytes]] = []
        for path in self.iter_record_files():
            try:
                encoded = path.read_bytes()
            except OSError as exc:
                raise CryptoError(f"Unable to read {path.name} during rotation: {exc}") from exc
            try:
                plaintexts.append((path, self._cipher.decrypt(encoded)))
            except CryptoError as exc:
                raise CryptoError(f"Unable to decrypt {path.name}: {exc}") from exc
        logger.debug("Decrypted records for rotation", extra={"count": len(plaintexts)})
        return plaintexts

    def reencrypt_all(
        self,
        plaintexts: Sequence[tuple[Path, bytes]],
        cipher: RecordCipher,
    ) -> None:
        """Rewrite *plaintexts* under *cipher* and switch the repository to it."""
        for path, plaintext in plaintexts:
            try:
                write_secure(path, cipher.encrypt(plaintext).encode("ascii"))
            except OSError as exc:
                raise StorageIOError(f"Unable to rewrite {path}: {exc}") from exc
        self._cipher = cipher
        logger.info("Re-encrypted records", extra={"count": len(plaintexts)})


__all__ = ["RepositoryMaintenanceMixin"]
