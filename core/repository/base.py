"""Shared repository helpers: addressing, secure writes, and encrypted record I/O.

Updates:
  v0.3.0 - 2026-09-15 - Write records atomically through temporary files.
  v0.2.0 - 2026-09-08 - Add workspace-qualified id parsing and path safety checks.
  v0.1.0 - 2026-08-28 - Extract logger, helpers, and record codec mixin.
"""

from __future__ import annotations

import json
import logging
import os
import re
import secrets
import string
import tempfile
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

from models.prompt_model import CHAIN_STEP_SEPARATOR, WORKSPACE_SEPARATOR

from ..exceptions import (
    CryptoError,
    PromptNotFoundError,
    SerializationError,
    StorageIOError,
    StoreInitError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from ..crypto import RecordCipher

logger = logging.getLogger("prompt_store.repository")

DEFAULT_WORKSPACE: Final[str] = "default"
PROMPT_SUFFIX: Final[str] = ".prompt"
BACKUP_SUFFIX: Final[str] = ".bak"
CHAIN_META_NAME: Final[str] = "chain.meta"
ID_LENGTH: Final[int] = 8
DIR_MODE: Final[int] = 0o700
FILE_MODE: Final[int] = 0o600

_ID_ALPHABET: Final[str] = string.ascii_lowercase + string.digits
_SAFE_COMPONENT = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$")
_TIMESTAMP_FORMAT: Final[str] = "%Y%m%d%H%M%S%f"


def parse_id(full_id: str) -> tuple[str, str]:
    """Split *full_id* into ``(workspace, local_id)``; no prefix means the default workspace."""
    if WORKSPACE_SEPARATOR in full_id:
        workspace, local_id = full_id.split(WORKSPACE_SEPARATOR, 1)
        return workspace, local_id
    return DEFAULT_WORKSPACE, full_id


def format_id(workspace: str, local_id: str) -> str:
    """Return the canonical id for *local_id*, omitting the default workspace."""
    if workspace == DEFAULT_WORKSPACE:
        return local_id
    return f"{workspace}{WORKSPACE_SEPARATOR}{local_id}"


def split_step_id(local_id: str) -> tuple[str, str] | None:
    """Return ``(chain_id, step_number)`` for chain step ids, else ``None``."""
    if CHAIN_STEP_SEPARATOR not in local_id:
        return None
    chain_id, step = local_id.split(CHAIN_STEP_SEPARATOR, 1)
    return chain_id, step


def is_safe_component(value: str) -> bool:
    """Return ``True`` when *value* can be used as a single path component."""
    return bool(_SAFE_COMPONENT.match(value)) and value not in {".", ".."}


def new_record_id(exists: Callable[[str], bool]) -> str:
    """Return a random 8-character lowercase alphanumeric id for which *exists* is false."""
    while True:
        candidate = "".join(secrets.choice(_ID_ALPHABET) for _ in range(ID_LENGTH))
        if not exists(candidate):
            return candidate


def backup_timestamp() -> str:
    """Return a sortable local timestamp used in backup file names."""
    return datetime.now().strftime(_TIMESTAMP_FORMAT)


def ensure_directory(path: Path) -> None:
    """Create *path* (and parents) restricted to the current user."""
    try:
        path.mkdir(parents=True, exist_ok=True)
        os.chmod(path, DIR_MODE)
    except OSError as exc:
        raise StoreInitError(f"Unable to create directory {path}: {exc}") from exc


def write_secure(path: Path, data: bytes) -> None:
    """Atomically replace *path* with *data* using owner-only permissions."""
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(temp_name, FILE_MODE)
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


def json_dumps_record(payload: Mapping[str, Any]) -> bytes:
    """Serialise a record mapping into UTF-8 JSON bytes."""
    try:
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Unable to serialise record: {exc}") from exc


def json_loads_record(data: bytes) -> dict[str, Any]:
    """Deserialise decrypted record bytes into a dictionary."""
    try:
        parsed: object = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SerializationError(f"Invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise SerializationError("Record payload must be a JSON object.")
    return parsed


class RecordIOMixin:
    """Encrypted file helpers shared by the repository mixins."""

    _cipher: RecordCipher
    _workspaces_dir: Path
    _default_workspace: str = DEFAULT_WORKSPACE

    def _workspace_dir(self, workspace: str) -> Path:
        if not is_safe_component(workspace):
            raise PromptNotFoundError(f"Invalid workspace name '{workspace}'")
        return self._workspaces_dir / workspace

    def _read_text(self, path: Path) -> str:
        try:
            return path.read_text(encoding="ascii")
        except FileNotFoundError as exc:
            raise PromptNotFoundError(f"Record file {path.name} not found") from exc
        except UnicodeDecodeError as exc:
            raise CryptoError("Invalid Base64 data.") from exc
        except OSError as exc:
            raise StorageIOError(f"Unable to read {path}: {exc}") from exc

    def _read_payload(self, path: Path) -> dict[str, Any]:
        """Decrypt and decode the JSON object stored at *path*."""
        plaintext = self._cipher.decrypt(self._read_text(path))
        return json_loads_record(plaintext)

    def _write_payload(self, path: Path, payload: Mapping[str, Any]) -> None:
        """Encrypt *payload* under a fresh nonce and write it to *path*."""
        encoded = self._cipher.encrypt(json_dumps_record(payload))
        try:
            write_secure(path, encoded.encode("ascii"))
        except OSError as exc:
            raise StorageIOError(f"Unable to write {path}: {exc}") from exc


__all__ = [
    "BACKUP_SUFFIX",
    "CHAIN_META_NAME",
    "DEFAULT_WORKSPACE",
    "PROMPT_SUFFIX",
    "RecordIOMixin",
    "backup_timestamp",
    "ensure_directory",
    "format_id",
    "is_safe_component",
    "json_dumps_record",
    "json_loads_record",
    "logger",
    "new_record_id",
    "parse_id",
    "split_step_id",
    "write_secure",
]
