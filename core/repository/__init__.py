"""Encrypted filesystem repository for prompts and chains.

Updates:
  v0.3.1 - 2026-10-19 - Accept a configurable default workspace for new records.
  v0.3.0 - 2026-09-20 - Add maintenance mixin for key rotation.
  v0.2.0 - 2026-09-10 - Add chain storage mixin.
  v0.1.0 - 2026-08-30 - Compose repository from base, prompt, and chain mixins.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .base import (
    BACKUP_SUFFIX,
    CHAIN_META_NAME,
    DEFAULT_WORKSPACE,
    PROMPT_SUFFIX,
    ensure_directory,
    format_id,
    is_safe_component,
    parse_id,
)
from .chains import ChainStoreMixin
from .maintenance import RepositoryMaintenanceMixin
from .prompts import PromptStoreMixin

if TYPE_CHECKING:  # pragma: no cover - typing helpers
    from ..crypto import RecordCipher


class PromptRepository(
    RepositoryMaintenanceMixin,
    PromptStoreMixin,
    ChainStoreMixin,
):
    """Compose repository mixins for encrypted file storage."""

    def __init__(
        self,
        base_dir: str | Path,
        cipher: RecordCipher,
        *,
        default_workspace: str = DEFAULT_WORKSPACE,
    ) -> None:
        """Create the workspace layout under *base_dir* and bind *cipher*.

        New prompts and chains land in *default_workspace* unless a workspace
        is named explicitly.
        """
        if not is_safe_component(default_workspace):
            raise ValueError(f"Invalid workspace name '{default_workspace}'")
        self._base_dir = Path(base_dir).expanduser()
        self._workspaces_dir = self._base_dir / "workspaces"
        self._cipher = cipher
        self._default_workspace = default_workspace
        ensure_directory(self._base_dir)
        ensure_directory(self._workspaces_dir)
        ensure_directory(self._workspaces_dir / DEFAULT_WORKSPACE)
        ensure_directory(self._workspaces_dir / default_workspace)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def workspaces_dir(self) -> Path:
        return self._workspaces_dir

    @property
    def default_workspace(self) -> str:
        return self._default_workspace

    @property
    def cipher(self) -> RecordCipher:
        """Cipher currently used for every record read and write."""
        return self._cipher


__all__ = [
    "BACKUP_SUFFIX",
    "CHAIN_META_NAME",
    "DEFAULT_WORKSPACE",
    "PROMPT_SUFFIX",
    "PromptRepository",
    "format_id",
    "parse_id",
]
