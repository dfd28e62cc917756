"""Stored chain directories: metadata plus numbered step prompts.

Updates:
  v0.2.1 - 2026-10-19 - Move step backups with renumbered steps; drop backups of removed steps.
  v0.2.0 - 2026-09-14 - Renumber remaining steps when a step is removed.
  v0.1.0 - 2026-09-10 - Persist chains as directories with encrypted chain.meta.
"""

from __future__ import annotations

import os
import re
import shutil
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from models.prompt_model import ChainRecord, PromptRecord, PromptSchema, StoredChain

from ..exceptions import PromptNotFoundError, SerializationError, StorageIOError
from .base import (
    BACKUP_SUFFIX,
    CHAIN_META_NAME,
    PROMPT_SUFFIX,
    RecordIOMixin,
    ensure_directory,
    format_id,
    is_safe_component,
    logger,
    new_record_id,
    parse_id,
    split_step_id,
)

ChainStepInput = Mapping[str, Any]


class ChainStoreMixin(RecordIOMixin):
    """Create, inspect, and edit stored chains."""

    def chain_dir(self, chain_id: str) -> Path:
        """Return the directory for *chain_id* (workspace prefix optional)."""
        workspace, local_id = parse_id(chain_id)
        if split_step_id(local_id) is not None or not is_safe_component(local_id):
            raise PromptNotFoundError(f"Chain '{chain_id}' not found")
        return self._workspace_dir(workspace) / local_id

    def _existing_chain_dir(self, chain_id: str) -> Path:
        directory = self.chain_dir(chain_id)
        if not (directory / CHAIN_META_NAME).is_file():
            raise PromptNotFoundError(f"Chain '{chain_id}' not found")
        return directory

    @staticmethod
    def _step_numbers(directory: Path) -> list[int]:
        numbers = []
        for entry in directory.glob(f"*{PROMPT_SUFFIX}"):
            stem = entry.name[: -len(PROMPT_SUFFIX)]
            if stem.isdigit():
                numbers.append(int(stem))
        return sorted(numbers)

    @staticmethod
    def _step_backups(directory: Path, number: int) -> list[tuple[str, Path]]:
        """Return ``(timestamp, path)`` pairs for the backups of step *number*."""
        pattern = re.compile(rf"^{number}\.(\d+){re.escape(BACKUP_SUFFIX)}$")
        backups = [
            (match.group(1), entry)
            for entry in directory.iterdir()
            if (match := pattern.match(entry.name)) and entry.is_file()
        ]
        return sorted(backups)

    def _write_step(
        self,
        chain_id: str,
        directory: Path,
        number: int,
        title: str,
        content: str,
        tags: Iterable[str] = (),
        schema: PromptSchema | None = None,
    ) -> str:
        workspace, local_chain = parse_id(chain_id)
        step_id = format_id(workspace, f"{local_chain}/{number}")
        record = PromptRecord(
            id=step_id, title=title, content=content, tags=set(tags), schema=schema
        )
        self._write_payload(directory / f"{number}{PROMPT_SUFFIX}", record.to_record())
        return step_id

    def create_chain(
        self,
        title: str,
        steps: Iterable[ChainStepInput] = (),
        *,
        workspace: str | None = None,
    ) -> str:
        """Create a chain directory with optional initial steps and return its id.

        Each step mapping needs ``title`` and ``content`` and may carry ``tags``.
        """
        if not title.strip():
            raise ValueError("Title cannot be empty")
        workspace_name = workspace or self._default_workspace
        workspace_dir = self._workspace_dir(workspace_name)
        ensure_directory(workspace_dir)
        local_id = new_record_id(
            lambda candidate: (workspace_dir / f"{candidate}{PROMPT_SUFFIX}").exists()
            or (workspace_dir / candidate).exists()
        )
        chain_id = format_id(workspace_name, local_id)
        directory = workspace_dir / local_id
        ensure_directory(directory)
        self._write_payload(
            directory / CHAIN_META_NAME, ChainRecord(id=chain_id, title=title).to_record()
        )
        for number, step in enumerate(steps, start=1):
            self._write_step(
                chain_id,
                directory,
                number,
                str(step["title"]),
                str(step["content"]),
                step.get("tags") or (),
            )
        logger.info("Chain created", extra={"chain_id": chain_id, "workspace": workspace_name})
        return chain_id

    def add_chain_step(
        self,
        chain_id: str,
        title: str,
        content: str,
        tags: Iterable[str] = (),
        schema: PromptSchema | None = None,
    ) -> str:
        """Append a step to *chain_id* and return the new step id."""
        directory = self._existing_chain_dir(chain_id)
        numbers = self._step_numbers(directory)
        number = (numbers[-1] if numbers else 0) + 1
        step_id = self._write_step(chain_id, directory, number, title, content, tags, schema)
        logger.info("Chain step added", extra={"chain_id": chain_id, "step_id": step_id})
        return step_id

    def remove_chain_step(self, step_id: str) -> None:
        """Delete a chain step and renumber the steps that followed it."""
        workspace, local_id = parse_id(step_id)
        parts = split_step_id(local_id)
        if parts is None or not parts[1].isdigit():
            raise ValueError(f"Invalid step ID format '{step_id}'. Expected 'chain_id/step_number'")
        chain_local, step_number = parts
        chain_id = format_id(workspace, chain_local)
        directory = self._existing_chain_dir(chain_id)
        removed = int(step_number)
        target = directory / f"{removed}{PROMPT_SUFFIX}"
        if not target.is_file():
            raise PromptNotFoundError(f"Step '{step_id}' not found")
        try:
            target.unlink()
            for _, backup in self._step_backups(directory, removed):
                backup.unlink()
        except OSError as exc:
            raise StorageIOError(f"Delete error: {exc}") from exc

        for number in self._step_numbers(directory):
            if number <= removed:
                continue
            old_path = directory / f"{number}{PROMPT_SUFFIX}"
            record = PromptRecord.from_record(self._read_payload(old_path))
            new_step_id = self._write_step(
                chain_id,
                directory,
                number - 1,
                record.title,
                record.content,
                record.tags,
                record.schema,
            )
            self._move_step_backups(directory, number, number - 1, new_step_id)
            try:
                os.remove(old_path)
            except OSError as exc:
                raise StorageIOError(f"Renumber error: {exc}") from exc
        logger.info("Chain step removed", extra={"chain_id": chain_id, "step_id": step_id})

    def _move_step_backups(
        self,
        directory: Path,
        number: int,
        new_number: int,
        new_step_id: str,
    ) -> None:
        """Re-key the backups of step *number* to *new_number* and *new_step_id*."""
        for stamp, backup in self._step_backups(directory, number):
            payload = self._read_payload(backup)
            payload["id"] = new_step_id
            self._write_payload(directory / f"{new_number}.{stamp}{BACKUP_SUFFIX}", payload)
            try:
                backup.unlink()
            except OSError as exc:
                raise StorageIOError(f"Renumber error: {exc}") from exc

    def get_chain(self, chain_id: str) -> StoredChain:
        """Return chain metadata with its steps ordered by step number."""
        directory = self._existing_chain_dir(chain_id)
        try:
            record = ChainRecord.from_record(self._read_payload(directory / CHAIN_META_NAME))
        except ValueError as exc:
            raise SerializationError(f"Invalid chain metadata for {chain_id}: {exc}") from exc
        steps = []
        for number in self._step_numbers(directory):
            payload = self._read_payload(directory / f"{number}{PROMPT_SUFFIX}")
            try:
                steps.append(PromptRecord.from_record(payload))
            except ValueError as exc:
                raise SerializationError(f"Invalid chain step {number}: {exc}") from exc
        return StoredChain(record=record, steps=steps)

    def list_chains(self, workspace: str | None = None) -> list[ChainRecord]:
        """Return chain metadata records, optionally limited to one workspace."""
        if workspace:
            roots = [self._workspace_dir(workspace)]
        elif self._workspaces_dir.is_dir():
            roots = sorted(entry for entry in self._workspaces_dir.iterdir() if entry.is_dir())
        else:
            roots = []
        chains: list[ChainRecord] = []
        for root in roots:
            if not root.is_dir():
                continue
            for meta in sorted(root.glob(f"*/{CHAIN_META_NAME}")):
                try:
                    chains.append(ChainRecord.from_record(self._read_payload(meta)))
                except (ValueError, SerializationError) as exc:
                    logger.warning(
                        "Skipping unreadable chain metadata",
                        extra={"path": str(meta), "error": str(exc)},
                    )
        return sorted(chains, key=lambda chain: chain.id)

    def delete_chain(self, chain_id: str) -> None:
        """Remove a chain directory together with its steps and backups."""
        directory = self._existing_chain_dir(chain_id)
        try:
            shutil.rmtree(directory)
        except OSError as exc:
            raise StorageIOError(f"Delete error: {exc}") from exc
        logger.info("Chain deleted", extra={"chain_id": chain_id})


__all__ = ["ChainStepInput", "ChainStoreMixin"]
