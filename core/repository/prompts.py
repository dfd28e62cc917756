"""Prompt persistence, lookup, backups, and search helpers.

Updates:
  v0.5.0 - 2026-10-19 - Add encrypted export and import bundles.
  v0.4.0 - 2026-09-16 - Add tag/title search and workspace listings.
  v0.3.0 - 2026-09-11 - Back up ciphertext before edits and support reversible reverts.
  v0.2.0 - 2026-09-08 - Resolve prompts by id first, then by case-insensitive title.
  v0.1.0 - 2026-08-30 - Extract prompt CRUD helpers into mixin.
"""

from __future__ import annotations

import copy
import json
import re
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import TYPE_CHECKING, Any

from models.prompt_model import PromptRecord, PromptSchema

from ..exceptions import (
    AmbiguousIdError,
    AmbiguousTitleError,
    BackupNotFoundError,
    CryptoError,
    PromptNotFoundError,
    SerializationError,
    StorageIOError,
)
from .base import (
    BACKUP_SUFFIX,
    CHAIN_META_NAME,
    PROMPT_SUFFIX,
    RecordIOMixin,
    backup_timestamp,
    ensure_directory,
    format_id,
    is_safe_component,
    json_dumps_record,
    json_loads_record,
    logger,
    new_record_id,
    parse_id,
    split_step_id,
    write_secure,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

PromptMutator = Callable[[PromptRecord], PromptRecord | None]


class PromptStoreMixin(RecordIOMixin):
    """Prompt CRUD, title lookup, and backup helpers."""

    # Addressing --------------------------------------------------------- #

    def _record_location(self, full_id: str) -> tuple[Path, str]:
        """Return ``(directory, stem)`` holding the record addressed by *full_id*."""
        workspace, local_id = parse_id(full_id)
        workspace_dir = self._workspace_dir(workspace)
        step = split_step_id(local_id)
        if step is None:
            if not is_safe_component(local_id):
                raise PromptNotFoundError(f"Prompt or chain '{full_id}' not found")
            return workspace_dir, local_id
        chain_id, step_number = step
        if not is_safe_component(chain_id) or not step_number.isdigit():
            raise PromptNotFoundError(f"Prompt or chain '{full_id}' not found")
        return workspace_dir / chain_id, step_number

    def record_path(self, full_id: str) -> Path:
        """Return the file path for the prompt addressed by *full_id*."""
        directory, stem = self._record_location(full_id)
        return directory / f"{stem}{PROMPT_SUFFIX}"

    def _backup_path(self, full_id: str, timestamp: str) -> Path:
        directory, stem = self._record_location(full_id)
        return directory / f"{stem}.{timestamp}{BACKUP_SUFFIX}"

    def _next_backup_path(self, full_id: str) -> Path:
        """Return an unused backup path stamped with the current time."""
        stamp = backup_timestamp()
        path = self._backup_path(full_id, stamp)
        while path.exists():
            stamp = str(int(stamp) + 1).zfill(len(stamp))
            path = self._backup_path(full_id, stamp)
        return path

    def exists(self, full_id: str) -> bool:
        """Return ``True`` when a prompt file exists for *full_id*."""
        try:
            return self.record_path(full_id).is_file()
        except PromptNotFoundError:
            return False

    def resolve_kind(self, full_id: str) -> str:
        """Return ``"prompt"`` or ``"chain"`` for *full_id*."""
        workspace, local_id = parse_id(full_id)
        is_prompt = self.exists(full_id)
        is_chain = False
        if split_step_id(local_id) is None and is_safe_component(local_id):
            chain_dir = self._workspace_dir(workspace) / local_id
            is_chain = (chain_dir / CHAIN_META_NAME).is_file()
        if is_prompt and is_chain:
            raise AmbiguousIdError(
                f"ID '{full_id}' is ambiguous (found both a prompt and a chain)"
            )
        if is_prompt:
            return "prompt"
        if is_chain:
            return "chain"
        raise PromptNotFoundError(f"Prompt or chain '{full_id}' not found")

    # Reads -------------------------------------------------------------- #

    def _record_from_payload(self, payload: Mapping[str, Any], path: Path) -> PromptRecord:
        try:
            return PromptRecord.from_record(payload)
        except ValueError as exc:
            raise SerializationError(f"Invalid prompt record in {path.name}: {exc}") from exc

    def _load_record(self, path: Path) -> PromptRecord:
        return self._record_from_payload(self._read_payload(path), path)

    def get(self, full_id: str) -> PromptRecord:
        """Return the prompt stored under *full_id* without a title fallback."""
        path = self.record_path(full_id)
        if not path.is_file():
            raise PromptNotFoundError(f"Prompt or chain '{full_id}' not found")
        return self._load_record(path)

    def find(self, id_or_title: str) -> PromptRecord:
        """Return the prompt addressed by id, falling back to a unique title match.

        Raises:
            PromptNotFoundError: When neither an id nor a title matches.
            AmbiguousTitleError: When more than one prompt shares the title.
        """
        try:
            path = self.record_path(id_or_title)
        except PromptNotFoundError:
            path = None
        if path is not None and path.is_file():
            return self._load_record(path)

        root, title = self._title_scope(id_or_title)
        needle = title.casefold()
        matches = [
            record
            for record in self._iter_records(root, recursive=True)
            if record.title.casefold() == needle
        ]
        if not matches:
            raise PromptNotFoundError(f"Prompt or chain '{id_or_title}' not found")
        if len(matches) > 1:
            logger.debug(
                "Title lookup matched multiple prompts",
                extra={"title": id_or_title, "matches": [record.id for record in matches]},
            )
            raise AmbiguousTitleError(
                f"Title '{id_or_title}' is ambiguous (multiple matches found)"
            )
        return matches[0]

    def _title_scope(self, query: str) -> tuple[Path, str]:
        """Return the directory to scan and the bare title for *query*."""
        workspace, title = parse_id(query)
        if query != title and is_safe_component(workspace):
            workspace_dir = self._workspaces_dir / workspace
            if workspace_dir.is_dir():
                return workspace_dir, title
        return self._workspaces_dir, query

    def _iter_prompt_files(self, root: Path, *, recursive: bool) -> Iterator[Path]:
        if not root.is_dir():
            return
        pattern = f"*{PROMPT_SUFFIX}"
        candidates = root.rglob(pattern) if recursive else root.glob(pattern)
        for path in sorted(candidates):
            if path.is_file() and not path.name.startswith("."):
                yield path

    def _iter_records(self, root: Path, *, recursive: bool) -> Iterator[PromptRecord]:
        """Yield decryptable prompt records under *root*, skipping unreadable files."""
        for path in self._iter_prompt_files(root, recursive=recursive):
            try:
                yield self._load_record(path)
            except (CryptoError, SerializationError, StorageIOError) as exc:
                logger.warning(
                    "Skipping unreadable prompt file",
                    extra={"path": str(path), "error": str(exc)},
                )

    def list_workspaces(self) -> list[str]:
        """Return workspace names sorted alphabetically."""
        if not self._workspaces_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self._workspaces_dir.iterdir()
            if entry.is_dir() and is_safe_component(entry.name)
        )

    def list_prompts(
        self,
        workspace: str | None = None,
        *,
        tags: Iterable[str] = (),
    ) -> list[PromptRecord]:
        """Return standalone prompts, optionally limited to a workspace and tag subset."""
        wanted = {tag.strip().casefold() for tag in tags if tag.strip()}
        workspaces = [workspace] if workspace else self.list_workspaces()
        results: list[PromptRecord] = []
        for name in workspaces:
            for record in self._iter_records(self._workspace_dir(name), recursive=False):
                if wanted and not wanted <= {tag.casefold() for tag in record.tags}:
                    continue
                results.append(record)
        return sorted(results, key=lambda record: record.id)

    def search(
        self,
        query: str,
        *,
        tag: str | None = None,
        search_content: bool = False,
    ) -> list[PromptRecord]:
        """Return prompts whose title (or content) contains *query*, case-insensitively."""
        needle = query.casefold()
        tag_filter = tag.strip().casefold() if tag else None
        hits: list[PromptRecord] = []
        for record in self._iter_records(self._workspaces_dir, recursive=True):
            matched = needle in record.title.casefold()
            if search_content:
                matched = matched or needle in record.content.casefold()
            if tag_filter is not None:
                matched = matched and any(item.casefold() == tag_filter for item in record.tags)
            if matched:
                hits.append(record)
        return sorted(hits, key=lambda record: record.id)

    # Writes ------------------------------------------------------------- #

    def create(
        self,
        title: str,
        content: str,
        tags: Iterable[str] = (),
        schema: PromptSchema | None = None,
        *,
        workspace: str | None = None,
    ) -> str:
        """Encrypt and persist a new prompt, returning its id."""
        if not title.strip():
            raise ValueError("Title cannot be empty")
        workspace_name = workspace or self._default_workspace
        workspace_dir = self._workspace_dir(workspace_name)
        ensure_directory(workspace_dir)
        local_id = new_record_id(
            lambda candidate: (workspace_dir / f"{candidate}{PROMPT_SUFFIX}").exists()
            or (workspace_dir / candidate).exists()
        )
        full_id = format_id(workspace_name, local_id)
        record = PromptRecord(
            id=full_id,
            title=title,
            content=content,
            tags=set(tags),
            schema=schema,
        )
        self._write_payload(workspace_dir / f"{local_id}{PROMPT_SUFFIX}", record.to_record())
        logger.info("Prompt created", extra={"prompt_id": full_id, "workspace": workspace_name})
        return full_id

    def edit(self, full_id: str, mutator: PromptMutator) -> PromptRecord:
        """Apply *mutator* to a prompt, backing up the original ciphertext first.

        The mutator receives a copy of the record and may either return a new
        record or mutate the copy in place and return ``None``. Nothing is
        written when the result serialises identically to the original.
        """
        path = self.record_path(full_id)
        if not path.is_file():
            raise PromptNotFoundError(f"No prompt with ID {full_id}")
        original_text = self._read_text(path)
        original = self._record_from_payload(self._decode(original_text), path)
        candidate = copy.deepcopy(original)
        updated = mutator(candidate) or candidate
        if updated.id != original.id:
            raise ValueError("Prompt edits cannot change the record id.")
        if json_dumps_record(updated.to_record()) == json_dumps_record(original.to_record()):
            logger.debug("No changes detected", extra={"prompt_id": full_id})
            return original

        backup = self._next_backup_path(full_id)
        try:
            write_secure(backup, original_text.encode("ascii"))
        except OSError as exc:
            raise StorageIOError(f"Backup error: {exc}") from exc
        self._write_payload(path, updated.to_record())
        logger.info(
            "Prompt updated",
            extra={"prompt_id": full_id, "backup": backup.name},
        )
        return updated

    def _decode(self, text: str) -> dict[str, Any]:
        return json_loads_record(self._cipher.decrypt(text))

    def update_content(self, full_id: str, content: str) -> PromptRecord:
        """Replace the template text of a prompt."""

        def _apply(record: PromptRecord) -> None:
            record.content = content

        return self.edit(full_id, _apply)

    def rename(self, full_id: str, title: str) -> PromptRecord:
        """Change the title of a prompt."""
        if not title.strip():
            raise ValueError("Title cannot be empty")

        def _apply(record: PromptRecord) -> None:
            record.title = title

        return self.edit(full_id, _apply)

    def add_tags(self, full_id: str, tags: Iterable[str]) -> PromptRecord:
        """Add *tags* to a prompt."""
        new_tags = {tag.strip() for tag in tags if tag.strip()}

        def _apply(record: PromptRecord) -> None:
            record.tags |= new_tags

        return self.edit(full_id, _apply)

    def remove_tags(self, full_id: str, tags: Iterable[str]) -> PromptRecord:
        """Remove *tags* (case-insensitive) from a prompt."""
        dropped = {tag.strip().casefold() for tag in tags if tag.strip()}

        def _apply(record: PromptRecord) -> None:
            record.tags = {tag for tag in record.tags if tag.casefold() not in dropped}

        return self.edit(full_id, _apply)

    def set_schema(self, full_id: str, schema: PromptSchema | None) -> PromptRecord:
        """Attach or clear the I/O schema of a prompt."""

        def _apply(record: PromptRecord) -> None:
            record.schema = schema

        return self.edit(full_id, _apply)

    def delete(self, full_id: str) -> None:
        """Remove the prompt file for *full_id*."""
        path = self.record_path(full_id)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise PromptNotFoundError(f"No prompt with ID {full_id}") from exc
        except OSError as exc:
            raise StorageIOError(f"Delete error: {exc}") from exc
        logger.info("Prompt deleted", extra={"prompt_id": full_id})

    # Bundles ------------------------------------------------------------ #

    def export_bundle(self, ids: Iterable[str] | None = None) -> str:
        """Return the selected prompts (all standalone prompts by default) as one encrypted blob.

        The blob is a JSON list of prompt records sealed with the repository
        cipher, so it can only be imported into a store holding the same key.
        """
        if ids is None:
            records = self.list_prompts()
        else:
            records = [self.get(full_id) for full_id in ids]
        try:
            plaintext = json.dumps(
                [record.to_record() for record in records],
                ensure_ascii=False,
                separators=(",", ":"),
            ).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Unable to serialise bundle: {exc}") from exc
        logger.info("Prompts exported", extra={"count": len(records)})
        return self._cipher.encrypt(plaintext)

    def import_bundle(self, data: str | bytes, *, workspace: str | None = None) -> list[str]:
        """Decrypt an exported bundle and store each prompt, returning the new ids.

        Prompts keep their local id unless it is already taken in the target
        workspace, in which case a fresh id is generated. Every entry is
        validated before anything is written.

        Raises:
            CryptoError: If *data* was not produced with this store's key.
            SerializationError: If the decrypted payload is not a list of prompts.
        """
        plaintext = self._cipher.decrypt(data)
        try:
            payload: object = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise SerializationError(f"Invalid bundle JSON: {exc}") from exc
        if not isinstance(payload, list):
            raise SerializationError("Bundle payload must be a JSON list of prompts.")
        records: list[PromptRecord] = []
        for index, entry in enumerate(payload):
            try:
                records.append(PromptRecord.from_record(entry))
            except ValueError as exc:
                raise SerializationError(f"Invalid bundle entry {index}: {exc}") from exc

        workspace_name = workspace or self._default_workspace
        workspace_dir = self._workspace_dir(workspace_name)
        ensure_directory(workspace_dir)

        def _taken(candidate: str) -> bool:
            return (workspace_dir / f"{candidate}{PROMPT_SUFFIX}").exists() or (
                workspace_dir / candidate
            ).exists()

        imported: list[str] = []
        for record in records:
            _, local_id = parse_id(record.id)
            if split_step_id(local_id) is not None or not is_safe_component(local_id):
                local_id = new_record_id(_taken)
            elif _taken(local_id):
                local_id = new_record_id(_taken)
            record.id = format_id(workspace_name, local_id)
            self._write_payload(workspace_dir / f"{local_id}{PROMPT_SUFFIX}", record.to_record())
            imported.append(record.id)
        logger.info(
            "Prompts imported",
            extra={"count": len(imported), "workspace": workspace_name},
        )
        return imported

    # Backups ------------------------------------------------------------ #


    def history(self, full_id: str) -> list[str]:
        """Return backup timestamps for *full_id*, oldest first."""
        directory, stem = self._record_location(full_id)
        if not directory.is_dir():
            return []
        pattern = re.compile(rf"^{re.escape(stem)}\.(\d+){re.escape(BACKUP_SUFFIX)}$")
        stamps = [
            match.group(1)
            for entry in directory.iterdir()
            if (match := pattern.match(entry.name)) and entry.is_file()
        ]
        return sorted(stamps)

    def revert(self, full_id: str, timestamp: str | None = None) -> str:
        """Restore a prompt from its latest (or a specific) backup.

        The current ciphertext is backed up first so the revert can itself be
        reverted. Returns the timestamp that was restored.
        """
        path = self.record_path(full_id)
        if not path.is_file():
            raise PromptNotFoundError(f"Main prompt {full_id} missing")
        stamps = self.history(full_id)
        if not stamps:
            raise BackupNotFoundError(f"No backups found for {full_id}")
        target = timestamp or stamps[-1]
        if target not in stamps:
            raise BackupNotFoundError(f"Timestamp {target} not found for {full_id}")

        restored_text = self._read_text(self._backup_path(full_id, target))
        self._record_from_payload(self._decode(restored_text), path)
        current_text = self._read_text(path)
        try:
            write_secure(
                self._next_backup_path(full_id),
                current_text.encode("ascii"),
            )
            write_secure(path, restored_text.encode("ascii"))
        except OSError as exc:
            raise StorageIOError(f"Revert error: {exc}") from exc
        logger.info("Prompt reverted", extra={"prompt_id": full_id, "timestamp": target})
        return target


__all__ = ["PromptMutator", "PromptStoreMixin"]
