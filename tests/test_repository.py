"""Tests for prompt CRUD, title lookup, backups, and search in the encrypted repository.

Updates:
  v0.2.1 - 2026-10-19 - Cover the configurable default workspace and encrypted bundles.
  v0.2.0 - 2026-09-16 - Cover search, listing, and workspace scoping.
  v0.1.0 - 2026-09-08 - Cover create/find/edit/revert flows.
"""

from __future__ import annotations

import re
import stat
import sys
from pathlib import Path

import pytest

from core.crypto import RecordCipher
from core.exceptions import (
    AmbiguousIdError,
    AmbiguousTitleError,
    BackupNotFoundError,
    CryptoError,
    PromptNotFoundError,
    SerializationError,
)
from core.repository import PromptRepository
from core.repository.base import parse_id
from models.prompt_model import PromptSchema


def test_repository_creates_layout(repository: PromptRepository, store_dir: Path) -> None:
    assert (store_dir / "workspaces" / "default").is_dir()
    if sys.platform != "win32":
        assert stat.S_IMODE((store_dir / "workspaces").stat().st_mode) == 0o700


def test_create_writes_encrypted_record(repository: PromptRepository) -> None:
    prompt_id = repository.create("Summary", "Summarise {{text}}", tags=["nlp", " work "])
    assert len(prompt_id) == 8
    assert re.fullmatch(r"[a-z0-9]{8}", prompt_id)
    path = repository.record_path(prompt_id)
    assert path == repository.workspaces_dir / "default" / f"{prompt_id}.prompt"
    assert b"Summarise" not in path.read_bytes()
    if sys.platform != "win32":
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    record = repository.get(prompt_id)
    assert record.title == "Summary"
    assert record.tags == {"nlp", "work"}
    assert record.schema is None


def test_create_in_named_workspace_uses_prefixed_id(repository: PromptRepository) -> None:
    prompt_id = repository.create("Greeting", "Hi", workspace="team")
    workspace, local_id = parse_id(prompt_id)
    assert workspace == "team"
    assert prompt_id == f"team::{local_id}"
    assert repository.find(prompt_id).content == "Hi"
    assert repository.list_workspaces() == ["default", "team"]


def test_configured_default_workspace_scopes_new_records(
    store_dir: Path,
    cipher: RecordCipher,
) -> None:
    repository = PromptRepository(store_dir, cipher, default_workspace="team")
    assert repository.default_workspace == "team"
    assert (store_dir / "workspaces" / "team").is_dir()

    prompt_id = repository.create("Greeting", "Hi")
    chain_id = repository.create_chain("Flow", [{"title": "One", "content": "one"}])
    assert parse_id(prompt_id)[0] == "team"
    assert parse_id(chain_id)[0] == "team"
    assert repository.find("greeting").id == prompt_id

    explicit = repository.create("Other", "x", workspace="default")
    assert "::" not in explicit

    with pytest.raises(ValueError):
        PromptRepository(store_dir, cipher, default_workspace="../escape")


def test_create_rejects_empty_title(repository: PromptRepository) -> None:
    with pytest.raises(ValueError):
        repository.create("  ", "body")


def test_find_by_title_is_case_insensitive(repository: PromptRepository) -> None:
    prompt_id = repository.create("Sentiment Classifier", "Classify {{text}}")
    assert repository.find("sentiment classifier").id == prompt_id
    assert repository.find(prompt_id).title == "Sentiment Classifier"


def test_find_reports_missing_and_ambiguous_titles(repository: PromptRepository) -> None:
    repository.create("Duplicate", "one")
    repository.create("duplicate", "two")
    with pytest.raises(AmbiguousTitleError):
        repository.find("DUPLICATE")
    with pytest.raises(PromptNotFoundError):
        repository.find("nothing here")


def test_find_with_workspace_prefix_scans_only_that_workspace(
    repository: PromptRepository,
) -> None:
    repository.create("Shared", "default copy")
    team_id = repository.create("Shared", "team copy", workspace="team")
    assert repository.find("team::shared").id == team_id
    with pytest.raises(AmbiguousTitleError):
        repository.find("Shared")


def test_find_skips_undecryptable_files(repository: PromptRepository) -> None:
    good_id = repository.create("Keep", "fine")
    (repository.workspaces_dir / "default" / "garbage1.prompt").write_text("@@@", encoding="ascii")
    assert repository.find("keep").id == good_id
    with pytest.raises(CryptoError):
        repository.get("garbage1")


def test_edit_backs_up_original_and_skips_noop(repository: PromptRepository) -> None:
    prompt_id = repository.create("Draft", "v1")
    original = repository.record_path(prompt_id).read_bytes()

    unchanged = repository.edit(prompt_id, lambda record: record)
    assert unchanged.content == "v1"
    assert repository.history(prompt_id) == []
    assert repository.record_path(prompt_id).read_bytes() == original

    updated = repository.update_content(prompt_id, "v2")
    assert updated.content == "v2"
    stamps = repository.history(prompt_id)
    assert len(stamps) == 1
    backup = repository.record_path(prompt_id).with_name(f"{prompt_id}.{stamps[0]}.bak")
    assert backup.read_bytes() == original


def test_edit_cannot_change_id(repository: PromptRepository) -> None:
    prompt_id = repository.create("Fixed", "body")

    def _rename_id(record):  # type: ignore[no-untyped-def]
        record.id = "other"
        return record

    with pytest.raises(ValueError):
        repository.edit(prompt_id, _rename_id)


def test_convenience_mutations(repository: PromptRepository) -> None:
    prompt_id = repository.create("Mutable", "body", tags=["a"])
    repository.rename(prompt_id, "Renamed")
    repository.add_tags(prompt_id, ["b", "c"])
    repository.remove_tags(prompt_id, ["A"])
    repository.set_schema(prompt_id, PromptSchema(inputs={"type": "object"}))
    record = repository.get(prompt_id)
    assert record.title == "Renamed"
    assert record.tags == {"b", "c"}
    assert record.schema == PromptSchema(inputs={"type": "object"})
    assert len(repository.history(prompt_id)) == 4


def test_revert_restores_latest_backup_and_is_reversible(repository: PromptRepository) -> None:
    prompt_id = repository.create("Versioned", "v1")
    repository.update_content(prompt_id, "v2")

    restored = repository.revert(prompt_id)
    assert repository.get(prompt_id).content == "v1"
    assert restored in repository.history(prompt_id)

    repository.revert(prompt_id)
    assert repository.get(prompt_id).content == "v2"


def test_revert_to_specific_timestamp(repository: PromptRepository) -> None:
    prompt_id = repository.create("Versioned", "v1")
    repository.update_content(prompt_id, "v2")
    repository.update_content(prompt_id, "v3")
    first, _second = repository.history(prompt_id)
    repository.revert(prompt_id, first)
    assert repository.get(prompt_id).content == "v1"


def test_revert_errors(repository: PromptRepository) -> None:
    prompt_id = repository.create("Fresh", "v1")
    with pytest.raises(BackupNotFoundError):
        repository.revert(prompt_id)
    repository.update_content(prompt_id, "v2")
    with pytest.raises(BackupNotFoundError):
        repository.revert(prompt_id, "19990101000000000000")
    with pytest.raises(PromptNotFoundError):
        repository.revert("missing1")


def test_delete_removes_record(repository: PromptRepository) -> None:
    prompt_id = repository.create("Disposable", "body")
    repository.delete(prompt_id)
    assert not repository.exists(prompt_id)
    with pytest.raises(PromptNotFoundError):
        repository.delete(prompt_id)


def test_resolve_kind_detects_prompts_chains_and_ambiguity(repository: PromptRepository) -> None:
    prompt_id = repository.create("Solo", "body")
    chain_id = repository.create_chain("Pipeline")
    assert repository.resolve_kind(prompt_id) == "prompt"
    assert repository.resolve_kind(chain_id) == "chain"

    clash_dir = repository.chain_dir(prompt_id)
    clash_dir.mkdir()
    meta = repository.chain_dir(chain_id) / "chain.meta"
    (clash_dir / "chain.meta").write_bytes(meta.read_bytes())
    with pytest.raises(AmbiguousIdError):
        repository.resolve_kind(prompt_id)
    with pytest.raises(PromptNotFoundError):
        repository.resolve_kind("nothing1")


def test_unsafe_ids_fall_back_to_title_lookup(repository: PromptRepository) -> None:
    with pytest.raises(PromptNotFoundError):
        repository.find("../../etc/passwd")


def test_list_prompts_filters_by_workspace_and_tags(repository: PromptRepository) -> None:
    first = repository.create("One", "1", tags=["Work"])
    second = repository.create("Two", "2", tags=["work", "urgent"])
    repository.create("Three", "3", workspace="team", tags=["work"])
    repository.create_chain("Chain", [{"title": "Step", "content": "s", "tags": ["work"]}])

    ids = [record.id for record in repository.list_prompts("default", tags=["work"])]
    assert ids == sorted([first, second])
    assert [record.id for record in repository.list_prompts(tags=["urgent"])] == [second]
    assert len(repository.list_prompts()) == 3


def test_search_matches_title_content_and_tag(repository: PromptRepository) -> None:
    email_id = repository.create("Email Writer", "Draft a polite email", tags=["writing"])
    repository.create("Summary", "Summarise the email thread", tags=["reading"])
    chain_id = repository.create_chain("Flow", [{"title": "Email step", "content": "x"}])

    by_title = repository.search("email")
    assert {record.id for record in by_title} == {email_id, f"{chain_id}/1"}
    assert len(repository.search("EMAIL", search_content=True)) == 3
    assert [record.id for record in repository.search("email", tag="Writing")] == [email_id]


def test_export_import_bundle_round_trip(
    repository: PromptRepository,
    cipher: RecordCipher,
    tmp_path: Path,
) -> None:
    first = repository.create("Summary", "Summarise {{text}}", tags=["nlp"])
    repository.create(
        "Classifier",
        "Classify {{text}}",
        schema=PromptSchema(output={"type": "string"}),
        workspace="team",
    )
    repository.create_chain("Flow", [{"title": "Step", "content": "step body"}])

    bundle = repository.export_bundle()
    assert "Summarise" not in bundle

    target = PromptRepository(tmp_path / "other", cipher)
    imported = target.import_bundle(bundle)

    assert len(imported) == 2
    assert first in imported
    assert {target.get(full_id).title for full_id in imported} == {"Summary", "Classifier"}
    assert target.get(first).tags == {"nlp"}
    assert target.find("classifier").schema == PromptSchema(output={"type": "string"})
    assert all("::" not in full_id for full_id in imported)


def test_export_selected_ids_and_import_regenerates_taken_ids(
    repository: PromptRepository,
) -> None:
    prompt_id = repository.create("Only me", "body")
    repository.create("Not me", "other")

    bundle = repository.export_bundle([prompt_id])
    imported = repository.import_bundle(bundle)

    assert len(imported) == 1
    assert imported[0] != prompt_id
    assert repository.get(imported[0]).content == "body"
    assert repository.get(prompt_id).content == "body"

    into_team = repository.import_bundle(bundle, workspace="team")
    assert into_team == [f"team::{prompt_id}"]


def test_import_bundle_rejects_tampered_or_malformed_data(
    repository: PromptRepository,
    cipher: RecordCipher,
) -> None:
    repository.create("Secret", "body")
    bundle = repository.export_bundle()
    before = repository.list_prompts()

    tampered = bundle[:-4] + ("AAAA" if not bundle.endswith("AAAA") else "BBBB")
    with pytest.raises(CryptoError):
        repository.import_bundle(tampered)

    with pytest.raises(SerializationError):
        repository.import_bundle(cipher.encrypt(b'{"id": "x"}'))
    with pytest.raises(SerializationError):
        repository.import_bundle(cipher.encrypt(b'[{"id": "ok"}]'))

    assert repository.list_prompts() == before
