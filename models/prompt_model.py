"""Prompt and chain record definitions persisted by the repository.

Updates:
  v0.2.0 - 2026-09-10 - Add chain metadata record and stored chain view.
  v0.1.1 - 2026-09-01 - Keep tags as a set and serialise them sorted.
  v0.1.0 - 2026-08-28 - Initial PromptRecord schema with serialisation helpers.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

CHAIN_STEP_SEPARATOR = "/"
WORKSPACE_SEPARATOR = "::"


def _normalise_tags(tags: Iterable[Any] | str | None) -> set[str]:
    """Return a set of trimmed, non-empty tag strings."""
    if tags is None:
        return set()
    if isinstance(tags, str):
        tags = tags.split(",")
    return {str(tag).strip() for tag in tags if str(tag).strip()}


@dataclass(slots=True)
class PromptSchema:
    """Expected inputs and output shape (JSON Schema values) for a prompt."""

    inputs: Any | None = None
    output: Any | None = None

    def to_record(self) -> dict[str, Any]:
        """Return a JSON-serialisable mapping omitting unset members."""
        payload: dict[str, Any] = {}
        if self.inputs is not None:
            payload["inputs"] = self.inputs
        if self.output is not None:
            payload["output"] = self.output
        return payload

    @classmethod
    def from_record(cls, payload: Mapping[str, Any] | None) -> PromptSchema | None:
        """Hydrate a schema from *payload*; ``None`` stays ``None``."""
        if payload is None:
            return None
        if not isinstance(payload, Mapping):
            raise ValueError("Prompt schema must be an object.")
        return cls(inputs=payload.get("inputs"), output=payload.get("output"))


@dataclass(slots=True)
class PromptRecord:
    """Single storable prompt template."""

    id: str
    title: str
    content: str
    tags: set[str] = field(default_factory=set)
    schema: PromptSchema | None = None

    def __post_init__(self) -> None:
        self.tags = _normalise_tags(self.tags)

    @property
    def chain_id(self) -> str | None:
        """Return the owning chain id when this record is a chain step."""
        local_id = self.id.split(WORKSPACE_SEPARATOR, 1)[-1]
        if CHAIN_STEP_SEPARATOR not in local_id:
            return None
        return local_id.split(CHAIN_STEP_SEPARATOR, 1)[0]

    def to_record(self) -> dict[str, Any]:
        """Return a dictionary suitable for JSON persistence."""
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "tags": sorted(self.tags),
        }
        if self.schema is not None:
            payload["schema"] = self.schema.to_record()
        return payload

    @classmethod
    def from_record(cls, payload: Mapping[str, Any]) -> PromptRecord:
        """Hydrate a prompt from a decoded JSON mapping.

        Raises:
            ValueError: If required keys are missing or malformed.
        """
        if not isinstance(payload, Mapping):
            raise ValueError("Prompt record must be an object.")
        try:
            record_id = payload["id"]
            title = payload["title"]
            content = payload["content"]
        except KeyError as exc:
            raise ValueError(f"Prompt record is missing '{exc.args[0]}'.") from exc
        if not all(isinstance(value, str) for value in (record_id, title, content)):
            raise ValueError("Prompt id, title, and content must be strings.")
        tags = payload.get("tags") or []
        if not isinstance(tags, list):
            raise ValueError("Prompt tags must be an array.")
        return cls(
            id=record_id,
            title=title,
            content=content,
            tags=set(tags),
            schema=PromptSchema.from_record(payload.get("schema")),
        )


@dataclass(slots=True)
class ChainRecord:
    """Metadata stored once per chain directory."""

    id: str
    title: str

    def to_record(self) -> dict[str, Any]:
        """Return a dictionary suitable for JSON persistence."""
        return {"id": self.id, "title": self.title}

    @classmethod
    def from_record(cls, payload: Mapping[str, Any]) -> ChainRecord:
        """Hydrate chain metadata from a decoded JSON mapping."""
        if not isinstance(payload, Mapping):
            raise ValueError("Chain record must be an object.")
        record_id = payload.get("id")
        title = payload.get("title")
        if not isinstance(record_id, str) or not isinstance(title, str):
            raise ValueError("Chain record requires string 'id' and 'title' fields.")
        return cls(id=record_id, title=title)


@dataclass(slots=True)
class StoredChain:
    """Chain metadata together with its ordered step prompts."""

    record: ChainRecord
    steps: list[PromptRecord] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def title(self) -> str:
        return self.record.title


__all__ = [
    "CHAIN_STEP_SEPARATOR",
    "ChainRecord",
    "PromptRecord",
    "PromptSchema",
    "StoredChain",
    "WORKSPACE_SEPARATOR",
]
