"""Prompt chain step graph models.

A chain run is described by an ordered list of execution nodes. Each node is
either a single :class:`StepNode` or a :class:`ParallelGroup` of independent
steps that share one context snapshot.

Updates:
  v0.3.0 - 2026-09-18 - Allow fallbacks to name their own provider.
  v0.2.0 - 2026-09-12 - Add chain_definition_from_payload for JSON/YAML chain files.
  v0.1.0 - 2026-09-04 - Introduce step specs, sources, conditions, and execution nodes.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class StepMode(Enum):
    """How a provider is asked to produce text for a step."""

    COMPLETION = "completion"
    CHAT = "chat"

    @classmethod
    def from_string(cls, value: str | None) -> StepMode:
        """Return the member matching *value* (defaults to ``COMPLETION``)."""
        if not value:
            return cls.COMPLETION
        lowered = value.strip().lower()
        for member in cls:
            if member.value == lowered:
                return member
        raise ValueError(f"Unknown step mode '{value}'.")


# ---------------------------------------------------------------------------
# Prompt sources
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StoredSource:
    """Load the prompt template from the repository by id or title."""

    id_or_title: str

    def describe(self) -> str:
        return f"stored:{self.id_or_title}"


@dataclass(frozen=True, slots=True)
class RawSource:
    """Use in-memory text verbatim as the prompt template."""

    text: str

    def describe(self) -> str:
        return "raw"


PromptSource = StoredSource | RawSource


def coerce_source(value: PromptSource | str) -> PromptSource:
    """Return *value* as a prompt source; plain strings are stored ids or titles."""
    if isinstance(value, (StoredSource, RawSource)):
        return value
    if isinstance(value, str):
        return StoredSource(value)
    raise TypeError(f"Unsupported prompt source: {value!r}")


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Always:
    """Condition that always holds."""

    def evaluate(self, context: Mapping[str, str]) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class KeyEquals:
    """Holds when ``context[variable]`` equals ``value``."""

    variable: str
    value: str
    ignore_case: bool = False

    def evaluate(self, context: Mapping[str, str]) -> bool:
        actual = context.get(self.variable)
        if actual is None:
            return False
        if self.ignore_case:
            return actual.strip().casefold() == self.value.strip().casefold()
        return actual == self.value


@dataclass(frozen=True, slots=True)
class KeyContains:
    """Holds when ``context[variable]`` contains ``substring``."""

    variable: str
    substring: str
    ignore_case: bool = False

    def evaluate(self, context: Mapping[str, str]) -> bool:
        actual = context.get(self.variable)
        if actual is None:
            return False
        if self.ignore_case:
            return self.substring.casefold() in actual.casefold()
        return self.substring in actual


@dataclass(frozen=True, slots=True)
class Custom:
    """Delegate the decision to a caller-supplied predicate."""

    callback: Callable[[Mapping[str, str]], bool]

    def evaluate(self, context: Mapping[str, str]) -> bool:
        return bool(self.callback(context))


Condition = Always | KeyEquals | KeyContains | Custom

ALWAYS = Always()


# ---------------------------------------------------------------------------
# Steps and nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FallbackSpec:
    """Alternate source tried after the primary source of a step fails.

    ``provider_id`` of ``None`` reuses the step's provider.
    """

    source: PromptSource
    provider_id: str | None = None


@dataclass(slots=True)
class StepSpec:
    """One unit of chain work: resolve, render, invoke, store."""

    output_key: str
    source: PromptSource
    provider_id: str | None = None
    mode: StepMode = StepMode.COMPLETION
    condition: Condition | None = None
    fallback: FallbackSpec | None = None

    def __post_init__(self) -> None:
        if not self.output_key or not self.output_key.strip():
            raise ValueError("Chain steps require a non-empty output key.")
        self.source = coerce_source(self.source)

    def should_run(self, context: Mapping[str, str]) -> bool:
        """Return ``True`` when the step's condition holds for *context*."""
        if self.condition is None:
            return True
        return self.condition.evaluate(context)


@dataclass(slots=True)
class StepNode:
    """Sequential execution node."""

    step: StepSpec


@dataclass(slots=True)
class ParallelGroup:
    """Steps dispatched concurrently against one shared context snapshot."""

    steps: list[StepSpec] = field(default_factory=list)


ExecutionNode = StepNode | ParallelGroup


@dataclass(slots=True)
class ChainDefinition:
    """Declarative chain: seed variables plus the ordered node list."""

    variables: dict[str, str] = field(default_factory=dict)
    nodes: list[ExecutionNode] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


def _source_from_payload(payload: Mapping[str, Any], label: str) -> PromptSource:
    prompt = payload.get("prompt")
    template = payload.get("template")
    if prompt and template:
        raise ValueError(f"{label} must define either 'prompt' or 'template', not both.")
    if isinstance(prompt, str) and prompt.strip():
        return StoredSource(prompt.strip())
    if isinstance(template, str):
        return RawSource(template)
    raise ValueError(f"{label} is missing 'prompt' or 'template'.")


def _condition_from_payload(payload: Any, label: str) -> Condition | None:
    if payload is None:
        return None
    if not isinstance(payload, Mapping):
        raise ValueError(f"{label} condition must be an object.")
    variable = str(payload.get("variable") or "").strip()
    if not variable:
        raise ValueError(f"{label} condition is missing 'variable'.")
    ignore_case = bool(payload.get("ignore_case", False))
    if payload.get("equals") is not None:
        return KeyEquals(variable, str(payload["equals"]), ignore_case=ignore_case)
    if payload.get("contains") is not None:
        return KeyContains(variable, str(payload["contains"]), ignore_case=ignore_case)
    raise ValueError(f"{label} condition requires 'equals' or 'contains'.")


def _fallback_from_payload(payload: Any, label: str) -> FallbackSpec | None:
    if payload is None:
        return None
    if not isinstance(payload, Mapping):
        raise ValueError(f"{label} 'on_error' must be an object.")
    provider = payload.get("provider")
    return FallbackSpec(
        source=_source_from_payload(payload, f"{label} fallback"),
        provider_id=str(provider) if provider else None,
    )


def _step_from_payload(payload: Any, label: str) -> StepSpec:
    if not isinstance(payload, Mapping):
        raise ValueError(f"{label} must be an object.")
    output_key = str(payload.get("id") or "").strip()
    if not output_key:
        raise ValueError(f"{label} is missing 'id'.")
    provider = payload.get("provider")
    return StepSpec(
        output_key=output_key,
        source=_source_from_payload(payload, label),
        provider_id=str(provider) if provider else None,
        mode=StepMode.from_string(payload.get("mode")),
        condition=_condition_from_payload(payload.get("if"), label),
        fallback=_fallback_from_payload(payload.get("on_error"), label),
    )


def chain_definition_from_payload(payload: Mapping[str, Any]) -> ChainDefinition:
    """Return a :class:`ChainDefinition` built from a JSON/YAML-like mapping.

    Args:
        payload: Mapping with optional ``vars`` and a ``steps`` array. Each step
            is either a step object (``id``, ``prompt`` or ``template``,
            ``provider``, optional ``if`` and ``on_error``) or an object with a
            ``parallel`` array of step objects.

    Returns:
        ChainDefinition: Seed variables and ordered execution nodes.

    Raises:
        ValueError: If required keys are missing or malformed.
    """
    if not isinstance(payload, Mapping):
        raise ValueError("Chain definition must be an object.")
    raw_vars = payload.get("vars") or {}
    if not isinstance(raw_vars, Mapping):
        raise ValueError("'vars' must be an object.")
    variables = {str(key): str(value) for key, value in raw_vars.items()}
    steps_payload = payload.get("steps") or []
    if not isinstance(steps_payload, list):
        raise ValueError("'steps' must be an array.")
    nodes: list[ExecutionNode] = []
    for index, entry in enumerate(steps_payload, start=1):
        if isinstance(entry, Mapping) and "parallel" in entry:
            members = entry.get("parallel")
            if not isinstance(members, list):
                raise ValueError(f"Step {index} 'parallel' must be an array.")
            nodes.append(
                ParallelGroup(
                    steps=[
                        _step_from_payload(member, f"Step {index}.{position}")
                        for position, member in enumerate(members, start=1)
                    ]
                )
            )
            continue
        nodes.append(StepNode(step=_step_from_payload(entry, f"Step {index}")))
    return ChainDefinition(variables=variables, nodes=nodes)


__all__ = [
    "ALWAYS",
    "Always",
    "ChainDefinition",
    "Condition",
    "Custom",
    "ExecutionNode",
    "FallbackSpec",
    "KeyContains",
    "KeyEquals",
    "ParallelGroup",
    "PromptSource",
    "RawSource",
    "StepMode",
    "StepNode",
    "StepSpec",
    "StoredSource",
    "chain_definition_from_payload",
    "coerce_source",
]
