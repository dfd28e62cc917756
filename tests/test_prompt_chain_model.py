"""Prompt chain model helper tests.

Updates:
  v0.2.0 - 2026-09-18 - Cover fallback provider overrides in chain payloads.
  v0.1.0 - 2026-09-12 - Cover chain_definition_from_payload parsing and validation cases.
"""

from __future__ import annotations

import pytest

from models.prompt_chain_model import (
    Custom,
    KeyContains,
    KeyEquals,
    ParallelGroup,
    RawSource,
    StepMode,
    StepNode,
    StepSpec,
    StoredSource,
    chain_definition_from_payload,
)
from models.prompt_model import ChainRecord, PromptRecord, PromptSchema


def test_chain_definition_maps_conditions_and_fallbacks() -> None:
    """Step objects become nodes with conditions, fallbacks, and modes."""

    payload = {
        "vars": {"text": "I love it", "limit": 3},
        "steps": [
            {"id": "sentiment", "prompt": "Sentiment Classifier", "provider": "openai"},
            {
                "id": "reply",
                "template": "Thank them for: {{text}}",
                "provider": "openai",
                "mode": "chat",
                "if": {"variable": "sentiment", "equals": "positive", "ignore_case": True},
                "on_error": {"template": "Thanks!", "provider": "backup"},
            },
            {
                "parallel": [
                    {"id": "a", "template": "A", "provider": "p"},
                    {
                        "id": "b",
                        "prompt": "Bee",
                        "if": {"variable": "text", "contains": "love"},
                    },
                ]
            },
        ],
    }

    definition = chain_definition_from_payload(payload)

    assert definition.variables == {"text": "I love it", "limit": "3"}
    first, second, group = definition.nodes
    assert isinstance(first, StepNode)
    assert first.step.source == StoredSource("Sentiment Classifier")
    assert first.step.condition is None
    assert isinstance(second, StepNode)
    assert second.step.mode is StepMode.CHAT
    assert second.step.source == RawSource("Thank them for: {{text}}")
    assert second.step.condition == KeyEquals("sentiment", "positive", ignore_case=True)
    assert second.step.fallback is not None
    assert second.step.fallback.source == RawSource("Thanks!")
    assert second.step.fallback.provider_id == "backup"
    assert isinstance(group, ParallelGroup)
    assert [step.output_key for step in group.steps] == ["a", "b"]
    assert group.steps[1].condition == KeyContains("text", "love")
    assert group.steps[1].provider_id is None


@pytest.mark.parametrize(
    "payload",
    [
        {"steps": [{"prompt": "x"}]},
        {"steps": [{"id": "a"}]},
        {"steps": [{"id": "a", "prompt": "x", "template": "y"}]},
        {"steps": [{"id": "a", "prompt": "x", "if": {"variable": "v"}}]},
        {"steps": [{"id": "a", "prompt": "x", "mode": "stream"}]},
        {"steps": [{"parallel": "nope"}]},
        {"steps": "nope"},
        {"vars": ["a"]},
    ],
)
def test_chain_definition_rejects_malformed_payloads(payload: dict) -> None:
    with pytest.raises(ValueError):
        chain_definition_from_payload(payload)


def test_empty_payload_yields_empty_definition() -> None:
    definition = chain_definition_from_payload({})
    assert definition.variables == {}
    assert definition.nodes == []


def test_conditions_treat_missing_variables_as_false() -> None:
    assert not KeyEquals("missing", "x").evaluate({})
    assert not KeyContains("missing", "x").evaluate({})
    assert KeyEquals("k", "Yes", ignore_case=True).evaluate({"k": " yes "})
    assert not KeyEquals("k", "Yes").evaluate({"k": "yes"})
    assert KeyContains("k", "NEG", ignore_case=True).evaluate({"k": "negative"})
    assert Custom(lambda ctx: len(ctx) == 1).evaluate({"k": "v"})


def test_step_spec_requires_output_key_and_coerces_sources() -> None:
    with pytest.raises(ValueError):
        StepSpec(output_key=" ", source="x")
    step = StepSpec(output_key="out", source="Stored title")  # type: ignore[arg-type]
    assert step.source == StoredSource("Stored title")
    assert step.should_run({})


def test_prompt_record_serialisation() -> None:
    record = PromptRecord(
        id="abc12345",
        title="T",
        content="C",
        tags={"b", "a"},
        schema=PromptSchema(inputs={"type": "object"}),
    )
    payload = record.to_record()
    assert payload["tags"] == ["a", "b"]
    assert payload["schema"] == {"inputs": {"type": "object"}}
    assert PromptRecord.from_record(payload) == record
    assert "schema" not in PromptRecord(id="x", title="t", content="c").to_record()
    assert PromptRecord(id="team::chain1/2", title="t", content="c").chain_id == "chain1"


def test_record_parsers_reject_bad_payloads() -> None:
    with pytest.raises(ValueError):
        PromptRecord.from_record({"id": "x", "title": "t"})
    with pytest.raises(ValueError):
        PromptRecord.from_record({"id": "x", "title": "t", "content": "c", "tags": "a"})
    with pytest.raises(ValueError):
        ChainRecord.from_record({"id": 1, "title": "t"})
