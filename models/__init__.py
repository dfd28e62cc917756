"""Data models for the prompt store.

Updates: v0.2.0 - 2026-09-12 - Export chain step graph and definition models.
Updates: v0.1.0 - 2026-08-28 - Export PromptRecord and ChainRecord dataclasses.
"""

from .prompt_chain_model import (
    ALWAYS,
    Always,
    ChainDefinition,
    Condition,
    Custom,
    ExecutionNode,
    FallbackSpec,
    KeyContains,
    KeyEquals,
    ParallelGroup,
    PromptSource,
    RawSource,
    StepMode,
    StepNode,
    StepSpec,
    StoredSource,
    chain_definition_from_payload,
)
from .prompt_model import ChainRecord, PromptRecord, PromptSchema, StoredChain

__all__ = [
    "ALWAYS",
    "Always",
    "ChainDefinition",
    "ChainRecord",
    "Condition",
    "Custom",
    "ExecutionNode",
    "FallbackSpec",
    "KeyContains",
    "KeyEquals",
    "ParallelGroup",
    "PromptRecord",
    "PromptSchema",
    "PromptSource",
    "RawSource",
    "StepMode",
    "StepNode",
    "StepSpec",
    "StoredChain",
    "StoredSource",
    "chain_definition_from_payload",
]
