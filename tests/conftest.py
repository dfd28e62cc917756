"""Pytest configuration for shared store fixtures and fake providers.

Updates:
  v0.2.0 - 2026-09-18 - Add recording and failing provider fakes for chain tests.
  v0.1.0 - 2026-08-30 - Provide temporary repository and cipher fixtures.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from core.crypto import RecordCipher, generate_key
from core.providers import ProviderRegistry
from core.repository import PromptRepository


@dataclass
class RecordingProvider:
    """Async provider fake that records prompts and answers via *responder*."""

    responder: Callable[[str], str] | str = "ok"
    delay: float = 0.0
    prompts: list[str] = field(default_factory=list)

    async def chat(self, messages: Sequence[Mapping[str, str]]) -> str:
        prompt = messages[-1]["content"]
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if callable(self.responder):
            return self.responder(prompt)
        return self.responder


@dataclass
class SyncProvider:
    """Synchronous provider fake."""

    reply: str = "sync"
    prompts: list[str] = field(default_factory=list)

    def chat(self, messages: Sequence[Mapping[str, str]]) -> str:
        self.prompts.append(messages[-1]["content"])
        return self.reply


@dataclass
class FailingProvider:
    """Provider fake that always raises a foreign exception."""

    message: str = "backend down"
    calls: int = 0

    async def chat(self, messages: Sequence[Mapping[str, str]]) -> str:
        self.calls += 1
        raise RuntimeError(self.message)


@pytest.fixture()
def cipher() -> RecordCipher:
    return RecordCipher(generate_key())


@pytest.fixture()
def store_dir(tmp_path: Path) -> Path:
    return tmp_path / "store"


@pytest.fixture()
def repository(store_dir: Path, cipher: RecordCipher) -> PromptRepository:
    return PromptRepository(store_dir, cipher)


@pytest.fixture()
def registry() -> ProviderRegistry:
    return ProviderRegistry()


@pytest.fixture()
def recording_provider() -> Callable[..., RecordingProvider]:
    """Return a factory for :class:`RecordingProvider` instances."""

    def _factory(
        responder: Callable[[str], str] | str = "ok",
        delay: float = 0.0,
    ) -> RecordingProvider:
        return RecordingProvider(responder=responder, delay=delay)

    return _factory


@pytest.fixture()
def sync_provider() -> SyncProvider:
    return SyncProvider()


@pytest.fixture()
def failing_provider() -> FailingProvider:
    return FailingProvider()
