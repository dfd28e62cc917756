"""Provider handles and the registry the chain executor dispatches through.

Updates:
  v0.2.1 - 2026-10-19 - Resolve API keys on first use so one unset key cannot block opening a store.
  v0.2.0 - 2026-09-19 - Build LiteLLM provider handles from settings.
  v0.1.0 - 2026-09-04 - Add ProviderHandle protocol and in-memory registry.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
from collections.abc import Awaitable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from .exceptions import ConfigurationError, PromptStoreError, ProviderError
from .litellm_adapter import (
    LiteLLMNotInstalledError,
    call_completion_with_fallback,
    extract_completion_text,
    get_completion,
)

if TYPE_CHECKING:  # pragma: no cover - typing helpers
    from config.settings import PromptStoreSettings, ProviderSettings

logger = logging.getLogger("prompt_store.providers")

ChatMessage = Mapping[str, str]


@runtime_checkable
class ProviderHandle(Protocol):
    """Anything that turns chat messages into text, synchronously or not."""

    def chat(self, messages: Sequence[ChatMessage]) -> str | Awaitable[str]:
        ...


class ProviderRegistry:
    """Map provider ids to provider handles."""

    def __init__(self, providers: Mapping[str, ProviderHandle] | None = None) -> None:
        self._providers: dict[str, ProviderHandle] = dict(providers or {})

    def register(self, provider_id: str, handle: ProviderHandle) -> None:
        """Bind *handle* to *provider_id*, replacing any previous binding."""
        if not provider_id.strip():
            raise ValueError("Provider id must not be empty.")
        self._providers[provider_id] = handle

    def get(self, provider_id: str) -> ProviderHandle | None:
        return self._providers.get(provider_id)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._providers))

    def __len__(self) -> int:
        return len(self._providers)


@dataclass(slots=True)
class LiteLLMProvider:
    """Provider handle that forwards chat messages to ``litellm.completion``."""

    provider_id: str
    model: str
    api_key: str | None = None
    api_key_env: str | None = None
    api_base: str | None = None
    api_version: str | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    timeout_seconds: float | None = None

    def _resolve_api_key(self) -> str | None:
        """Return the explicit key, else the value of ``api_key_env``.

        Raises:
            ConfigurationError: If ``api_key_env`` names an unset variable.
        """
        if self.api_key or not self.api_key_env:
            return self.api_key
        api_key = os.getenv(self.api_key_env)
        if not api_key:
            raise ConfigurationError(
                f"Environment variable '{self.api_key_env}' for provider "
                f"'{self.provider_id}' is not set"
            )
        return api_key

    def _build_request(self, messages: Sequence[ChatMessage]) -> dict[str, object]:
        request: dict[str, object] = {
            "model": self.model,
            "messages": [dict(message) for message in messages],
        }
        api_key = self._resolve_api_key()
        if api_key:
            request["api_key"] = api_key
        if self.api_base:
            request["api_base"] = self.api_base
        if self.api_version:
            request["api_version"] = self.api_version
        if self.temperature is not None:
            request["temperature"] = self.temperature
        if self.max_output_tokens is not None:
            request["max_tokens"] = self.max_output_tokens
        if self.timeout_seconds is not None:
            request["timeout"] = self.timeout_seconds
        return request

    def _complete(self, messages: Sequence[ChatMessage]) -> str:
        request = self._build_request(messages)
        try:
            completion, lite_llm_exception = get_completion()
        except LiteLLMNotInstalledError as exc:
            raise ProviderError(str(exc)) from exc
        try:
            response = call_completion_with_fallback(request, completion, lite_llm_exception)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Provider request failed",
                extra={"provider_id": self.provider_id, "model": self.model, "error": str(exc)},
            )
            raise ProviderError(f"Provider '{self.provider_id}' failed: {exc}") from exc
        try:
            return extract_completion_text(response)
        except ValueError as exc:
            raise ProviderError(f"Provider '{self.provider_id}' returned no text: {exc}") from exc

    async def chat(self, messages: Sequence[ChatMessage]) -> str:
        """Run the blocking LiteLLM call in a worker thread."""
        return await asyncio.to_thread(self._complete, messages)

    @classmethod
    def from_settings(cls, provider_id: str, settings: ProviderSettings) -> LiteLLMProvider:
        """Return a provider for *settings*; the API key is read when the provider is called."""
        return cls(
            provider_id=provider_id,
            model=settings.model,
            api_key_env=settings.api_key_env,
            api_base=settings.api_base,
            api_version=settings.api_version,
            temperature=settings.temperature,
            max_output_tokens=settings.max_output_tokens,
            timeout_seconds=settings.timeout_seconds,
        )


def build_provider_registry(settings: PromptStoreSettings) -> ProviderRegistry:
    """Return a registry populated from ``settings.providers``."""
    registry = ProviderRegistry()
    for provider_id, provider_settings in settings.providers.items():
        provider = LiteLLMProvider.from_settings(provider_id, provider_settings)
        registry.register(provider_id, provider)
        logger.debug(
            "Registered provider",
            extra={"provider_id": provider_id, "model": provider_settings.model},
        )
    return registry


async def invoke_provider(handle: ProviderHandle, messages: Sequence[ChatMessage]) -> str:
    """Call ``handle.chat`` and await the result when it is awaitable.

    Store errors pass through unchanged; any other exception becomes
    :class:`ProviderError`.
    """
    try:
        result = handle.chat(messages)
        if inspect.isawaitable(result):
            result = await result
    except PromptStoreError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise ProviderError(str(exc) or exc.__class__.__name__) from exc
    if not isinstance(result, str):
        raise ProviderError(f"Provider returned {type(result).__name__}, expected str")
    return result


__all__ = [
    "ChatMessage",
    "LiteLLMProvider",
    "ProviderHandle",
    "ProviderRegistry",
    "build_provider_registry",
    "invoke_provider",
]
