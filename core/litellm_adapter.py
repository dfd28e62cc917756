"""Shared LiteLLM adapters for prompt store providers.

Updates:
  v0.2.1 - 2026-10-19 - Also retry on BadRequestError and UnsupportedParamsError.
  v0.2.0 - 2026-09-19 - Extract completion text from LiteLLM response objects.
  v0.1.1 - 2026-09-17 - Retry completion calls without parameters a model rejects.
  v0.1.0 - 2026-09-16 - Import LiteLLM lazily and raise actionable errors when missing.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger("prompt_store.litellm")


class LiteLLMNotInstalledError(RuntimeError):
    """Raised when LiteLLM is not available in the current environment."""


ExceptionTypes = type[Exception] | tuple[type[Exception], ...]

_RETRYABLE_EXCEPTION_NAMES = ("BadRequestError", "UnsupportedParamsError", "APIError")

_completion: Callable[..., object] | None = None
_LiteLLMException: ExceptionTypes = Exception


def _ensure_loaded() -> None:
    """Import LiteLLM on first use; importing it is slow."""

    global _completion, _LiteLLMException
    if _completion is not None:
        return
    try:  # pragma: no cover - runtime import path
        litellm = importlib.import_module("litellm")
    except ImportError as exc:
        raise LiteLLMNotInstalledError(
            "LiteLLM providers require the 'litellm' package. "
            "Install it with `pip install litellm`."
        ) from exc

    completion = getattr(litellm, "completion", None)
    if completion is None:
        raise RuntimeError("litellm completion API is unavailable in the installed version.")
    exceptions_module = importlib.import_module("litellm.exceptions")
    _completion = completion
    retryable: list[type[Exception]] = []
    for name in _RETRYABLE_EXCEPTION_NAMES:
        candidate = getattr(exceptions_module, name, None)
        if isinstance(candidate, type) and issubclass(candidate, Exception):
            retryable.append(candidate)
    _LiteLLMException = tuple(retryable) or Exception


def get_completion() -> tuple[Callable[..., object], ExceptionTypes]:
    """Return the LiteLLM completion callable and the exception types that may be retried."""

    _ensure_loaded()
    assert _completion is not None  # pragma: no cover
    return _completion, _LiteLLMException


def call_completion_with_fallback(
    request: dict[str, object],
    completion: Callable[..., object],
    lite_llm_exception: ExceptionTypes,
    *,
    drop_candidates: Iterable[str] | None = None,
) -> object:
    """Invoke LiteLLM completion and retry once without unsupported params."""

    try:
        return completion(**request)
    except lite_llm_exception as exc:
        unsupported = _detect_unsupported_parameters(str(exc), request.keys(), drop_candidates)
        if not unsupported:
            raise
        trimmed_request = {key: value for key, value in request.items() if key not in unsupported}
        logger.info(
            "LiteLLM model rejected parameters %s; retrying request without them.",
            ", ".join(sorted(unsupported)),
        )
        return completion(**trimmed_request)


def _detect_unsupported_parameters(
    message: str,
    parameters: Iterable[str],
    drop_candidates: Iterable[str] | None = None,
) -> set[str]:
    lowered = message.lower()
    indicators = (
        "not support",
        "unsupported",
        "not allowed",
        "unexpected",
        "unknown",
    )
    if not any(token in lowered for token in indicators):
        return set()

    candidates = set(drop_candidates or {"max_tokens", "temperature", "timeout"})
    unsupported: set[str] = set()
    for key in parameters:
        if key not in candidates:
            continue
        key_forms = (key, key.replace("_", " "), key.replace("_", "-"))
        if any(form in lowered for form in key_forms):
            unsupported.add(key)
    return unsupported


def _get(container: Any, name: str) -> Any:
    if isinstance(container, Mapping):
        return container.get(name)
    return getattr(container, name, None)


def extract_completion_text(response: object) -> str:
    """Return the first choice's message text from a LiteLLM response.

    Raises:
        ValueError: If the response carries no textual content.
    """
    choices = _get(response, "choices")
    if not choices:
        raise ValueError("Completion response contained no choices.")
    first = choices[0]
    message = _get(first, "message")
    content = _get(message, "content") if message is not None else _get(first, "text")
    if not isinstance(content, str):
        raise ValueError("Completion response contained no text content.")
    return content


__all__ = [
    "LiteLLMNotInstalledError",
    "call_completion_with_fallback",
    "extract_completion_text",
    "get_completion",
]
