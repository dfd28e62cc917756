"""Settings management utilities for prompt store configuration.

Updates:
  v0.3.0 - 2026-09-19 - Add per-provider LiteLLM settings keyed by provider id.
  v0.2.0 - 2026-09-12 - Read .env values and JSON config files; ignore secrets in files.
  v0.1.0 - 2026-08-28 - Introduce store location and key path settings.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

logger = logging.getLogger("prompt_store.settings")

DEFAULT_BASE_DIR = Path("~") / ".prompt-store"
DEFAULT_WORKSPACE = "default"
_DOTENV_FALLBACK_PATH = ".env"
_SECRET_FILE_KEYS = frozenset({"password", "PROMPT_STORE_PASSWORD"})


def _read_dotenv_values() -> dict[str, str]:
    """Load ``.env`` entries into a mapping without mutating ``os.environ``."""
    env_file_override = os.getenv("PROMPT_STORE_ENV_FILE")
    if env_file_override is not None:
        candidate = env_file_override.strip()
        if not candidate:
            return {}
        path = Path(candidate).expanduser()
    else:
        path = Path(_DOTENV_FALLBACK_PATH).expanduser()
    if not path.is_file():
        return {}
    raw_values = dotenv_values(str(path))
    return {str(key): str(value) for key, value in raw_values.items() if value is not None}


class SettingsError(Exception):
    """Raised when prompt store configuration cannot be loaded or validated."""


class ProviderSettings(BaseModel):
    """Connection details for one named text-generation provider."""

    backend: str = Field(default="litellm", description="Provider backend identifier.")
    model: str = Field(description="LiteLLM model name, e.g. 'gpt-4o-mini'.")
    api_key_env: str | None = Field(
        default=None,
        description="Environment variable holding the API key.",
    )
    api_base: str | None = Field(default=None, description="Optional API base URL override.")
    api_version: str | None = Field(default=None, description="Optional API version (Azure).")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_output_tokens: int | None = Field(default=None, gt=0)
    timeout_seconds: float | None = Field(default=None, gt=0)

    @field_validator("backend", mode="before")
    @classmethod
    def _normalise_backend(cls, value: object) -> str:
        text = str(value or "litellm").strip().lower()
        if text != "litellm":
            raise ValueError(f"Unsupported provider backend '{value}'.")
        return text

    @field_validator("model", mode="before")
    @classmethod
    def _require_model(cls, value: object) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("Provider model must not be empty.")
        return text

    @field_validator("api_key_env", "api_base", "api_version", mode="before")
    @classmethod
    def _strip_strings(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = str(value).strip()
        return stripped or None


class PromptStoreSettings(BaseSettings):
    """Application configuration sourced from environment variables or JSON files."""

    base_dir: Path = Field(default=DEFAULT_BASE_DIR, description="Root of the on-disk store.")
    key_path: Path | None = Field(
        default=None,
        description="Master key file; defaults to <base_dir>/keys/key.bin.",
    )
    password: str | None = Field(
        default=None,
        description="Password used to unlock a wrapped master key.",
        repr=False,
    )
    default_workspace: str = Field(default=DEFAULT_WORKSPACE)
    providers: dict[str, ProviderSettings] = Field(default_factory=dict)
    litellm_logging: bool = Field(
        default=False,
        description="Emit LiteLLM library logs instead of silencing them.",
    )
    logging_config: Path | None = Field(
        default=None,
        description="Optional logging.conf passed to logging.config.fileConfig.",
    )

    model_config = cast(
        "SettingsConfigDict",
        {
            "env_prefix": "PROMPT_STORE_",
            "case_sensitive": False,
            "extra": "ignore",
        },
    )

    @field_validator("base_dir", mode="before")
    @classmethod
    def _normalise_base_dir(cls, value: Any) -> Path:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_BASE_DIR.expanduser()
        return Path(str(value)).expanduser()

    @field_validator("key_path", "logging_config", mode="before")
    @classmethod
    def _normalise_path(cls, value: Any) -> Path | None:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return Path(str(value)).expanduser()

    @field_validator("default_workspace", mode="before")
    @classmethod
    def _normalise_workspace(cls, value: str | None) -> str:
        text = str(value or "").strip()
        return text or DEFAULT_WORKSPACE

    @field_validator("password", mode="before")
    @classmethod
    def _blank_password(cls, value: str | None) -> str | None:
        if value is None or not str(value):
            return None
        return str(value)

    @field_validator("providers", mode="before")
    @classmethod
    def _parse_providers(cls, value: object) -> object:
        if value is None:
            return {}
        if isinstance(value, str):
            if not value.strip():
                return {}
            try:
                value = json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError("providers must be a JSON object") from exc
        if not isinstance(value, Mapping):
            raise ValueError("providers must be a mapping of provider id to settings")
        return dict(value)

    @model_validator(mode="after")
    def _default_key_path(self) -> PromptStoreSettings:
        self.base_dir = self.base_dir.expanduser()
        if self.key_path is None:
            self.key_path = self.base_dir / "keys" / "key.bin"
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Return settings sources in priority order.

        1. Explicit keyword arguments.
        2. JSON configuration file.
        3. Environment variables, then ``.env`` values.
        4. File secrets.
        """

        def env_with_dotenv(_: BaseSettings | None = None) -> dict[str, Any]:
            data: dict[str, Any] = {}
            config_dict = cast("dict[str, Any]", cls.model_config)
            prefix = str(config_dict.get("env_prefix", ""))
            dotenv_data = _read_dotenv_values()

            def _lookup(candidate: str) -> str | None:
                value = os.getenv(candidate)
                if value is None:
                    value = dotenv_data.get(candidate)
                if value is None:
                    return None
                stripped_value = str(value).strip()
                return stripped_value or None

            for field in (
                "base_dir",
                "key_path",
                "password",
                "default_workspace",
                "providers",
                "litellm_logging",
                "logging_config",
            ):
                value = _lookup(f"{prefix}{field.upper()}")
                if value is not None:
                    data[field] = value
            return data

        return (
            init_settings,
            cls._json_config_settings_source(settings_cls),
            cast("PydanticBaseSettingsSource", env_with_dotenv),
            file_secret_settings,
        )

    @classmethod
    def _json_config_settings_source(
        cls,
        _: type[BaseSettings],
    ) -> PydanticBaseSettingsSource:
        """Return settings extracted from an optional JSON config file."""

        def _loader(_: BaseSettings | None = None) -> dict[str, Any]:
            explicit_path = os.getenv("PROMPT_STORE_CONFIG_JSON")
            candidates: list[Path] = []
            if explicit_path:
                candidates.append(Path(explicit_path).expanduser())
            candidates.append(Path("config") / "config.json")

            for path in candidates:
                if not path.exists():
                    if explicit_path and path == candidates[0]:
                        raise SettingsError(f"Configuration file not found: {path}")
                    continue
                try:
                    raw_contents = path.read_text(encoding="utf-8")
                except OSError as exc:  # pragma: no cover - filesystem failure is env-specific
                    raise SettingsError(f"Unable to read configuration file: {path}") from exc
                try:
                    data = json.loads(raw_contents)
                except json.JSONDecodeError as exc:
                    raise SettingsError(f"Invalid JSON in configuration file: {path}") from exc
                if not isinstance(data, dict):
                    raise SettingsError(f"Configuration file {path} must contain a JSON object")
                data_dict: dict[str, Any] = {str(key): value for key, value in data.items()}
                removed_secrets = [
                    key
                    for key in sorted(_SECRET_FILE_KEYS)
                    if data_dict.pop(key, None) is not None
                ]
                if removed_secrets:
                    logger.warning(
                        "Ignoring secret key(s) %s in configuration file %s; "
                        "set credentials via environment variables instead.",
                        ", ".join(removed_secrets),
                        path,
                    )
                return {
                    key: data_dict[key]
                    for key in (
                        "base_dir",
                        "key_path",
                        "default_workspace",
                        "providers",
                        "litellm_logging",
                        "logging_config",
                    )
                    if key in data_dict
                }
            return {}

        return cast("PydanticBaseSettingsSource", _loader)


def load_settings(**overrides: Any) -> PromptStoreSettings:
    """Return validated settings, raising SettingsError on failure."""
    try:
        return PromptStoreSettings(**overrides)
    except SettingsError:
        raise
    except ValidationError as exc:
        raise SettingsError("Invalid prompt store configuration") from exc


__all__ = [
    "DEFAULT_BASE_DIR",
    "DEFAULT_WORKSPACE",
    "PromptStoreSettings",
    "ProviderSettings",
    "SettingsError",
    "load_settings",
]
