"""High-level facade wiring settings, keys, repository, and providers together.

Updates:
  v0.2.1 - 2026-10-19 - Apply logging_config and default_workspace settings on open.
  v0.2.0 - 2026-09-21 - Add non-interactive unlock and key rotation entry points.
  v0.1.0 - 2026-09-12 - Introduce PromptStore.open.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from config.runtime import configure_litellm_logging, setup_logging
from config.settings import PromptStoreSettings, load_settings

from .execution import ChainBuilder, PromptRunner, load_chain_definition
from .key_manager import KeyManager, PasswordPrompt
from .providers import ProviderRegistry, build_provider_registry
from .repository import PromptRepository

if TYPE_CHECKING:  # pragma: no cover - typing helpers
    from models.prompt_model import PromptRecord

logger = logging.getLogger("prompt_store.store")


class PromptStore:
    """Entry point for applications embedding the prompt store."""

    def __init__(
        self,
        settings: PromptStoreSettings,
        key_manager: KeyManager,
        repository: PromptRepository,
        registry: ProviderRegistry,
    ) -> None:
        self._settings = settings
        self._key_manager = key_manager
        self._repository = repository
        self._registry = registry

    @classmethod
    def open(
        cls,
        settings: PromptStoreSettings | None = None,
        *,
        password: str | None = None,
        password_prompt: PasswordPrompt | None = None,
        registry: ProviderRegistry | None = None,
        create_key: bool = True,
    ) -> PromptStore:
        """Load (or create) the master key and open the repository.

        Args:
            settings: Store settings; loaded from the environment when omitted.
            password: Password for a wrapped key; ``settings.password`` is used
                when omitted, then the interactive prompt.
            password_prompt: Callable used to ask for a password.
            registry: Provider registry; built from ``settings.providers`` when omitted.
            create_key: Generate a key when the key file is missing.
        """
        resolved = settings or load_settings()
        if resolved.logging_config is not None:
            setup_logging(resolved.logging_config)
        configure_litellm_logging(resolved.litellm_logging)
        key_path = resolved.key_path or Path(resolved.base_dir) / "keys" / "key.bin"
        key_manager = KeyManager(key_path, password_prompt=password_prompt)
        key_manager.load_or_generate(
            password if password is not None else resolved.password,
            create=create_key,
        )
        repository = PromptRepository(
            resolved.base_dir,
            key_manager.cipher,
            default_workspace=resolved.default_workspace,
        )
        providers = registry if registry is not None else build_provider_registry(resolved)
        logger.info(
            "Prompt store opened",
            extra={
                "base_dir": str(resolved.base_dir),
                "password_protected": key_manager.is_password_protected,
                "providers": list(providers),
            },
        )
        return cls(resolved, key_manager, repository, providers)

    @classmethod
    def with_password(
        cls,
        password: str,
        settings: PromptStoreSettings | None = None,
        *,
        registry: ProviderRegistry | None = None,
    ) -> PromptStore:
        """Unlock an existing store without prompting; a missing key file is an error."""

        def _no_prompt(_: str) -> str:
            return ""

        return cls.open(
            settings,
            password=password,
            password_prompt=_no_prompt,
            registry=registry,
            create_key=False,
        )

    @property
    def settings(self) -> PromptStoreSettings:
        return self._settings

    @property
    def repository(self) -> PromptRepository:
        return self._repository

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def key_manager(self) -> KeyManager:
        return self._key_manager

    def prompt(self, id_or_title: str) -> PromptRecord:
        """Return the prompt addressed by id or unique title."""
        return self._repository.find(id_or_title)

    def chain(self, variables: dict[str, Any] | None = None) -> ChainBuilder:
        """Return a new chain builder bound to this store."""
        builder = ChainBuilder(self._repository, self._registry)
        if variables:
            builder.set_variables(variables)
        return builder

    def chain_from_file(self, path: str | Path) -> ChainBuilder:
        """Return a builder for a JSON or YAML chain definition file."""
        definition = load_chain_definition(path)
        return ChainBuilder.from_definition(definition, self._repository, self._registry)

    def stored_chain(self, chain_id: str, provider_id: str) -> ChainBuilder:
        """Return a sequential builder for the stored chain *chain_id*."""
        return ChainBuilder.for_stored_chain(
            self._repository, self._registry, chain_id, provider_id
        )

    def runner(self) -> PromptRunner:
        return PromptRunner(self._repository, self._registry)

    def rotate_key(self, new_password: str | None = None) -> None:
        """Re-encrypt the whole store under a fresh master key.

        No chain may run while rotation is in progress.
        """
        self._key_manager.rotate(self._repository, new_password)


__all__ = ["PromptStore"]
