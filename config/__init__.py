"""Configuration helpers for the prompt store.

Updates: v0.2.0 - 2026-09-19 - Expose provider settings and logging bootstrap helpers.
Updates: v0.1.0 - 2026-08-28 - Expose settings loader and configuration error types.
"""

from .runtime import configure_litellm_logging, setup_logging
from .settings import (
    DEFAULT_BASE_DIR,
    DEFAULT_WORKSPACE,
    PromptStoreSettings,
    ProviderSettings,
    SettingsError,
    load_settings,
)

__all__ = [
    "DEFAULT_BASE_DIR",
    "DEFAULT_WORKSPACE",
    "PromptStoreSettings",
    "ProviderSettings",
    "SettingsError",
    "configure_litellm_logging",
    "load_settings",
    "setup_logging",
]
