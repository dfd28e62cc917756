"""Common exception classes for the core package.

All exceptions ultimately inherit from :class:`PromptStoreError`, allowing
callers to catch a single base class for any store-related failure while
still distinguishing individual error categories when needed.

Repository and key-manager failures derive from :class:`StoreError`; failures
raised by text-generation providers derive from :class:`ProviderError`.

Updates:
  v0.3.0 - 2026-09-14 - Add schema validation and backup lookup errors.
  v0.2.0 - 2026-09-02 - Split provider failures from store failures.
  v0.1.0 - 2026-08-28 - Created module with the store error taxonomy.
"""

from __future__ import annotations


class PromptStoreError(Exception):
    """Base exception for prompt store failures."""


# ---------------------------------------------------------------------------
# Store errors (repository, key management, configuration)
# ---------------------------------------------------------------------------


class StoreError(PromptStoreError):
    """Base class for repository and key manager failures."""


class StoreInitError(StoreError):
    """Raised when the store directories or key cannot be initialised."""


class PromptNotFoundError(StoreError):
    """Raised when a prompt or chain cannot be located by id or title."""


class BackupNotFoundError(PromptNotFoundError):
    """Raised when a record has no backups or the requested backup is missing."""


class AmbiguousIdError(StoreError):
    """Raised when an id resolves to both a prompt and a chain."""


class AmbiguousTitleError(StoreError):
    """Raised when a title matches more than one prompt."""


class ConfigurationError(StoreError):
    """Raised when the API is used with a missing or unknown provider configuration."""


class CryptoError(StoreError):
    """Raised when encryption, decryption, or key derivation fails."""


class StorageIOError(StoreError):
    """Raised when reading or writing store files fails."""


class SerializationError(StoreError):
    """Raised when a decrypted record is not valid JSON for its model."""


class SchemaValidationError(StoreError):
    """Raised when template variables do not satisfy a prompt's input schema."""


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------


class ProviderError(PromptStoreError):
    """Raised when a text-generation provider fails to produce a response."""


__all__ = [
    "AmbiguousIdError",
    "AmbiguousTitleError",
    "BackupNotFoundError",
    "ConfigurationError",
    "CryptoError",
    "PromptNotFoundError",
    "PromptStoreError",
    "ProviderError",
    "SchemaValidationError",
    "SerializationError",
    "StorageIOError",
    "StoreError",
    "StoreInitError",
]
