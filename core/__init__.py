"""Core service layer for the prompt store.

Updates:
  v0.3.0 - 2026-09-21 - Export PromptStore facade and prompt runner.
  v0.2.0 - 2026-09-12 - Export chain builder, executor, and provider registry.
  v0.1.0 - 2026-08-28 - Surface PromptRepository, KeyManager, and the error taxonomy.
"""

from .crypto import RecordCipher
from .exceptions import (
    AmbiguousIdError,
    AmbiguousTitleError,
    BackupNotFoundError,
    ConfigurationError,
    CryptoError,
    PromptNotFoundError,
    PromptStoreError,
    ProviderError,
    SchemaValidationError,
    SerializationError,
    StorageIOError,
    StoreError,
    StoreInitError,
)
from .execution import (
    ChainBuilder,
    ChainExecutor,
    ParallelGroupHandle,
    PromptRunner,
    RunState,
    StepHandle,
    load_chain_definition,
)
from .key_manager import KeyManager
from .providers import (
    LiteLLMProvider,
    ProviderHandle,
    ProviderRegistry,
    build_provider_registry,
)
from .repository import PromptRepository
from .store import PromptStore
from .templating import (
    SchemaValidationResult,
    SchemaValidator,
    TemplateRenderer,
    extract_variables,
    render_template,
)

__all__ = [
    "AmbiguousIdError",
    "AmbiguousTitleError",
    "BackupNotFoundError",
    "ChainBuilder",
    "ChainExecutor",
    "ConfigurationError",
    "CryptoError",
    "KeyManager",
    "LiteLLMProvider",
    "ParallelGroupHandle",
    "PromptNotFoundError",
    "PromptRepository",
    "PromptRunner",
    "PromptStore",
    "PromptStoreError",
    "ProviderError",
    "ProviderHandle",
    "ProviderRegistry",
    "RecordCipher",
    "RunState",
    "SchemaValidationError",
    "SchemaValidationResult",
    "SchemaValidator",
    "SerializationError",
    "StepHandle",
    "StorageIOError",
    "StoreError",
    "StoreInitError",
    "TemplateRenderer",
    "build_provider_registry",
    "extract_variables",
    "load_chain_definition",
    "render_template",
]
