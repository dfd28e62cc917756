"""Runtime boot helpers for logging configuration.

Updates:
  v0.1.1 - 2026-09-19 - Add LiteLLM logging toggle helper.
  v0.1.0 - 2026-09-12 - Extract logging configuration helpers.
"""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path

_LITELLM_LOGGER_NAMES = ("litellm", "LiteLLM", "LiteLLM Router", "LiteLLM Proxy")


def setup_logging(logging_conf_path: Path | None = None) -> None:
    """Configure logging using *logging_conf_path* when available."""
    path = logging_conf_path or Path("config/logging.conf")
    if path.exists():
        try:
            logging.config.fileConfig(path, disable_existing_loggers=False)
            return
        except (OSError, ValueError, KeyError, RuntimeError) as exc:
            logging.getLogger("prompt_store.runtime").warning(
                "Falling back to basic logging; unable to load %s: %s", path, exc
            )
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def configure_litellm_logging(enabled: bool) -> None:
    """Enable or disable upstream LiteLLM library logs."""
    for name in _LITELLM_LOGGER_NAMES:
        litellm_logger = logging.getLogger(name)
        litellm_logger.propagate = True
        if enabled:
            litellm_logger.disabled = False
            litellm_logger.setLevel(logging.NOTSET)
        else:
            litellm_logger.disabled = True
            litellm_logger.setLevel(logging.CRITICAL)


__all__ = ["configure_litellm_logging", "setup_logging"]
