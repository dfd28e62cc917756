"""Tests for configuration loading and validation logic.

Updates:
  v0.2.0 - 2026-09-19 - Cover provider settings parsed from JSON and environment.
  v0.1.1 - 2026-09-12 - Warn and ignore passwords supplied via JSON configuration.
  v0.1.0 - 2026-08-28 - Cover defaults, env prefix, and .env precedence.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from pytest import LogCaptureFixture, MonkeyPatch

from config import (
    PromptStoreSettings,
    SettingsError,
    configure_litellm_logging,
    load_settings,
    setup_logging,
)

_ENV_VARS = (
    "PROMPT_STORE_BASE_DIR",
    "PROMPT_STORE_KEY_PATH",
    "PROMPT_STORE_PASSWORD",
    "PROMPT_STORE_DEFAULT_WORKSPACE",
    "PROMPT_STORE_PROVIDERS",
    "PROMPT_STORE_LITELLM_LOGGING",
    "PROMPT_STORE_LOGGING_CONFIG",
    "PROMPT_STORE_CONFIG_JSON",
    "PROMPT_STORE_ENV_FILE",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults_derive_key_path_from_base_dir(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    """Fall back to the home store and place the key under it."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    settings = load_settings()
    assert settings.base_dir == tmp_path / "home" / ".prompt-store"
    assert settings.key_path == settings.base_dir / "keys" / "key.bin"
    assert settings.default_workspace == "default"
    assert settings.providers == {}
    assert settings.password is None


def test_environment_prefix_configures_store(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    """Read PROMPT_STORE_* variables."""
    monkeypatch.setenv("PROMPT_STORE_BASE_DIR", str(tmp_path / "vault"))
    monkeypatch.setenv("PROMPT_STORE_PASSWORD", "hunter2")
    monkeypatch.setenv("PROMPT_STORE_DEFAULT_WORKSPACE", " team ")
    monkeypatch.setenv("PROMPT_STORE_LITELLM_LOGGING", "true")

    settings = load_settings()

    assert settings.base_dir == tmp_path / "vault"
    assert settings.key_path == tmp_path / "vault" / "keys" / "key.bin"
    assert settings.password == "hunter2"
    assert settings.default_workspace == "team"
    assert settings.litellm_logging is True
    assert "hunter2" not in repr(settings)


def test_json_config_is_loaded_and_env_overrides_it(
    monkeypatch: MonkeyPatch,
    tmp_path: Path,
) -> None:
    """Prefer JSON values over environment values, keyword overrides over both."""
    config_path = tmp_path / "settings.json"
    config_path.write_text(
        json.dumps({"base_dir": str(tmp_path / "from_json"), "default_workspace": "json"}),
        encoding="utf-8",
    )
    monkeypatch.setenv("PROMPT_STORE_CONFIG_JSON", str(config_path))
    monkeypatch.setenv("PROMPT_STORE_DEFAULT_WORKSPACE", "env")
    monkeypatch.setenv("PROMPT_STORE_KEY_PATH", str(tmp_path / "env.key"))

    settings = load_settings()
    assert settings.base_dir == tmp_path / "from_json"
    assert settings.default_workspace == "json"
    assert settings.key_path == tmp_path / "env.key"

    overridden = load_settings(default_workspace="kwarg")
    assert overridden.default_workspace == "kwarg"


def test_default_config_json_location(tmp_path: Path) -> None:
    """Pick up config/config.json relative to the working directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "config.json").write_text(
        json.dumps({"base_dir": str(tmp_path / "local")}),
        encoding="utf-8",
    )
    assert load_settings().base_dir == tmp_path / "local"


def test_json_config_password_is_ignored(
    monkeypatch: MonkeyPatch,
    tmp_path: Path,
    caplog: LogCaptureFixture,
) -> None:
    """Never read passwords from configuration files."""
    config_path = tmp_path / "settings.json"
    config_path.write_text(json.dumps({"password": "in-file"}), encoding="utf-8")
    monkeypatch.setenv("PROMPT_STORE_CONFIG_JSON", str(config_path))

    with caplog.at_level(logging.WARNING, logger="prompt_store.settings"):
        settings = load_settings()

    assert settings.password is None
    assert "Ignoring secret key(s) password" in caplog.text


def test_missing_explicit_config_file_raises(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PROMPT_STORE_CONFIG_JSON", str(tmp_path / "absent.json"))
    with pytest.raises(SettingsError, match="not found"):
        load_settings()


def test_invalid_json_config_raises(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    config_path = tmp_path / "broken.json"
    config_path.write_text("{", encoding="utf-8")
    monkeypatch.setenv("PROMPT_STORE_CONFIG_JSON", str(config_path))
    with pytest.raises(SettingsError, match="Invalid JSON"):
        load_settings()


def test_dotenv_values_fill_missing_environment(
    monkeypatch: MonkeyPatch,
    tmp_path: Path,
) -> None:
    """Read .env files without letting them shadow real environment variables."""
    env_file = tmp_path / "custom.env"
    env_file.write_text(
        "PROMPT_STORE_PASSWORD=from-dotenv\nPROMPT_STORE_DEFAULT_WORKSPACE=dotenv\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("PROMPT_STORE_ENV_FILE", str(env_file))
    monkeypatch.setenv("PROMPT_STORE_DEFAULT_WORKSPACE", "real-env")

    settings = load_settings()

    assert settings.password == "from-dotenv"
    assert settings.default_workspace == "real-env"


def test_providers_parse_from_environment_json(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv(
        "PROMPT_STORE_PROVIDERS",
        json.dumps(
            {
                "openai": {"model": "gpt-4o-mini", "api_key_env": "OPENAI_API_KEY"},
                "local": {"model": "ollama/llama3", "api_base": " http://localhost:11434 "},
            }
        ),
    )

    settings = load_settings()

    assert sorted(settings.providers) == ["local", "openai"]
    assert settings.providers["openai"].api_key_env == "OPENAI_API_KEY"
    assert settings.providers["local"].api_base == "http://localhost:11434"
    assert settings.providers["local"].backend == "litellm"


@pytest.mark.parametrize(
    "providers",
    [
        "not json",
        {"bad": {"model": ""}},
        {"bad": {"model": "m", "temperature": 5}},
        {"bad": {"model": "m", "backend": "carrier-pigeon"}},
    ],
)
def test_invalid_provider_settings_raise(providers: object) -> None:
    with pytest.raises(SettingsError):
        load_settings(providers=providers)


def test_settings_class_accepts_keyword_paths(tmp_path: Path) -> None:
    settings = PromptStoreSettings(base_dir=str(tmp_path), key_path=str(tmp_path / "k.bin"))
    assert settings.key_path == tmp_path / "k.bin"


def test_setup_logging_falls_back_to_basic_config(tmp_path: Path) -> None:
    """Missing or broken logging.conf files must not raise."""
    setup_logging(tmp_path / "absent.conf")
    broken = tmp_path / "broken.conf"
    broken.write_text("[loggers]\nkeys=nope\n", encoding="utf-8")
    setup_logging(broken)


def test_configure_litellm_logging_toggles_loggers() -> None:
    configure_litellm_logging(False)
    assert logging.getLogger("litellm").disabled
    configure_litellm_logging(True)
    assert not logging.getLogger("litellm").disabled
