"""Configuration manager for codefind using TOML files."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
import toml

from . import config
from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE = config.CONFIG_FILE

# Default configurations for each provider
DEFAULT_CONFIGS: Dict[str, Dict[str, str]] = {
    "openai": {
        "provider": "openai",
        "model": "gpt-4o-mini",
        "api_key": "",
        "endpoint": "https://api.openai.com/v1/chat/completions",
    },
    "openrouter": {
        "provider": "openrouter",
        "model": "openai/gpt-4o-mini",
        "api_key": "",
        "endpoint": "https://openrouter.ai/api/v1/chat/completions",
    },
    "groq": {
        "provider": "groq",
        "model": "llama-3.3-70b-versatile",
        "api_key": "",
        "endpoint": "https://api.groq.com/openai/v1/chat/completions",
    },
    "ollama": {
        "provider": "ollama",
        "model": "qwen2.5-coder:7b",
        "endpoint": "http://127.0.0.1:11434/api/chat",
    },
}

ALL_PROVIDERS = list(DEFAULT_CONFIGS)


@dataclass
class LLMSettings:
    provider: str = "openai"
    model: str = DEFAULT_CONFIGS["openai"]["model"]
    api_key: str = ""
    endpoint: str = DEFAULT_CONFIGS["openai"]["endpoint"]


@dataclass
class Settings:
    """Everything codefind reads from ``config.toml``, with defaults applied."""

    llm: LLMSettings = field(default_factory=LLMSettings)
    max_results: int = config.DEFAULT_MAX_RESULTS
    normal_debounce_ms: int = config.DEFAULT_NORMAL_DEBOUNCE_MS
    ai_debounce_ms: int = config.DEFAULT_AI_DEBOUNCE_MS
    roots: List[str] = field(default_factory=list)
    fail_fast: bool = False
    editor_command: str = config.DEFAULT_EDITOR_COMMAND


def load_full_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections).

    A missing file yields an empty dict; a malformed one is logged and
    treated as empty so the CLI keeps working on defaults.
    """
    path = path or CONFIG_FILE
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (toml.TomlDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}


def _save_full_config(data: Dict[str, Any], path: Optional[Path] = None) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    path = path or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(path, "w", encoding="utf-8") as f:
            toml.dump(data, f)
        return True
    except OSError as exc:
        logger.error("Could not write config file %s: %s", path, exc)
        return False


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Return the ``[llm]`` section, falling back to the OpenAI defaults."""
    full = load_full_config(path)
    return full.get("llm", DEFAULT_CONFIGS["openai"].copy())


def save_config(
    provider: str,
    model: str,
    api_key: str = "",
    endpoint: str = "",
    path: Optional[Path] = None,
) -> bool:
    """Save LLM configuration to TOML file.

    Preserves other sections (``[search]``, ``[index]``, ``[editor]``).
    """
    data = load_full_config(path)
    data["llm"] = {"provider": provider, "model": model}
    if api_key:
        data["llm"]["api_key"] = api_key
    if endpoint:
        data["llm"]["endpoint"] = endpoint
    return _save_full_config(data, path)


def get_provider_config(provider: str) -> Dict[str, str]:
    """Get default configuration for a specific provider."""
    return DEFAULT_CONFIGS.get(provider, DEFAULT_CONFIGS["openai"]).copy()


def _positive_int(section: Dict[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ConfigError(f"'{key}' must be a positive integer, got {value!r}")
    return value


def _str_list(section: Dict[str, Any], key: str) -> List[str]:
    value = section.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{key}' must be a list of strings, got {value!r}")
    return list(value)


def _bool(section: Dict[str, Any], key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false, got {value!r}")
    return value


def load_settings(path: Optional[Path] = None) -> Settings:
    """Build :class:`Settings` from the config file and environment.

    Environment overrides: ``CODEFIND_LLM_PROVIDER``, ``CODEFIND_LLM_MODEL``
    and ``CODEFIND_LLM_API_KEY``.

    Raises:
        ConfigError: On an unknown provider, a non-positive numeric value or a
            mistyped `[index]` entry.
    """
    full = load_full_config(path)
    llm_section = full.get("llm", {})
    search_section = full.get("search", {})
    index_section = full.get("index", {})
    editor_section = full.get("editor", {})

    provider = os.environ.get("CODEFIND_LLM_PROVIDER") or llm_section.get("provider", "openai")
    provider = provider.lower().strip()
    if provider not in DEFAULT_CONFIGS:
        raise ConfigError(
            f"Unknown LLM provider '{provider}'. Choose from: {', '.join(ALL_PROVIDERS)}"
        )
    defaults = DEFAULT_CONFIGS[provider]

    llm = LLMSettings(
        provider=provider,
        model=os.environ.get("CODEFIND_LLM_MODEL") or llm_section.get("model") or defaults["model"],
        api_key=os.environ.get("CODEFIND_LLM_API_KEY") or llm_section.get("api_key", ""),
        endpoint=llm_section.get("endpoint") or defaults["endpoint"],
    )

    return Settings(
        llm=llm,
        max_results=_positive_int(search_section, "max_results", config.DEFAULT_MAX_RESULTS),
        normal_debounce_ms=_positive_int(
            search_section, "normal_debounce_ms", config.DEFAULT_NORMAL_DEBOUNCE_MS
        ),
        ai_debounce_ms=_positive_int(search_section, "ai_debounce_ms", config.DEFAULT_AI_DEBOUNCE_MS),
        roots=_str_list(index_section, "roots"),
        fail_fast=_bool(index_section, "fail_fast", False),
        editor_command=editor_section.get("command", config.DEFAULT_EDITOR_COMMAND),
    )


def validate_ollama_connection(endpoint: str = "http://127.0.0.1:11434") -> bool:
    """Check if Ollama is running and accessible."""
    try:
        resp = requests.get(f"{endpoint}/api/tags", timeout=3)
        return resp.status_code == 200
    except requests.RequestException:
        return False


def validate_api_key(provider: str, api_key: str, endpoint: str) -> tuple[bool, str]:
    """Validate an API key against the provider's ``/models`` listing.

    Returns:
        Tuple of (is_valid, message)
    """
    if not api_key:
        return False, "API key is required"
    models_url = endpoint.rsplit("/chat/completions", 1)[0] + "/models"
    try:
        resp = requests.get(
            models_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=10,
        )
    except requests.RequestException as exc:
        return False, str(exc)
    if resp.status_code in (401, 403):
        return False, "Invalid API key"
    if resp.status_code >= 400:
        return False, f"HTTP error: {resp.status_code}"
    return True, "Valid"
