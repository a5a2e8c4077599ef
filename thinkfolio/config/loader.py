"""YAML configuration loader with environment variable overrides.

Configuration is resolved in layers, later layers winning:

    1. ``_DEFAULTS``          -- built-in tuning values (below)
    2. config/config.yaml     -- checked-in overrides for chunking, retrieval, chat
    3. Settings (.env / env)  -- credentials, storage paths, server options

The resolved dict is then checked by :func:`validate_config`, which raises
:class:`~thinkfolio.utils.errors.ConfigurationError` for combinations that
would break the pipeline (e.g. an overlap as large as the chunk itself).
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

from thinkfolio.config.settings import Settings
from thinkfolio.utils.errors import ConfigurationError

_DEFAULTS: dict[str, Any] = {
    "chunking": {
        "chunk_size": 500,
        "chunk_overlap": 50,
        "min_chunk_size": 100,
        "max_chunk_chars": 2000,
    },
    "embedding": {
        "batch_size": 64,
        "max_retries": 3,
        "retry_backoff": 1.0,
        "timeout": 30.0,
    },
    "retrieval": {
        "default_k": 5,
        "max_k": 20,
        "score_threshold": 0.0,
    },
    "chat": {
        "context_char_budget": 4000,
        "history_window": 6,
        "generation_timeout": 30.0,
        "temperature": 0.3,
        "max_tokens": 2000,
    },
    "upload": {
        "max_file_size": 10 * 1024 * 1024,
        "fetch_timeout": 30.0,
    },
}


def load_config(path: str | None = None, settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.  Defaults to
              ``settings.config_path``.  A missing file is not an error.
        settings: Settings instance to read overrides from.  A fresh one is
                  built from the environment when omitted.

    Returns:
        Fully resolved and validated configuration dictionary.
    """
    settings = settings or Settings()
    config_path = Path(path or settings.config_path)

    config = copy.deepcopy(_DEFAULTS)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
        if not isinstance(yaml_config, dict):
            raise ConfigurationError(
                message=f"Top level of {config_path} must be a mapping",
            )
        _deep_merge(config, yaml_config)

    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "llm": {
            "openai_api_key": settings.openai_api_key,
            "anthropic_api_key": settings.anthropic_api_key,
            "ollama_base_url": settings.ollama_base_url,
            "available_providers": settings.get_available_llm_providers(),
        },
        "storage": {
            "database_path": settings.database_path,
            "storage_dir": settings.storage_dir,
            "bucket": settings.storage_bucket,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(config, env_overrides)
    validate_config(config)
    return config


def validate_config(config: dict) -> None:
    """Reject configurations the pipeline cannot run with."""
    chunking = config["chunking"]
    retrieval = config["retrieval"]
    chat = config["chat"]
    embedding = config["embedding"]

    errors: list[str] = []
    if chunking["chunk_size"] <= 0:
        errors.append("chunking.chunk_size must be positive")
    if not 0 <= chunking["chunk_overlap"] < chunking["chunk_size"]:
        errors.append("chunking.chunk_overlap must be >= 0 and less than chunk_size")
    if not 0 < chunking["min_chunk_size"] <= chunking["chunk_size"]:
        errors.append("chunking.min_chunk_size must be in (0, chunk_size]")
    if chunking["max_chunk_chars"] <= 0:
        errors.append("chunking.max_chunk_chars must be positive")
    if not 1 <= retrieval["default_k"] <= retrieval["max_k"]:
        errors.append("retrieval.default_k must be between 1 and max_k")
    if not 0.0 <= retrieval["score_threshold"] <= 1.0:
        errors.append("retrieval.score_threshold must be between 0 and 1")
    if chat["context_char_budget"] <= 0:
        errors.append("chat.context_char_budget must be positive")
    if chat["history_window"] < 0:
        errors.append("chat.history_window must not be negative")
    if embedding["batch_size"] <= 0 or embedding["max_retries"] <= 0:
        errors.append("embedding.batch_size and embedding.max_retries must be positive")
    if embedding["timeout"] <= 0 or chat["generation_timeout"] <= 0:
        errors.append("timeouts must be positive")

    if errors:
        raise ConfigurationError(message="; ".join(errors))


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
