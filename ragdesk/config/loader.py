"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
#   1. config/config.yaml  - static defaults checked into the repo
#   2. .env file           - local overrides (not committed)
#   3. Environment vars    - set at deploy time
#
# The YAML file is grouped into sections for readability:
#
#   chunking:
#     size: 800
#
# Sections are flattened to Settings field names ("chunking.size" becomes
# `chunk_size`) via _FIELD_MAP and passed to Settings as init values.  An
# environment variable or .env entry for the same field still wins because
# load_settings() drops YAML values the environment already provided.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from ragdesk.config.settings import Settings
from ragdesk.utils.errors import ConfigurationError

# (section, key) -> Settings field name.
_FIELD_MAP: dict[tuple[str, str], str] = {
    ("models", "chat"): "chat_model",
    ("models", "embedding"): "embedding_model",
    ("models", "embedding_dimension"): "embedding_dimension",
    ("models", "temperature"): "generation_temperature",
    ("models", "max_tokens"): "generation_max_tokens",
    ("chunking", "size"): "chunk_size",
    ("chunking", "overlap"): "chunk_overlap",
    ("chunking", "encoding"): "tokenizer_encoding",
    ("retrieval", "limit"): "retrieval_limit",
    ("retrieval", "distance_threshold"): "retrieval_distance_threshold",
    ("processing", "embedding_batch_size"): "embedding_batch_size",
    ("processing", "workers"): "worker_concurrency",
    ("processing", "max_attempts"): "processing_max_attempts",
    ("processing", "retry_backoff_s"): "processing_retry_backoff_s",
    ("storage", "database_path"): "database_path",
    ("storage", "chromadb_persist_dir"): "chromadb_persist_dir",
    ("storage", "chromadb_collection"): "chromadb_collection",
    ("logging", "level"): "log_level",
}


def read_yaml_config(path: str | Path) -> dict[str, Any]:
    """Read a YAML config file, returning ``{}`` when it does not exist."""
    config_path = Path(path)
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                message=f"Invalid YAML in {config_path}: {exc}",
            ) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(
            message=f"{config_path} must contain a mapping at the top level",
        )
    return data


def flatten_config(data: dict[str, Any]) -> dict[str, Any]:
    """Map sectioned YAML keys onto flat Settings field names.

    Unknown sections and keys are ignored so that a config file can carry
    notes for other tools without breaking startup.
    """
    flat: dict[str, Any] = {}
    for section, values in data.items():
        if not isinstance(values, dict):
            continue
        for key, value in values.items():
            field = _FIELD_MAP.get((section, key))
            if field is not None:
                flat[field] = value
    return flat


def load_settings(path: str | Path = "config/config.yaml") -> Settings:
    """Build the process-wide Settings from YAML defaults plus the environment.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully resolved :class:`Settings` instance.
    """
    yaml_values = flatten_config(read_yaml_config(path))
    # Init kwargs outrank env vars and .env in pydantic-settings, so hand
    # over only the YAML values neither of them provided.
    from_environment = Settings().model_fields_set
    overrides = {
        field: value
        for field, value in yaml_values.items()
        if field not in from_environment
    }
    return Settings(**overrides)
