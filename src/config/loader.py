"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers, later layers overriding earlier ones:

    1. config/config.yaml  -- static defaults checked into the repo
    2. .env file           -- local developer overrides (not committed)
    3. environment vars    -- set at deploy time

:func:`load_config` reads the YAML first and deep-merges the environment
values on top; :func:`load_knowledge_base_config` then validates the
``knowledge_base`` section into a :class:`KnowledgeBaseConfig`.

The ``_deep_merge`` helper merges recursively:
    base = {"query": {"max_results": 5}}
    overrides = {"query": {"similarity_threshold": 0.8}}
    result = {"query": {"max_results": 5, "similarity_threshold": 0.8}}
"""

from pathlib import Path

import pydantic
import yaml

from src.config.knowledge_base import KnowledgeBaseConfig
from src.config.settings import Settings
from src.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.
    ``KB_*`` settings left unset do not override anything.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings instance to take overrides from; a fresh one is
            built when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "logging": {
            "level": settings.log_level,
        },
        "knowledge_base": _knowledge_base_overrides(settings),
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def load_knowledge_base_config(
    path: str = "config/config.yaml", settings: Settings | None = None
) -> KnowledgeBaseConfig:
    """Return the validated ``knowledge_base`` section of the merged config.

    Raises
    ------
    ConfigurationError
        If the merged values fail validation (e.g. overlap >= chunk size).
    """
    config = load_config(path, settings=settings)
    try:
        return KnowledgeBaseConfig.model_validate(config.get("knowledge_base") or {})
    except pydantic.ValidationError as exc:
        raise ConfigurationError(
            message=f"Invalid knowledge_base configuration in {path}: {exc}"
        ) from exc


def _knowledge_base_overrides(settings: Settings) -> dict:
    """Build the nested override dict from the ``KB_*`` settings that are set."""
    candidates = {
        "document": {
            "storage_path": settings.kb_storage_path,
            "max_file_size": settings.kb_max_file_size,
        },
        "vectorization": {
            "chunk_size": settings.kb_chunk_size,
            "chunk_overlap": settings.kb_chunk_overlap,
            "batch_size": settings.kb_batch_size,
        },
        "query": {
            "max_results": settings.kb_max_results,
            "similarity_threshold": settings.kb_similarity_threshold,
            "max_history": settings.kb_max_history,
        },
    }
    overrides: dict = {}
    for section, values in candidates.items():
        present = {key: value for key, value in values.items() if value is not None}
        if present:
            overrides[section] = present
    return overrides


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
