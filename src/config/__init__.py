"""Configuration module: exports Settings, the config loaders, and a module-level singleton."""

from src.config.knowledge_base import (
    DocumentConfig,
    ExecutorConfig,
    ExecutorsConfig,
    KnowledgeBaseConfig,
    OverflowPolicy,
    QueryConfig,
    VectorizationConfig,
)
from src.config.loader import load_config, load_knowledge_base_config
from src.config.settings import Settings

settings = Settings()

__all__ = [
    "DocumentConfig",
    "ExecutorConfig",
    "ExecutorsConfig",
    "KnowledgeBaseConfig",
    "OverflowPolicy",
    "QueryConfig",
    "Settings",
    "VectorizationConfig",
    "load_config",
    "load_knowledge_base_config",
    "settings",
]
