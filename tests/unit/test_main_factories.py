"""Unit tests for factory functions in src/main.py.

Tests the _build_all component assembly and the create_app factory with
local-only settings so no real network calls or API keys are required.
"""

from __future__ import annotations

from pathlib import Path

from fastapi import FastAPI

from src.config.knowledge_base import KnowledgeBaseConfig, QueryConfig, VectorizationConfig
from src.config.settings import Settings


# ======================================================================
# Shared helpers
# ======================================================================


def _settings(tmp_path: Path, **overrides) -> Settings:
    """Build a Settings instance that keeps every file under *tmp_path*."""
    defaults = {
        "openai_api_key": "",
        "openai_base_url": "",
        "openai_text_model": "",
        "openai_embedding_model": "",
        "chromadb_persist_dir": str(tmp_path / "chroma"),
        "database_path": str(tmp_path / "db" / "kb.db"),
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(**defaults)


# ======================================================================
# _build_all
# ======================================================================


class TestBuildAll:
    def test_returns_expected_keys(self, tmp_path: Path) -> None:
        from src.main import _build_all

        components = _build_all(_settings(tmp_path), KnowledgeBaseConfig())

        assert set(components) == {
            "vector_store",
            "document_store",
            "query_store",
            "document_pool",
            "ai_pool",
            "ingestion_service",
            "document_service",
            "query_service",
            "provider_registry",
        }

    def test_creates_database_directory(self, tmp_path: Path) -> None:
        from src.main import _build_all

        _build_all(_settings(tmp_path), KnowledgeBaseConfig())

        assert (tmp_path / "db").is_dir()

    def test_pools_sized_from_config(self, tmp_path: Path) -> None:
        from src.main import _build_all

        components = _build_all(_settings(tmp_path), KnowledgeBaseConfig())

        assert components["document_pool"].name == "doc-processing"
        assert components["document_pool"].capacity == 105
        assert components["ai_pool"].name == "ai-processing"
        assert components["ai_pool"].capacity == 208

    def test_provider_registry_names(self, tmp_path: Path) -> None:
        from src.main import _build_all

        components = _build_all(
            _settings(tmp_path, openai_base_url="http://localhost:8001/v1"),
            KnowledgeBaseConfig(),
        )

        assert components["provider_registry"] == {
            "llm": "openai-compatible",
            "embedding": "openai-compatible_embedding",
            "vector_store": "chromadb",
        }

    def test_query_health_degraded_without_api_key(self, tmp_path: Path) -> None:
        from src.main import _build_all

        components = _build_all(
            _settings(tmp_path),
            KnowledgeBaseConfig(
                vectorization=VectorizationConfig(chunk_size=500, chunk_overlap=50),
                query=QueryConfig(max_results=3),
            ),
        )

        health = components["query_service"].health()
        assert health["status"] == "degraded"
        assert health["vector_store"] is True
        assert health["generation"] is False


# ======================================================================
# create_app
# ======================================================================


class TestCreateApp:
    def test_returns_fastapi_instance(self) -> None:
        from src.main import create_app

        assert isinstance(create_app(), FastAPI)

    def test_app_has_correct_title_and_version(self) -> None:
        from src.main import create_app

        app = create_app()
        assert app.title == "Knowledge Base API"
        assert app.version == "0.1.0"

    def test_app_has_api_routes(self) -> None:
        from src.main import create_app

        paths = {route.path for route in create_app().routes}

        assert "/api/v1/documents/upload" in paths
        assert "/api/v1/query" in paths
        assert "/api/v1/query/stream" in paths
        assert "/api/v1/health" in paths

    def test_module_level_app_is_fastapi(self) -> None:
        from src.main import app

        assert isinstance(app, FastAPI)
