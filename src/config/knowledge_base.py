"""Typed knowledge base configuration.

The YAML file and the ``KB_*`` environment overrides are merged into a
plain dict by :func:`src.config.loader.load_config`; this module validates
the ``knowledge_base`` section of that dict into frozen pydantic models so
services receive explicit, immutable configuration objects instead of
reading globals.

Defaults mirror ``config/config.yaml``.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class OverflowPolicy(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """What the chunker does with text left over once ``max_chunks`` is reached."""

    TRUNCATE = "truncate"  # discard the remainder, log how much was dropped
    MERGE = "merge"        # append the remainder to the last emitted chunk


class DocumentConfig(BaseModel):
    """Upload acceptance rules and raw file storage."""

    model_config = ConfigDict(frozen=True)

    storage_path: str = Field(default="./uploads", description="Directory for raw uploads.")
    max_file_size: int = Field(default=52_428_800, gt=0, description="Maximum upload size in bytes.")
    allowed_types: list[str] = Field(
        default_factory=lambda: ["pdf", "txt", "docx", "md"],
        description="Accepted file extensions (lower case, no dot).",
    )


class VectorizationConfig(BaseModel):
    """Chunking and index batching parameters."""

    model_config = ConfigDict(frozen=True)

    chunk_size: int = Field(default=1000, gt=0, description="Target tokens per chunk.")
    chunk_overlap: int = Field(default=200, ge=0, description="Tokens shared by consecutive chunks.")
    min_chunk_chars: int = Field(default=350, ge=0)
    min_chunk_length_to_embed: int = Field(default=5, ge=0)
    max_chunks: int = Field(default=10_000, gt=0)
    overflow_policy: OverflowPolicy = OverflowPolicy.TRUNCATE
    tokenizer: str = Field(
        default="character",
        description='"character", "word", or "huggingface:<model id>".',
    )
    batch_size: int = Field(default=10, gt=0, description="Chunks per embed-and-store batch.")

    @model_validator(mode="after")
    def _overlap_below_size(self) -> VectorizationConfig:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})"
            )
        return self


class QueryConfig(BaseModel):
    """Retrieval and history parameters for the query service."""

    model_config = ConfigDict(frozen=True)

    max_results: int = Field(default=5, gt=0)
    similarity_threshold: float = Field(default=0.75, ge=0.0, le=1.0)
    max_history: int = Field(default=10, gt=0)
    timeout_seconds: float = Field(default=60.0, gt=0.0)


class ExecutorConfig(BaseModel):
    """Sizing for one bounded worker pool."""

    model_config = ConfigDict(frozen=True)

    max_workers: int = Field(default=5, gt=0, description="Tasks allowed to run at once.")
    queue_capacity: int = Field(default=100, ge=0, description="Tasks allowed to wait for a slot.")
    thread_name_prefix: str = "worker"


class ExecutorsConfig(BaseModel):
    """The document (ingestion) pool and the AI (generation) pool."""

    model_config = ConfigDict(frozen=True)

    document: ExecutorConfig = Field(
        default_factory=lambda: ExecutorConfig(
            max_workers=5, queue_capacity=100, thread_name_prefix="doc-processing"
        )
    )
    ai: ExecutorConfig = Field(
        default_factory=lambda: ExecutorConfig(
            max_workers=8, queue_capacity=200, thread_name_prefix="ai-processing"
        )
    )


class KnowledgeBaseConfig(BaseModel):
    """Root of the ``knowledge_base`` config section."""

    model_config = ConfigDict(frozen=True)

    document: DocumentConfig = Field(default_factory=DocumentConfig)
    vectorization: VectorizationConfig = Field(default_factory=VectorizationConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    executors: ExecutorsConfig = Field(default_factory=ExecutorsConfig)
