"""
Indexing Data Models

This module defines the values passed between the tokenizer, the engine and
the API layer. Engine results serialize with camelCase field names, which is
the wire format of the admin API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ProcessedContent(BaseModel):
    """
    A tokenized page, ready to be counted into the corpus.
    """

    page_id: str = Field(..., min_length=1)
    url: str
    title: str

    word_count: int = Field(
        ...,
        ge=0,
        description="Number of tokens that survived normalization.",
    )

    content_hash: str = Field(
        ...,
        description="SHA-256 of the normalized source text.",
    )

    term_counts: Dict[str, int] = Field(
        default_factory=dict,
        description="Raw counts of the document's top terms, capped to max_terms_per_doc.",
    )

    distinct_terms: int = Field(
        default=0,
        ge=0,
        description="Distinct term count before capping.",
    )

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


class EngineResult(BaseModel):
    """Base for engine results; camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class OperationResult(EngineResult):
    """
    Outcome of start/clear style operations.
    """
    success: bool
    message: str


class IndexingResult(OperationResult):
    queued: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    stale: int = Field(default=0, ge=0)


class BatchResult(EngineResult):
    success: bool
    processed: int = Field(..., ge=0)
    failed: int = Field(default=0, ge=0)
    remaining: int = Field(..., ge=0)


class SimilarityRunResult(EngineResult):
    success: bool
    calculated: int = Field(..., ge=0)
    message: Optional[str] = None


class SimilarContent(EngineResult):
    """
    One recommended page.
    """
    content_id: int
    page_id: str
    url: str
    title: str
    similarity_score: float = Field(..., ge=0.0, le=1.0)


class IndexStats(EngineResult):
    total_documents: int = Field(..., ge=0)
    total_terms: int = Field(..., ge=0)
    processed_documents: int = Field(..., ge=0)
    pending_documents: int = Field(..., ge=0)
    failed_documents: int = Field(default=0, ge=0)
    average_word_count: int = Field(..., ge=0)
    total_similarities: int = Field(default=0, ge=0)
    idf_stale: bool = False


class IndexProgress(EngineResult):
    status: Literal["idle", "processing", "calculating", "complete"]
    total: int = Field(..., ge=0)
    processed: int = Field(..., ge=0)
    percent: float = Field(..., ge=0.0, le=100.0)
    discovered: int = Field(
        0,
        ge=0,
        description="Pages accepted by the most recent start_indexing call.",
    )
    started_at: Optional[datetime] = None
