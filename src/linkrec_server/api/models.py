"""
API Models for the Internal-Linking Server

Request and response bodies of the admin HTTP API. Field names are camelCase
on the wire; Python code uses snake_case.

Engine results (stats, progress, batch outcomes) are returned as-is from
`indexing.models` and are not redeclared here.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..config import settings
from ..indexing.models import SimilarContent


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


# ---------------------------------------------------------------------
# Indexing
# ---------------------------------------------------------------------

class ProcessBatchRequest(ApiModel):
    """
    Body of POST /process. An empty body processes the configured default.
    """
    batch_size: int = Field(
        default=settings.default_batch_size,
        ge=1,
        le=settings.max_batch_size,
    )


class RecommendationsResponse(ApiModel):
    page_id: str
    recommendations: List[SimilarContent]
    count: int = Field(..., ge=0)


# ---------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------

DisplayPosition = Literal["after_content", "manual"]


class LinkingSettingsRead(ApiModel):
    """
    Full linking settings record.
    """
    enabled: bool
    max_recommendations: int
    similarity_threshold: float
    max_terms_per_doc: int
    max_similar_per_doc: int
    auto_index: bool
    display_position: DisplayPosition
    heading_text: str
    excluded_urls: str

    model_config = ConfigDict(from_attributes=True)


class LinkingSettingsUpdate(ApiModel):
    """
    Partial settings update; omitted fields keep their stored value.
    """
    enabled: Optional[bool] = None
    max_recommendations: Optional[int] = Field(default=None, ge=1, le=20)
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_terms_per_doc: Optional[int] = Field(default=None, ge=1, le=1000)
    max_similar_per_doc: Optional[int] = Field(default=None, ge=1, le=100)
    auto_index: Optional[bool] = None
    display_position: Optional[DisplayPosition] = None
    heading_text: Optional[str] = Field(default=None, max_length=255)
    excluded_urls: Optional[str] = None
