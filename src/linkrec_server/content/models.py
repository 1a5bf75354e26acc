"""
Content Data Models

Canonical shape of a page pulled from the content repository, and the
protocol any content source must satisfy to feed the indexer.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceDocument(BaseModel):
    """
    A publishable page as supplied by the content repository.

    `content` is either an HTML string or structured JSON (nested dicts and
    lists of strings) as stored by the CMS page builder.
    """

    id: str = Field(
        ...,
        min_length=1,
        description="Stable identifier of the page in the content repository.",
    )

    slug: str = Field(
        ...,
        description="URL slug; the page is served at '/{slug}'.",
    )

    title: str = Field(default="")

    meta_title: Optional[str] = None

    meta_description: Optional[str] = None

    content: Any = None

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
    )

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        # Repositories use integer or UUID keys; the index stores strings.
        return str(v) if v is not None else v

    @property
    def url(self) -> str:
        return f"/{self.slug.lstrip('/')}"

    @property
    def display_title(self) -> str:
        return self.meta_title or self.title


class ContentSource(Protocol):
    """
    Pull interface the indexer uses to reach the content repository.
    """

    async def list_published(self) -> List[SourceDocument]:
        ...

    async def get_document(self, page_id: str) -> SourceDocument:
        ...
