"""
SQLAlchemy Models

Defines the database schema for:
- Indexed documents and their capped term-frequency maps
- The global term dictionary (document frequency + IDF)
- Precomputed similarity edges
- Singleton index bookkeeping and linking settings
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import (
    Boolean,
    Float,
    String,
    Integer,
    Text,
    DateTime,
    ForeignKey,
    Index,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# Document lifecycle states
STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_PROCESSED = "processed"
STATUS_FAILED = "failed"


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the naive DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Document Model
# ---------------------------------------------------------------------

class Document(Base):
    """
    A page or post known to the index.

    Created `pending` by discovery, claimed as `processing` by a batch and
    flipped to `processed` once its terms are counted into the corpus.
    """
    __tablename__ = "linking_document"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    claim_token: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    indexed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    terms: Mapped[List["DocumentTerm"]] = relationship(
        "DocumentTerm",
        back_populates="document",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_document_status", "status", "id"),
    )


# ---------------------------------------------------------------------
# Term Model
# ---------------------------------------------------------------------

class Term(Base):
    """
    Global term dictionary entry.

    `document_frequency` only ever grows inside the transaction that marks a
    document processed; `idf` is rewritten wholesale by the IDF pass.
    """
    __tablename__ = "linking_term"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    document_frequency: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    idf: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


# ---------------------------------------------------------------------
# Document Term Model (sparse TF vector)
# ---------------------------------------------------------------------

class DocumentTerm(Base):
    """
    Raw term count for one of a document's capped terms.
    """
    __tablename__ = "linking_document_term"

    document_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("linking_document.id", ondelete="CASCADE"),
        primary_key=True,
    )
    term_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("linking_term.id", ondelete="CASCADE"),
        primary_key=True,
    )
    count: Mapped[int] = mapped_column(Integer, nullable=False)

    document: Mapped["Document"] = relationship("Document", back_populates="terms")

    __table_args__ = (
        Index("idx_document_term_term", "term_id"),
    )


# ---------------------------------------------------------------------
# Similarity Edge Model
# ---------------------------------------------------------------------

class SimilarityEdge(Base):
    """
    One entry of a document's capped, score-ordered neighbour list.
    """
    __tablename__ = "linking_similarity"

    source_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("linking_document.id", ondelete="CASCADE"),
        primary_key=True,
    )
    target_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("linking_document.id", ondelete="CASCADE"),
        primary_key=True,
    )
    score: Mapped[float] = mapped_column(Float, nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_similarity_source_score", "source_id", "score"),
    )


# ---------------------------------------------------------------------
# Index State Model (singleton)
# ---------------------------------------------------------------------

class IndexState(Base):
    """
    Version counters tying the derived IDF and similarity data to the corpus
    they were computed from.
    """
    __tablename__ = "linking_index_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    corpus_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    idf_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    idf_document_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    idf_calculated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    similarity_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    similarities_calculated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    indexing_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    indexing_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# ---------------------------------------------------------------------
# Linking Settings Model (singleton)
# ---------------------------------------------------------------------

class LinkingSettings(Base):
    """
    Runtime-tunable settings shared by the engine and the rendering layer.
    """
    __tablename__ = "linking_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_recommendations: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    similarity_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=0.3)
    max_terms_per_doc: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    max_similar_per_doc: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    auto_index: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    display_position: Mapped[str] = mapped_column(
        String(32), nullable=False, default="after_content"
    )
    heading_text: Mapped[str] = mapped_column(
        Text, nullable=False, default="Related Articles"
    )
    excluded_urls: Mapped[str] = mapped_column(Text, nullable=False, default="")
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        onupdate=func.now(),
    )
