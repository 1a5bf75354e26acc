"""
Database Package

Provides SQLAlchemy async session management, model definitions and the
repositories used by the internal-linking engine.
"""

from .session import get_async_session, async_engine, AsyncSessionLocal
from .models import (
    Base,
    Document,
    DocumentTerm,
    IndexState,
    LinkingSettings,
    SimilarityEdge,
    Term,
)
from .index_store import IndexStore
from .settings_store import LinkingSettingsStore

__all__ = [
    "get_async_session",
    "async_engine",
    "AsyncSessionLocal",
    "Base",
    "Document",
    "DocumentTerm",
    "IndexState",
    "LinkingSettings",
    "SimilarityEdge",
    "Term",
    "IndexStore",
    "LinkingSettingsStore",
]
