from functools import lru_cache
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..content.repository import ContentRepository
from ..db import AsyncSessionLocal, get_async_session
from ..db.settings_store import LinkingSettingsStore
from ..indexing.engine import TfIdfEngine


@lru_cache
def get_content_repository() -> ContentRepository:
    return ContentRepository()


def get_engine(
    repository: ContentRepository = Depends(get_content_repository),
) -> TfIdfEngine:
    # The engine opens its own sessions so each document commits separately
    return TfIdfEngine(AsyncSessionLocal, repository)


async def get_settings_store(
    session: AsyncSession = Depends(get_async_session),
) -> AsyncGenerator[LinkingSettingsStore, None]:
    yield LinkingSettingsStore(session)


async def verify_admin(
    x_admin_key: Optional[str] = Header(None, alias="x-admin-key"),
    key: Optional[str] = Query(None),
) -> None:
    """
    Require the configured admin key, from the header or the `key` query
    parameter. When no key is configured the admin routes are open, which is
    the expected setup behind an authenticating proxy.
    """
    if settings.admin_api_key is None:
        return

    expected_key = settings.admin_api_key.get_secret_value()
    provided_key = x_admin_key or key

    if not provided_key or provided_key != expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing admin API key",
        )
