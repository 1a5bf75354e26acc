import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from .models import SourceDocument
from ..config import settings
from ..core.errors import ContentSourceError

logger = logging.getLogger(__name__)


class ContentRepository:
    """
    HTTP client for the CMS content API.

    Only published pages are pulled; the indexer never writes back.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or str(settings.content_api_base_url)).rstrip("/")
        if token is None and settings.content_api_token is not None:
            token = settings.content_api_token.get_secret_value()
        self._token = token
        self._timeout = timeout or settings.content_api_timeout
        self._transport = transport

    async def _request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a JSON document from the content API.

        Transport errors and non-2xx responses surface as ContentSourceError.
        """
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(f"{self.base_url}{path}", params=params, headers=headers)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            raise ContentSourceError(
                f"Content API returned {exc.response.status_code} for {path}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ContentSourceError(
                f"Content API request failed for {path}: {type(exc).__name__}"
            ) from exc

    @staticmethod
    def _parse(record: Dict[str, Any]) -> SourceDocument:
        try:
            return SourceDocument.model_validate(record)
        except ValidationError as exc:
            raise ContentSourceError(f"Malformed page record: {exc.error_count()} errors") from exc

    async def list_published(self) -> List[SourceDocument]:
        """Returns every published page, in repository order."""
        data = await self._request("/pages", params={"status": "published"})
        records = data.get("pages", []) if isinstance(data, dict) else data

        documents = []
        for record in records:
            try:
                documents.append(self._parse(record))
            except ContentSourceError as exc:
                logger.warning("Skipping page record: %s", exc)
        return documents

    async def get_document(self, page_id: str) -> SourceDocument:
        data = await self._request(f"/pages/{page_id}")
        if isinstance(data, dict) and "page" in data:
            data = data["page"]
        if not isinstance(data, dict):
            raise ContentSourceError(f"Page {page_id} not found")
        return self._parse(data)
