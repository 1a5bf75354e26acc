import httpx
import pytest

from linkrec_server.content.models import SourceDocument
from linkrec_server.content.repository import ContentRepository
from linkrec_server.core.errors import ContentSourceError
from linkrec_server.indexing.engine import TfIdfEngine

BASE_URL = "http://cms.test/api"


def make_repository(handler, token="cms-token"):
    return ContentRepository(
        base_url=BASE_URL,
        token=token,
        transport=httpx.MockTransport(handler),
    )


async def test_list_published_sends_filter_and_token():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(
            200,
            json={
                "pages": [
                    {"id": 1, "slug": "modular-offices", "title": "Modular Offices", "content": "<p>x</p>"},
                    {"id": 2, "slug": "classrooms", "title": "Classrooms", "extra": "ignored"},
                ]
            },
        )

    pages = await make_repository(handler).list_published()

    assert seen["url"] == f"{BASE_URL}/pages?status=published"
    assert seen["auth"] == "Bearer cms-token"
    assert [p.id for p in pages] == ["1", "2"]
    assert pages[0].url == "/modular-offices"


async def test_list_published_accepts_bare_list_and_skips_malformed():
    def handler(request):
        return httpx.Response(200, json=[{"id": "a", "slug": "ok"}, {"title": "no id or slug"}])

    pages = await make_repository(handler).list_published()

    assert [p.id for p in pages] == ["a"]


async def test_get_document_unwraps_page():
    def handler(request):
        assert request.url.path == "/api/pages/42"
        return httpx.Response(
            200,
            json={"page": {"id": 42, "slug": "solar", "meta_title": "Solar Roofs"}},
        )

    page = await make_repository(handler, token=None).get_document("42")

    assert isinstance(page, SourceDocument)
    assert page.id == "42"
    assert page.display_title == "Solar Roofs"


@pytest.mark.parametrize("status_code", [404, 500])
async def test_http_errors_raise_content_source_error(status_code):
    def handler(request):
        return httpx.Response(status_code, json={"error": "nope"})

    with pytest.raises(ContentSourceError):
        await make_repository(handler).get_document("1")


async def test_transport_errors_raise_content_source_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ContentSourceError):
        await make_repository(handler).list_published()


async def test_start_indexing_reports_repository_failure(session_factory):
    def handler(request):
        return httpx.Response(503)

    engine = TfIdfEngine(session_factory, make_repository(handler))
    result = await engine.start_indexing()

    assert result.success is False
    assert "503" in result.message
