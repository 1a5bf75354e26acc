import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from linkrec_server.content.models import SourceDocument
from linkrec_server.core.errors import ContentSourceError
from linkrec_server.db.models import Base
from linkrec_server.db.session import build_session_factory
from linkrec_server.indexing.engine import TfIdfEngine


def make_page(page_id, text, slug=None, title=""):
    return SourceDocument(
        id=page_id,
        slug=slug or f"page-{page_id}",
        title=title,
        content=f"<p>{text}</p>",
    )


class FakeContentSource:
    """In-memory content repository; pages listed in `failing` raise on fetch."""

    def __init__(self, pages):
        self.pages = {p.id: p for p in pages}
        self.failing = set()

    async def list_published(self):
        return list(self.pages.values())

    async def get_document(self, page_id):
        if page_id in self.failing:
            raise ContentSourceError(f"Page {page_id} could not be fetched")
        return self.pages[page_id]


@pytest.fixture
async def db_engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def office_corpus():
    return [
        make_page("1", "modular office buildings commercial"),
        make_page("2", "modular classroom buildings education"),
        make_page("3", "unrelated page about financing options"),
    ]


@pytest.fixture
def content_source(office_corpus):
    return FakeContentSource(office_corpus)


@pytest.fixture
def engine(session_factory, content_source):
    return TfIdfEngine(
        session_factory,
        content_source,
        claim_timeout_seconds=300,
        max_document_attempts=3,
        min_stored_similarity=0.01,
    )
