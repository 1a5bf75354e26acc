"""
Index Store

SQL-backed document store, term/document-frequency table and similarity
edge storage for the internal-linking engine.

Every method runs inside the caller's session; the caller owns the
transaction boundary (one document per transaction while indexing, one
transaction for a whole similarity pass).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, delete, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from .models import (
    Document,
    DocumentTerm,
    IndexState,
    SimilarityEdge,
    Term,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSED,
    STATUS_PROCESSING,
    utcnow,
)
from .session import dialect_insert
from ..core.errors import DocumentProcessingError


STATE_ID = 1

# Rows per multi-row INSERT; keeps SQLite under its bound-parameter limit.
INSERT_CHUNK_SIZE = 500


def _chunks(rows: Sequence[Dict[str, Any]], size: int) -> Iterable[Sequence[Dict[str, Any]]]:
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


class IndexStore:
    """
    Repository over the linking tables.

    This class is the only place that issues SQL against the index; the
    engine composes its methods into the indexing, IDF and similarity passes.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize with an async database session.

        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session

    async def commit(self) -> None:
        """
        Commit the current transaction.
        """
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    # ------------------------------------------------------------------
    # Index State
    # ------------------------------------------------------------------

    async def ensure_state(self) -> None:
        """
        Create the singleton index-state row if it does not exist yet.
        """
        stmt = dialect_insert(self._session, IndexState).values(id=STATE_ID)
        stmt = stmt.on_conflict_do_nothing(index_elements=[IndexState.id])
        await self._session.execute(stmt)

    async def get_state(self, for_update: bool = False) -> IndexState:
        """
        Return the index-state row, optionally locking it for the rest of
        the transaction.
        """
        await self.ensure_state()
        stmt = (
            select(IndexState)
            .where(IndexState.id == STATE_ID)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def _bump_corpus_version(self) -> None:
        await self._session.execute(
            update(IndexState)
            .where(IndexState.id == STATE_ID)
            .values(corpus_version=IndexState.corpus_version + 1)
        )

    async def record_indexing_started(self, total: int) -> None:
        await self.ensure_state()
        await self._session.execute(
            update(IndexState)
            .where(IndexState.id == STATE_ID)
            .values(indexing_started_at=utcnow(), indexing_total=total)
        )

    async def record_idf(self, corpus_version: int, document_count: int) -> None:
        await self._session.execute(
            update(IndexState)
            .where(IndexState.id == STATE_ID)
            .values(
                idf_version=corpus_version,
                idf_document_count=document_count,
                idf_calculated_at=utcnow(),
            )
        )

    async def record_similarities(self, corpus_version: int) -> None:
        await self._session.execute(
            update(IndexState)
            .where(IndexState.id == STATE_ID)
            .values(
                similarity_version=corpus_version,
                similarities_calculated_at=utcnow(),
            )
        )

    # ------------------------------------------------------------------
    # Document Store
    # ------------------------------------------------------------------

    async def get_known_documents(self) -> Dict[str, str]:
        """
        Return a mapping of page_id -> content_hash for every known document.
        """
        result = await self._session.execute(
            select(Document.page_id, Document.content_hash)
        )
        return {row.page_id: row.content_hash for row in result}

    async def enqueue_documents(self, records: List[Dict[str, Any]]) -> int:
        """
        Insert new documents in `pending` state, in the given order.

        Records whose page_id already exists are left untouched.

        Returns
        -------
        int
            Number of documents inserted.
        """
        if not records:
            return 0

        inserted = 0
        for chunk in _chunks(records, INSERT_CHUNK_SIZE):
            rows = [
                {
                    "page_id": r["page_id"],
                    "url": r["url"],
                    "title": r.get("title", ""),
                    "content_hash": r.get("content_hash", ""),
                    "word_count": 0,
                    "status": STATUS_PENDING,
                    "attempts": 0,
                }
                for r in chunk
            ]
            stmt = dialect_insert(self._session, Document).values(rows)
            stmt = stmt.on_conflict_do_nothing(index_elements=[Document.page_id])
            result = await self._session.execute(stmt)
            inserted += result.rowcount if result.rowcount >= 0 else len(rows)

        return inserted

    async def claim_pending(
        self,
        batch_size: int,
        claim_token: str,
        stale_before: datetime,
    ) -> List[Document]:
        """
        Claim up to `batch_size` documents for processing, oldest first.

        Candidates are pending documents plus documents whose previous claim
        is older than `stale_before`. The claim is a compare-and-set on the
        status columns, so concurrent callers never receive the same row.
        """
        claimable = or_(
            Document.status == STATUS_PENDING,
            and_(
                Document.status == STATUS_PROCESSING,
                Document.claimed_at < stale_before,
            ),
        )

        candidates = await self._session.execute(
            select(Document.id)
            .where(claimable)
            .order_by(Document.id)
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        ids = list(candidates.scalars())
        if not ids:
            return []

        await self._session.execute(
            update(Document)
            .where(Document.id.in_(ids), claimable)
            .values(
                status=STATUS_PROCESSING,
                claim_token=claim_token,
                claimed_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        claimed = await self._session.execute(
            select(Document)
            .where(Document.claim_token == claim_token)
            .order_by(Document.id)
            .execution_options(populate_existing=True)
        )
        return list(claimed.scalars())

    async def mark_processed(
        self,
        document_id: int,
        claim_token: str,
        title: str,
        content_hash: str,
        word_count: int,
        term_counts: Dict[str, int],
    ) -> None:
        """
        Record a document's capped term counts and flip it to `processed`.

        The status flip is guarded by the claim token; if the claim was lost
        (e.g. re-taken after a timeout) nothing is counted and
        DocumentProcessingError is raised so the caller rolls back.

        Lock order is index state, then document, then terms; every
        transaction that touches more than one of them follows it.
        """
        now = utcnow()

        await self._bump_corpus_version()

        flipped = await self._session.execute(
            update(Document)
            .where(
                Document.id == document_id,
                Document.claim_token == claim_token,
                Document.status == STATUS_PROCESSING,
            )
            .values(
                status=STATUS_PROCESSED,
                title=title,
                content_hash=content_hash,
                word_count=word_count,
                indexed_at=now,
                last_error=None,
                claim_token=None,
                claimed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount != 1:
            raise DocumentProcessingError(
                f"Claim on document {document_id} was lost before completion"
            )

        if term_counts:
            # Sorted so concurrent batches take term row locks in one order
            texts = sorted(term_counts)

            upsert = dialect_insert(self._session, Term).values(
                [
                    {"text": t, "document_frequency": 1, "idf": 0.0, "updated_at": now}
                    for t in texts
                ]
            )
            upsert = upsert.on_conflict_do_update(
                index_elements=[Term.text],
                set_={
                    "document_frequency": Term.document_frequency + 1,
                    "updated_at": now,
                },
            )
            await self._session.execute(upsert)

            result = await self._session.execute(
                select(Term.id, Term.text).where(Term.text.in_(texts))
            )
            term_ids = {row.text: row.id for row in result}

            await self._session.execute(
                insert(DocumentTerm),
                [
                    {
                        "document_id": document_id,
                        "term_id": term_ids[t],
                        "count": term_counts[t],
                    }
                    for t in texts
                ],
            )

    async def release_document(
        self,
        document_id: int,
        claim_token: str,
        error: str,
        max_attempts: int,
    ) -> Optional[str]:
        """
        Return a claimed document to `pending` with an error annotation.

        Once its attempts reach `max_attempts` the document is parked as
        `failed` instead. Returns the resulting status, or None if the claim
        was no longer held.
        """
        attempts = Document.attempts + 1
        result = await self._session.execute(
            update(Document)
            .where(
                Document.id == document_id,
                Document.claim_token == claim_token,
            )
            .values(
                status=case(
                    (attempts >= max_attempts, STATUS_FAILED),
                    else_=STATUS_PENDING,
                ),
                attempts=attempts,
                last_error=error[:2000],
                claim_token=None,
                claimed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        status = await self._session.execute(
            select(Document.status).where(Document.id == document_id)
        )
        return status.scalar_one()

    async def get_processed_document(self, page_id: str) -> Optional[Document]:
        result = await self._session.execute(
            select(Document).where(
                Document.page_id == page_id,
                Document.status == STATUS_PROCESSED,
            )
        )
        return result.scalar_one_or_none()

    async def count_documents(self, status: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(Document)
        if status is not None:
            stmt = stmt.where(Document.status == status)
        result = await self._session.execute(stmt)
        return result.scalar() or 0

    async def count_unfinished(self) -> int:
        """
        Count documents still waiting to be indexed: pending ones and ones
        claimed by a batch that has not finished them yet.
        """
        result = await self._session.execute(
            select(func.count())
            .select_from(Document)
            .where(Document.status.in_([STATUS_PENDING, STATUS_PROCESSING]))
        )
        return result.scalar() or 0

    async def average_word_count(self) -> float:
        result = await self._session.execute(
            select(func.avg(Document.word_count)).where(
                Document.status == STATUS_PROCESSED
            )
        )
        return float(result.scalar() or 0.0)

    # ------------------------------------------------------------------
    # Term / Document-Frequency Store
    # ------------------------------------------------------------------

    async def count_terms(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(Term))
        return result.scalar() or 0

    async def get_document_frequencies(self) -> List[Tuple[int, int]]:
        """
        Return (term_id, document_frequency) for every term.
        """
        result = await self._session.execute(
            select(Term.id, Term.document_frequency).order_by(Term.id)
        )
        return [(row.id, row.document_frequency) for row in result]

    async def get_term_stats(self, text: str) -> Optional[Tuple[int, float]]:
        """
        Return (document_frequency, idf) for a term, or None if unknown.
        """
        result = await self._session.execute(
            select(Term.document_frequency, Term.idf).where(Term.text == text)
        )
        row = result.one_or_none()
        return (row.document_frequency, row.idf) if row else None

    async def write_idf(self, idf_by_term: Dict[int, float]) -> int:
        """
        Bulk-overwrite IDF values keyed by term id.
        """
        if not idf_by_term:
            return 0

        now = utcnow()
        await self._session.execute(
            update(Term),
            [
                {"id": term_id, "idf": idf, "updated_at": now}
                for term_id, idf in idf_by_term.items()
            ],
        )
        return len(idf_by_term)

    # ------------------------------------------------------------------
    # Similarity Storage
    # ------------------------------------------------------------------

    async def load_term_snapshot(
        self,
    ) -> Tuple[Dict[int, Dict[int, int]], Dict[int, float]]:
        """
        Read every processed document's term counts and the idf of each term
        they use, in one statement.

        Documents with no terms are present with an empty count map, so the
        first mapping's length is the processed-document count of the snapshot.
        """
        stmt = (
            select(
                Document.id.label("document_id"),
                DocumentTerm.term_id,
                DocumentTerm.count,
                Term.idf,
            )
            .select_from(Document)
            .outerjoin(DocumentTerm, DocumentTerm.document_id == Document.id)
            .outerjoin(Term, Term.id == DocumentTerm.term_id)
            .where(Document.status == STATUS_PROCESSED)
            .order_by(Document.id)
        )
        result = await self._session.execute(stmt)

        counts: Dict[int, Dict[int, int]] = {}
        idf: Dict[int, float] = {}
        for row in result:
            document_counts = counts.setdefault(row.document_id, {})
            if row.term_id is not None:
                document_counts[row.term_id] = row.count
                idf[row.term_id] = row.idf or 0.0
        return counts, idf

    async def replace_similarities(
        self,
        neighbors: Dict[int, List[Tuple[int, float]]],
    ) -> int:
        """
        Replace all stored edges with the given per-document neighbour lists.

        Returns the number of edges written.
        """
        await self._session.execute(delete(SimilarityEdge))

        rows = [
            {"source_id": source_id, "target_id": target_id, "score": score, "rank": rank}
            for source_id, entries in neighbors.items()
            for rank, (target_id, score) in enumerate(entries, start=1)
            if target_id != source_id
        ]
        for chunk in _chunks(rows, INSERT_CHUNK_SIZE):
            await self._session.execute(insert(SimilarityEdge), list(chunk))

        return len(rows)

    async def count_similarities(self) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(SimilarityEdge)
        )
        return result.scalar() or 0

    async def get_neighbors(
        self,
        document_id: int,
        min_score: float,
        limit: int,
    ) -> List[Any]:
        """
        Return stored neighbours of a document, best first.

        Rows expose `score`, `content_id`, `page_id`, `url` and `title`.
        """
        target = aliased(Document)
        stmt = (
            select(
                SimilarityEdge.score,
                target.id.label("content_id"),
                target.page_id,
                target.url,
                target.title,
            )
            .join(target, target.id == SimilarityEdge.target_id)
            .where(
                SimilarityEdge.source_id == document_id,
                SimilarityEdge.target_id != document_id,
                SimilarityEdge.score >= min_score,
                target.status == STATUS_PROCESSED,
            )
            .order_by(SimilarityEdge.score.desc(), target.id)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.all())

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def clear_all(self) -> int:
        """
        Delete all documents, terms and edges and reset the index state.

        Returns the number of documents deleted.
        """
        await self.ensure_state()
        await self._session.execute(
            update(IndexState)
            .where(IndexState.id == STATE_ID)
            .values(
                corpus_version=IndexState.corpus_version + 1,
                idf_version=0,
                idf_document_count=0,
                idf_calculated_at=None,
                similarity_version=0,
                similarities_calculated_at=None,
                indexing_started_at=None,
                indexing_total=0,
            )
        )
        await self._session.execute(delete(SimilarityEdge))
        await self._session.execute(delete(DocumentTerm))
        result = await self._session.execute(delete(Document))
        await self._session.execute(delete(Term))
        return result.rowcount if result.rowcount >= 0 else 0
