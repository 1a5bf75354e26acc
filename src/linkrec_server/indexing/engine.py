"""
TF-IDF Internal-Linking Engine

Orchestrates the five passes of the recommendation engine on top of the
index store:

- start_indexing: discover publishable pages and queue new ones
- process_batch: bounded, resumable tokenization of pending documents
- recalculate_idf: corpus-wide IDF refresh
- calculate_all_similarities: pairwise cosine pass with top-K truncation
- get_similar_content: serve precomputed neighbour lists

The engine has no scheduler of its own. process_batch does a bounded amount
of work per call and is driven repeatedly by an external caller (the admin
UI or scripts/reindex.py) until `remaining` reaches zero.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import (
    BatchResult,
    IndexingResult,
    IndexProgress,
    IndexStats,
    OperationResult,
    SimilarContent,
    SimilarityRunResult,
)
from .processor import ContentProcessor
from .similarity import compute_neighbors
from .tfidf import compute_idf, tfidf_vector
from ..config import settings as app_settings
from ..content.models import ContentSource
from ..core.errors import ContentSourceError, CorpusTooSmallError
from ..db.index_store import IndexStore
from ..db.models import (
    Document,
    LinkingSettings,
    STATUS_FAILED,
    STATUS_PROCESSED,
    utcnow,
)
from ..db.settings_store import LinkingSettingsStore

logger = logging.getLogger("linkrec.engine")


def _excluded(url: str, patterns: List[str]) -> bool:
    return any(p in url for p in patterns)


class TfIdfEngine:
    """
    Incremental TF-IDF indexer and similarity calculator.

    Each pass opens its own sessions from `session_factory`; indexing commits
    once per document so a failure never rolls back sibling work.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        content_source: ContentSource,
        processor: Optional[ContentProcessor] = None,
        claim_timeout_seconds: Optional[int] = None,
        max_document_attempts: Optional[int] = None,
        min_stored_similarity: Optional[float] = None,
    ) -> None:
        self._session_factory = session_factory
        self._source = content_source
        self._processor = processor or ContentProcessor()
        self._claim_timeout = timedelta(
            seconds=claim_timeout_seconds
            if claim_timeout_seconds is not None
            else app_settings.claim_timeout_seconds
        )
        self._max_attempts = (
            max_document_attempts
            if max_document_attempts is not None
            else app_settings.max_document_attempts
        )
        self._min_stored_similarity = (
            min_stored_similarity
            if min_stored_similarity is not None
            else app_settings.min_stored_similarity
        )

    async def _load_settings(self) -> LinkingSettings:
        async with self._session_factory() as session:
            linking = await LinkingSettingsStore(session).get()
            await session.commit()
            return linking

    # ------------------------------------------------------------------
    # Indexer
    # ------------------------------------------------------------------

    async def start_indexing(self) -> IndexingResult:
        """
        Queue every publishable page not yet in the index.

        Already-known pages are skipped; known pages whose content changed
        since discovery are reported as stale but not re-queued.
        """
        try:
            pages = await self._source.list_published()
        except ContentSourceError as exc:
            logger.error("Could not list published pages: %s", exc)
            return IndexingResult(success=False, message=str(exc))

        if not pages:
            return IndexingResult(success=True, message="No pages to index")

        linking = await self._load_settings()
        patterns = [p.strip() for p in linking.excluded_urls.splitlines() if p.strip()]

        async with self._session_factory() as session:
            store = IndexStore(session)
            known = await store.get_known_documents()

            records = []
            skipped = 0
            stale = 0
            seen = set()
            for page in pages:
                if page.id in seen or _excluded(page.url, patterns):
                    continue
                seen.add(page.id)

                content_hash = self._processor.content_hash(
                    self._processor.compose_text(page)
                )
                if page.id in known:
                    skipped += 1
                    if known[page.id] and known[page.id] != content_hash:
                        stale += 1
                    continue

                records.append(
                    {
                        "page_id": page.id,
                        "url": page.url,
                        "title": page.display_title,
                        "content_hash": content_hash,
                    }
                )

            queued = await store.enqueue_documents(records)
            await store.record_indexing_started(len(seen))
            await store.commit()

        if stale:
            logger.warning(
                "%d indexed pages changed since they were processed; clear the index to pick up edits",
                stale,
            )
        logger.info("Indexing started: %d queued, %d already indexed", queued, skipped)

        message = f"Queued {queued} pages ({skipped} already indexed"
        message += f", {stale} changed since indexing)" if stale else ")"
        return IndexingResult(
            success=True,
            message=message,
            queued=queued,
            skipped=skipped,
            stale=stale,
        )

    async def _claim(self, batch_size: int, claim_token: str) -> List[Document]:
        stale_before = utcnow() - self._claim_timeout
        async with self._session_factory() as session:
            store = IndexStore(session)
            await store.ensure_state()
            claimed = await store.claim_pending(batch_size, claim_token, stale_before)
            await store.commit()
            return claimed

    async def _process_document(
        self,
        document: Document,
        claim_token: str,
        max_terms: int,
    ) -> None:
        page = await self._source.get_document(document.page_id)
        processed = self._processor.process(page, max_terms)
        logger.debug(
            "Document %s: %d words, %d distinct terms, %d kept",
            document.id,
            processed.word_count,
            processed.distinct_terms,
            len(processed.term_counts),
        )

        async with self._session_factory() as session:
            store = IndexStore(session)
            try:
                await store.mark_processed(
                    document.id,
                    claim_token,
                    title=processed.title,
                    content_hash=processed.content_hash,
                    word_count=processed.word_count,
                    term_counts=processed.term_counts,
                )
                await store.commit()
            except Exception:
                await store.rollback()
                raise

    async def _release(self, document: Document, claim_token: str, error: str) -> Optional[str]:
        async with self._session_factory() as session:
            store = IndexStore(session)
            status = await store.release_document(
                document.id, claim_token, error, self._max_attempts
            )
            await store.commit()
            return status

    async def process_batch(self, batch_size: int) -> BatchResult:
        """
        Tokenize and count up to `batch_size` pending documents.

        A document that fails is released back to pending with its error
        recorded (or parked as failed after too many attempts); the rest of
        the batch carries on.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be a positive integer")

        linking = await self._load_settings()
        claim_token = str(uuid.uuid4())
        claimed = await self._claim(batch_size, claim_token)

        processed = 0
        failed = 0
        for document in claimed:
            try:
                await self._process_document(document, claim_token, linking.max_terms_per_doc)
                processed += 1
            except Exception as exc:
                failed += 1
                logger.exception("Failed to process document %s (%s)", document.id, document.url)
                status = await self._release(
                    document, claim_token, f"{type(exc).__name__}: {exc}"
                )
                if status == STATUS_FAILED:
                    logger.error(
                        "Document %s parked as failed after %d attempts",
                        document.id,
                        self._max_attempts,
                    )

        async with self._session_factory() as session:
            remaining = await IndexStore(session).count_unfinished()

        if claimed:
            logger.info(
                "Batch done: %d processed, %d failed, %d remaining",
                processed,
                failed,
                remaining,
            )

        return BatchResult(
            success=True,
            processed=processed,
            failed=failed,
            remaining=remaining,
        )

    # ------------------------------------------------------------------
    # IDF Calculator
    # ------------------------------------------------------------------

    async def recalculate_idf(self) -> int:
        """
        Recompute idf = ln(N / df) for every term.

        The index-state row is locked for the duration so no document is
        counted into the corpus between reading N and writing the weights.

        Returns
        -------
        int
            Number of terms updated.
        """
        async with self._session_factory() as session:
            store = IndexStore(session)
            state = await store.get_state(for_update=True)
            total_documents = await store.count_documents(STATUS_PROCESSED)

            if total_documents == 0:
                await store.rollback()
                return 0

            frequencies = await store.get_document_frequencies()
            updated = await store.write_idf(compute_idf(total_documents, frequencies))
            await store.record_idf(state.corpus_version, total_documents)
            await store.commit()

        logger.info("Recalculated IDF for %d terms over %d documents", updated, total_documents)
        return updated

    # ------------------------------------------------------------------
    # Similarity Calculator
    # ------------------------------------------------------------------

    async def calculate_all_similarities(self) -> SimilarityRunResult:
        """
        Recompute and overwrite every document's neighbour list.
        """
        linking = await self._load_settings()

        try:
            async with self._session_factory() as session:
                store = IndexStore(session)
                state = await store.get_state(for_update=True)
                counts, idf = await store.load_term_snapshot()
                vectors = {
                    document_id: tfidf_vector(term_counts, idf)
                    for document_id, term_counts in counts.items()
                }

                if len(vectors) < 2:
                    raise CorpusTooSmallError(
                        f"At least 2 processed documents are required, found {len(vectors)}"
                    )

                if state.idf_version != state.corpus_version:
                    logger.warning(
                        "IDF was computed for corpus version %d but the corpus is at %d",
                        state.idf_version,
                        state.corpus_version,
                    )

                neighbors = compute_neighbors(
                    vectors,
                    max_per_doc=linking.max_similar_per_doc,
                    min_score=self._min_stored_similarity,
                )
                written = await store.replace_similarities(neighbors)
                await store.record_similarities(state.corpus_version)
                await store.commit()
        except CorpusTooSmallError as exc:
            logger.info("Similarity pass skipped: %s", exc)
            return SimilarityRunResult(success=False, calculated=0, message=str(exc))

        logger.info("Stored %d similarity edges for %d documents", written, len(vectors))
        return SimilarityRunResult(success=True, calculated=written)

    # ------------------------------------------------------------------
    # Recommendation Service
    # ------------------------------------------------------------------

    async def get_similar_content(
        self,
        page_id: str,
        limit: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> List[SimilarContent]:
        """
        Return the stored neighbours of a page, best first.

        `limit` and `min_similarity` default to the current settings. Pages
        that are unknown or not processed yet have no recommendations.
        """
        if limit is None or min_similarity is None:
            linking = await self._load_settings()
            if limit is None:
                limit = linking.max_recommendations
            if min_similarity is None:
                min_similarity = linking.similarity_threshold

        if limit < 1:
            return []

        async with self._session_factory() as session:
            store = IndexStore(session)
            document = await store.get_processed_document(page_id)
            if document is None:
                return []
            rows = await store.get_neighbors(document.id, min_similarity, limit)

        return [
            SimilarContent(
                content_id=row.content_id,
                page_id=row.page_id,
                url=row.url,
                title=row.title,
                similarity_score=round(row.score, 4),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Index Administration
    # ------------------------------------------------------------------

    async def get_index_stats(self) -> IndexStats:
        async with self._session_factory() as session:
            store = IndexStore(session)
            processed = await store.count_documents(STATUS_PROCESSED)
            state = await store.get_state()
            stats = IndexStats(
                total_documents=await store.count_documents(),
                total_terms=await store.count_terms(),
                processed_documents=processed,
                pending_documents=await store.count_unfinished(),
                failed_documents=await store.count_documents(STATUS_FAILED),
                average_word_count=round(await store.average_word_count()),
                total_similarities=await store.count_similarities(),
                idf_stale=processed > 0 and state.idf_version != state.corpus_version,
            )
            await session.commit()
        return stats

    async def get_index_progress(self) -> IndexProgress:
        """
        Summarize where the index is in its pending → processed → similarity
        cycle, for polling UIs.
        """
        async with self._session_factory() as session:
            store = IndexStore(session)
            state = await store.get_state()
            total = await store.count_documents()
            processed = await store.count_documents(STATUS_PROCESSED)
            in_flight = await store.count_unfinished()
            await session.commit()

        if total == 0:
            status = "idle"
        elif in_flight:
            status = "processing"
        elif state.similarity_version != state.corpus_version:
            status = "calculating"
        else:
            status = "complete"

        percent = round(processed / total * 100, 1) if total else 0.0
        return IndexProgress(
            status=status,
            total=total,
            processed=processed,
            percent=percent,
            discovered=state.indexing_total,
            started_at=state.indexing_started_at,
        )

    async def clear_index(self) -> OperationResult:
        """
        Irreversibly delete every document, term and similarity edge.
        """
        async with self._session_factory() as session:
            store = IndexStore(session)
            deleted = await store.clear_all()
            await store.commit()

        logger.warning("Index cleared (%d documents removed)", deleted)
        return OperationResult(success=True, message="Index cleared successfully")
