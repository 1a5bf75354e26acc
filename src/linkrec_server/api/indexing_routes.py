"""
Internal-Linking Index Routes

Admin endpoints that drive the indexing lifecycle:
- Start discovery and queue new pages
- Process pending pages in bounded batches
- Recompute IDF and the similarity graph
- Inspect, monitor and clear the index

Batch processing is pull-driven: the admin UI (or scripts/reindex.py) calls
POST /process repeatedly until `remaining` is 0.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, Query

from .dependencies import get_engine, verify_admin
from .models import ProcessBatchRequest, RecommendationsResponse
from ..indexing.engine import TfIdfEngine
from ..indexing.models import (
    BatchResult,
    IndexingResult,
    IndexProgress,
    IndexStats,
    OperationResult,
    SimilarityRunResult,
)

router = APIRouter(
    prefix="/admin/internal-linking",
    tags=["internal-linking"],
    dependencies=[Depends(verify_admin)],
)

Engine = Annotated[TfIdfEngine, Depends(get_engine)]


# ---------------------------------------------------------------------
# Index Lifecycle
# ---------------------------------------------------------------------

@router.post(
    "/index",
    response_model=IndexingResult,
    summary="Discover published pages and queue new ones",
)
async def start_indexing(engine: Engine) -> IndexingResult:
    return await engine.start_indexing()


@router.get(
    "/index",
    response_model=IndexStats,
    summary="Get index statistics",
)
async def get_index_stats(engine: Engine) -> IndexStats:
    return await engine.get_index_stats()


@router.delete(
    "/index",
    response_model=OperationResult,
    summary="Delete all documents, terms and similarities",
)
async def clear_index(engine: Engine) -> OperationResult:
    return await engine.clear_index()


@router.get(
    "/progress",
    response_model=IndexProgress,
    summary="Get indexing progress",
)
async def get_index_progress(engine: Engine) -> IndexProgress:
    return await engine.get_index_progress()


@router.post(
    "/process",
    response_model=BatchResult,
    summary="Process the next batch of pending pages",
)
async def process_batch(
    engine: Engine,
    req: Optional[ProcessBatchRequest] = Body(default=None),
) -> BatchResult:
    """
    Process up to `batchSize` pending pages. Safe to call concurrently;
    each call claims a disjoint set of documents.
    """
    req = req or ProcessBatchRequest()
    return await engine.process_batch(req.batch_size)


@router.post(
    "/similarities",
    response_model=SimilarityRunResult,
    summary="Recompute IDF and all similarities",
)
async def calculate_similarities(engine: Engine) -> SimilarityRunResult:
    """
    Refresh IDF weights first so the similarity pass scores the current
    corpus, then rebuild every neighbour list.
    """
    await engine.recalculate_idf()
    return await engine.calculate_all_similarities()


# ---------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------

@router.get(
    "/recommendations/{page_id}",
    response_model=RecommendationsResponse,
    summary="Get related pages for a page",
)
async def get_recommendations(
    page_id: str,
    engine: Engine,
    limit: Optional[int] = Query(None, ge=1, le=50),
    min_similarity: Optional[float] = Query(None, ge=0.0, le=1.0, alias="minSimilarity"),
) -> RecommendationsResponse:
    """
    Return the stored neighbours of a page. `limit` and `minSimilarity`
    default to the current linking settings; unknown pages yield an empty
    list.
    """
    recommendations = await engine.get_similar_content(
        page_id,
        limit=limit,
        min_similarity=min_similarity,
    )
    return RecommendationsResponse(
        page_id=page_id,
        recommendations=recommendations,
        count=len(recommendations),
    )
