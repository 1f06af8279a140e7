"""Search routes - Semantic search over sampled entity summaries."""

from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from chainstream.api.deps import get_runtime
from chainstream.core.errors import EmbeddingError, VectorIndexError
from chainstream.core.logging import get_logger
from chainstream.schemas.api import SearchResult
from chainstream.services.embedding_service import TASK_QUERY
from chainstream.services.runtime import Runtime
from chainstream.services.vector_index import COLLECTIONS

router = APIRouter(prefix="/search", tags=["search"])
log = get_logger("search_routes")

EntityKind = Literal["block", "transaction", "address", "smart_contract", "token"]

# Payload field holding the summary text, per collection writer
SUMMARY_FIELDS = ("summary", "address_summary", "token_summary")


def _summary_of(payload: Optional[Dict[str, Any]]) -> Optional[str]:
    for field in SUMMARY_FIELDS:
        if (payload or {}).get(field):
            return payload[field]
    return None


@router.get("/{kind}", response_model=list[SearchResult])
async def search(
    kind: EntityKind,
    q: str = Query(..., min_length=1, description="Natural-language query"),
    limit: int = Query(10, ge=1, le=100, description="Number of matches to return"),
    runtime: Runtime = Depends(get_runtime),
):
    """
    Find the sampled entities whose summaries best match ``q``.

    Only entities that were sampled for embedding can be found.
    """
    try:
        vector = await runtime.embedder.embed(q, TASK_QUERY)
        points = await runtime.index.query(COLLECTIONS[kind], vector, limit)
    except (EmbeddingError, VectorIndexError) as exc:
        log.error(f"Search over {kind} failed: {type(exc).__name__}: {exc}")
        raise HTTPException(status_code=502, detail=str(exc))

    return [
        SearchResult(id=point.get("id"), score=point.get("score"), summary=_summary_of(point.get("payload")))
        for point in points
    ]


@router.get("/{kind}/points/{point_id}", response_model=SearchResult)
async def get_point(kind: EntityKind, point_id: int, runtime: Runtime = Depends(get_runtime)):
    """Get the indexed summary stored for one entity id."""
    try:
        point = await runtime.index.retrieve(COLLECTIONS[kind], point_id)
    except VectorIndexError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    if point is None:
        raise HTTPException(status_code=404, detail=f"No indexed {kind} with id {point_id}")
    return SearchResult(id=point.get("id", point_id), summary=_summary_of(point.get("payload")))
