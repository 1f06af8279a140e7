"""Pipeline routes - Manual replay of entity tasks."""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException

from chainstream.api.deps import get_runtime
from chainstream.core.errors import DataError
from chainstream.core.logging import get_logger
from chainstream.schemas.api import ReplayResponse
from chainstream.services.runtime import Runtime

router = APIRouter(prefix="/pipeline", tags=["pipeline"])
log = get_logger("pipeline_routes")


@router.post("/replay/{kind}/{key}", response_model=ReplayResponse, status_code=202)
async def replay(
    kind: Literal["block", "transaction", "address", "smart_contract", "token"],
    key: str,
    runtime: Runtime = Depends(get_runtime),
):
    """
    Re-enqueue the enrichment task for one entity.

    Tasks that exhausted their retries are never retried automatically;
    this is the way to run them again. Returns immediately, check
    /stats for the outcome.
    """
    try:
        task = runtime.pipeline.replay(kind, key)
    except LookupError as exc:
        log.warning(f"Replay of {kind} {key} rejected: {exc}")
        raise HTTPException(status_code=404, detail=str(exc))
    except (DataError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return ReplayResponse(queued=True, kind=task.kind, entity_id=task.entity_id, key=task.key)
