"""Stats routes - Pipeline observability."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from chainstream.api.deps import get_db
from chainstream.schemas.api import CheckpointOut, EntityStatsResponse, StatsResponse
from chainstream.services.data_service import DataService

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=list[StatsResponse])
def get_task_stats(
    kind: Optional[Literal["block", "transaction", "address", "smart_contract", "token", "webhook"]] = Query(
        None, description="Filter by task kind"
    ),
    status: Optional[str] = Query(None, description="Filter by status (running, success, partial, failure)"),
    limit: int = Query(10, ge=1, le=100, description="Number of runs to return"),
    db: Session = Depends(get_db),
):
    """
    Get recent task runs.

    Failed runs carry the error class and a truncated stack, which is
    what a manual replay needs.
    """
    service = DataService(db)
    runs = service.get_task_runs(kind=kind, status=status, limit=limit)

    return [
        StatsResponse(
            run_id=str(run.run_id),
            kind=run.kind,
            entity_key=run.entity_key,
            status=run.status,
            attempts=run.attempts,
            error_message=run.error_message,
            started_at=run.started_at,
            ended_at=run.ended_at,
        )
        for run in runs
    ]


@router.get("/entities", response_model=EntityStatsResponse)
def get_entity_stats(db: Session = Depends(get_db)):
    """Entity counts per status, run outcomes per kind, and stream checkpoints."""
    service = DataService(db)
    return EntityStatsResponse(
        entities=service.get_entity_counts(),
        runs=service.get_run_summary(),
        checkpoints=[CheckpointOut.model_validate(cp) for cp in service.get_checkpoints()],
    )
