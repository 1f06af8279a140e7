"""Health routes - System health and readiness checks."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import text
from sqlalchemy.orm import Session

from chainstream.api.deps import get_db
from chainstream.schemas.api import HealthResponse
from chainstream.services.data_service import DataService

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthResponse)
def health(request: Request, response: Response, db: Session = Depends(get_db)):
    """
    Health check endpoint for load balancer and Docker health checks.

    Checks database connectivity, worker pool and stream state, and the
    last task run. Returns 503 if the database is unreachable.
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception as e:
        db_status = f"down: {e}"
        response.status_code = 503

    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        pipeline_status, stream_status, queued = "stopped", "stopped", 0
    else:
        pipeline_status = "running" if runtime.pipeline.running else "stopped"
        if runtime.listener.connected:
            stream_status = "connected"
        elif runtime.listener.running:
            stream_status = "reconnecting"
        else:
            stream_status = "stopped"
        queued = runtime.pipeline.queue.pending

    last_run = DataService(db).get_latest_task_run()

    return HealthResponse(
        database=db_status,
        pipeline=pipeline_status,
        stream=stream_status,
        queued_tasks=queued,
        last_task_status=last_run.status if last_run else None,
    )


@router.get("/ready")
def readiness(response: Response, db: Session = Depends(get_db)):
    """
    Kubernetes/ELB readiness probe - checks if service can serve traffic.

    Returns 200 if ready, 503 if database is unreachable.
    """
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready", "timestamp": datetime.now(timezone.utc).isoformat()}
    except Exception as e:
        response.status_code = 503
        return {"status": "not_ready", "error": str(e), "timestamp": datetime.now(timezone.utc).isoformat()}
