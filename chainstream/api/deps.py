"""API dependencies"""

from typing import Generator

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from chainstream.core.db import SessionLocal
from chainstream.services.runtime import Runtime


def get_db() -> Generator[Session, None, None]:
    """Database dependency"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_runtime(request: Request) -> Runtime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Pipeline runtime is not started")
    return runtime
