from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class BlockOut(BaseModel):
    id: int
    block_number: int
    status: str
    summary: Optional[str] = None
    error_message: Optional[str] = None
    raw_data: Optional[dict] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TransactionRef(BaseModel):
    id: int
    transaction_hash: str
    status: str

    class Config:
        from_attributes = True


class AddressRef(BaseModel):
    id: int
    address_hash: str
    status: str

    class Config:
        from_attributes = True


class BlockDetail(BlockOut):
    transactions: list[TransactionRef] = []


class TransactionOut(BaseModel):
    id: int
    transaction_hash: str
    block_id: int
    status: str
    error_message: Optional[str] = None
    raw_data: Optional[dict] = None
    addresses: list[AddressRef] = []

    class Config:
        from_attributes = True


class AddressOut(BaseModel):
    id: int
    address_hash: str
    status: str
    error_message: Optional[str] = None
    raw_data: Optional[dict] = None
    is_contract: bool = False
    transactions: list[TransactionRef] = []

    class Config:
        from_attributes = True


class SmartContractOut(BaseModel):
    id: int
    address_hash: str
    status: str
    error_message: Optional[str] = None
    raw_data: Optional[dict] = None

    class Config:
        from_attributes = True


class TokenOut(BaseModel):
    id: int
    address_hash: str
    status: str
    error_message: Optional[str] = None
    raw_data: Optional[dict] = None

    class Config:
        from_attributes = True


class SearchResult(BaseModel):
    id: int | str
    score: Optional[float] = None
    summary: Optional[str] = None


class HealthResponse(BaseModel):
    database: str
    pipeline: str
    stream: str
    queued_tasks: int
    last_task_status: str | None


class StatsResponse(BaseModel):
    run_id: str
    kind: str
    entity_key: str
    status: str
    attempts: int
    error_message: str | None = None
    started_at: datetime
    ended_at: datetime | None

    class Config:
        from_attributes = True


class CheckpointOut(BaseModel):
    stream_name: str
    last_block_number: int
    updated_at: datetime

    class Config:
        from_attributes = True


class EntityStatsResponse(BaseModel):
    entities: dict[str, dict[str, int]]
    runs: list[dict[str, Any]]
    checkpoints: list[CheckpointOut]


class ReplayResponse(BaseModel):
    queued: bool
    kind: str
    entity_id: int
    key: str
