"""Data Service - Read-only queries behind the HTTP endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from chainstream.core.logging import get_logger
from chainstream.models.checkpoints import StreamCheckpoint
from chainstream.models.entities import Address, Block, SmartContract, Token, Transaction
from chainstream.models.graph import AddressTransaction
from chainstream.models.runs import TaskRun
from chainstream.services.entity_store import ENTITY_MODELS

log = get_logger("data_service")


class DataService:
    """Handles all data query operations - reads from DB only, no writes."""

    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------------------------------
    # Entity Queries
    # -------------------------------------------------------------------------
    def get_block(self, block_number: int) -> Optional[Block]:
        stmt = select(Block).where(Block.block_number == block_number)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_block_transactions(self, block_id: int, limit: int = 500) -> List[Transaction]:
        stmt = select(Transaction).where(Transaction.block_id == block_id).order_by(Transaction.id).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def get_transaction(self, transaction_hash: str) -> Optional[Transaction]:
        stmt = select(Transaction).where(Transaction.transaction_hash == transaction_hash.lower())
        return self.db.execute(stmt).scalar_one_or_none()

    def get_transaction_addresses(self, transaction_id: int) -> List[Address]:
        stmt = (
            select(Address)
            .join(AddressTransaction, AddressTransaction.address_id == Address.id)
            .where(AddressTransaction.transaction_id == transaction_id)
            .order_by(Address.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_address(self, address_hash: str) -> Optional[Address]:
        stmt = select(Address).where(Address.address_hash == address_hash.lower())
        return self.db.execute(stmt).scalar_one_or_none()

    def get_address_transactions(self, address_id: int, limit: int = 100, offset: int = 0) -> List[Transaction]:
        stmt = (
            select(Transaction)
            .join(AddressTransaction, AddressTransaction.transaction_id == Transaction.id)
            .where(AddressTransaction.address_id == address_id)
            .order_by(Transaction.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_smart_contract(self, address_hash: str) -> Optional[SmartContract]:
        stmt = select(SmartContract).where(SmartContract.address_hash == address_hash.lower())
        return self.db.execute(stmt).scalar_one_or_none()

    def get_token(self, address_hash: str) -> Optional[Token]:
        stmt = select(Token).where(Token.address_hash == address_hash.lower())
        return self.db.execute(stmt).scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Task Runs & Checkpoints Queries
    # -------------------------------------------------------------------------
    def get_task_runs(
        self,
        kind: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 10,
    ) -> List[TaskRun]:
        """Get recent task runs with optional filtering."""
        stmt = select(TaskRun)

        if kind:
            stmt = stmt.where(TaskRun.kind == kind)
        if status:
            stmt = stmt.where(TaskRun.status == status)

        stmt = stmt.order_by(TaskRun.started_at.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def get_latest_task_run(self) -> Optional[TaskRun]:
        stmt = select(TaskRun).order_by(TaskRun.started_at.desc()).limit(1)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_checkpoints(self) -> List[StreamCheckpoint]:
        stmt = select(StreamCheckpoint).order_by(StreamCheckpoint.stream_name)
        return list(self.db.execute(stmt).scalars().all())

    # -------------------------------------------------------------------------
    # Aggregation
    # -------------------------------------------------------------------------
    def get_entity_counts(self) -> Dict[str, Dict[str, int]]:
        """Row counts per entity type, broken down by enrichment status."""
        counts: Dict[str, Dict[str, int]] = {}
        for kind, model in ENTITY_MODELS.items():
            stmt = select(model.status, func.count()).group_by(model.status)
            by_status = {status: count for status, count in self.db.execute(stmt).all()}
            by_status["total"] = sum(by_status.values())
            counts[kind] = by_status
        counts["address_transaction"] = {
            "total": self.db.execute(select(func.count()).select_from(AddressTransaction)).scalar() or 0
        }
        return counts

    def get_run_summary(self) -> List[Dict[str, Any]]:
        """Task run counts per kind and status."""
        stmt = select(TaskRun.kind, TaskRun.status, func.count()).group_by(TaskRun.kind, TaskRun.status)
        return [
            {"kind": kind, "status": status, "count": count}
            for kind, status, count in self.db.execute(stmt).all()
        ]
