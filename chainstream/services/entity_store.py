"""Entity Store - idempotent persistence for blocks, transactions, addresses and contracts.

Every operation opens its own short-lived session, so no database
connection or row lock is held while a task awaits upstream I/O.
Uniqueness constraints are the only concurrency guard: find-or-create
is "insert, on conflict do nothing, re-read".
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, sessionmaker

from chainstream.core.logging import get_logger
from chainstream.models.alerts import ALERT_ACTIVE, AlertSubscription
from chainstream.models.checkpoints import StreamCheckpoint
from chainstream.models.entities import (
    STATUS_ENRICHED,
    STATUS_FAILED,
    STATUS_FETCHING,
    Address,
    Block,
    SmartContract,
    Token,
    Transaction,
)
from chainstream.models.graph import AddressTransaction
from chainstream.models.runs import RUN_RUNNING, TaskRun

log = get_logger("entity_store")

ENTITY_MODELS: Dict[str, Type] = {
    "block": Block,
    "transaction": Transaction,
    "address": Address,
    "smart_contract": SmartContract,
    "token": Token,
}

# Natural key column per entity kind
ENTITY_KEYS: Dict[str, str] = {
    "block": "block_number",
    "transaction": "transaction_hash",
    "address": "address_hash",
    "smart_contract": "address_hash",
    "token": "address_hash",
}


def normalize_hash(value: str) -> str:
    return value.strip().lower()


class EntityStore:
    """Persistence contract used by the stream listener and the enrichment pipeline."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # -------------------------------------------------------------------------
    # Find-or-create
    # -------------------------------------------------------------------------
    @staticmethod
    def _insert_for(session: Session):
        if session.get_bind().dialect.name == "sqlite":
            return sqlite_insert
        return pg_insert

    def _insert_ignore(self, session: Session, model: Type, values: Dict[str, Any], conflict: Sequence[str]) -> bool:
        """Insert a row unless it collides on ``conflict``; True when a row was written."""
        insert = self._insert_for(session)
        stmt = insert(model.__table__).values(**values).on_conflict_do_nothing(index_elements=list(conflict))
        result = session.execute(stmt)
        return result.rowcount == 1

    def _find_or_create(self, model: Type, key_column: str, values: Dict[str, Any]) -> Tuple[Any, bool]:
        with self.session_factory() as session:
            created = self._insert_ignore(session, model, values, [key_column])
            session.commit()
            record = session.execute(
                select(model).where(getattr(model, key_column) == values[key_column])
            ).scalar_one()
            if created:
                log.debug(f"Created {model.__tablename__} row for {values[key_column]}")
            return record, created

    def ensure_block(self, block_number: int) -> Tuple[Block, bool]:
        return self._find_or_create(Block, "block_number", {"block_number": int(block_number)})

    def ensure_transaction(self, transaction_hash: str, block_id: int) -> Tuple[Transaction, bool]:
        return self._find_or_create(
            Transaction,
            "transaction_hash",
            {"transaction_hash": normalize_hash(transaction_hash), "block_id": block_id},
        )

    def ensure_address(self, address_hash: str) -> Tuple[Address, bool]:
        return self._find_or_create(Address, "address_hash", {"address_hash": normalize_hash(address_hash)})

    def ensure_smart_contract(self, address_hash: str) -> Tuple[SmartContract, bool]:
        return self._find_or_create(
            SmartContract,
            "address_hash",
            {"address_hash": normalize_hash(address_hash)},
        )

    def ensure_token(self, address_hash: str) -> Tuple[Token, bool]:
        return self._find_or_create(Token, "address_hash", {"address_hash": normalize_hash(address_hash)})

    def link_address_transaction(self, address_id: int, transaction_id: int) -> bool:
        """Record participation; a repeated pair is a no-op."""
        with self.session_factory() as session:
            created = self._insert_ignore(
                session,
                AddressTransaction,
                {"address_id": address_id, "transaction_id": transaction_id},
                ["address_id", "transaction_id"],
            )
            session.commit()
            return created

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------
    def get(self, kind: str, entity_id: int) -> Optional[Any]:
        with self.session_factory() as session:
            return session.get(ENTITY_MODELS[kind], entity_id)

    def find_by_key(self, kind: str, key: str | int) -> Optional[Any]:
        model = ENTITY_MODELS[kind]
        column = ENTITY_KEYS[kind]
        value = int(key) if kind == "block" else normalize_hash(str(key))
        with self.session_factory() as session:
            return session.execute(select(model).where(getattr(model, column) == value)).scalar_one_or_none()

    def count(self, kind: str) -> int:
        with self.session_factory() as session:
            return session.execute(select(func.count()).select_from(ENTITY_MODELS[kind])).scalar() or 0

    def count_edges(self) -> int:
        with self.session_factory() as session:
            return session.execute(select(func.count()).select_from(AddressTransaction)).scalar() or 0

    # -------------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------------
    def _update(self, kind: str, entity_id: int, **values: Any) -> None:
        model = ENTITY_MODELS[kind]
        with self.session_factory() as session:
            session.execute(update(model).where(model.id == entity_id).values(**values))
            session.commit()

    def mark_fetching(self, kind: str, entity_id: int) -> None:
        self._update(kind, entity_id, status=STATUS_FETCHING)

    def save_raw_data(self, kind: str, entity_id: int, data: Dict[str, Any]) -> None:
        """Replace ``raw_data`` as a whole and mark the entity enriched."""
        self._update(kind, entity_id, raw_data=data, status=STATUS_ENRICHED, error_message=None)

    def mark_failed(self, kind: str, entity_id: int, error: str) -> None:
        """Terminal failure; ``raw_data`` keeps whatever it held before."""
        self._update(kind, entity_id, status=STATUS_FAILED, error_message=error[:2000])

    def save_block_summary(self, block_id: int, summary: str) -> None:
        self._update("block", block_id, summary=summary)

    # -------------------------------------------------------------------------
    # Graph
    # -------------------------------------------------------------------------
    def transactions_for_address(self, address_id: int) -> List[Transaction]:
        with self.session_factory() as session:
            stmt = (
                select(Transaction)
                .join(AddressTransaction, AddressTransaction.transaction_id == Transaction.id)
                .where(AddressTransaction.address_id == address_id)
                .order_by(Transaction.id)
            )
            return list(session.execute(stmt).scalars().all())

    def addresses_for_transaction(self, transaction_id: int) -> List[Address]:
        with self.session_factory() as session:
            stmt = (
                select(Address)
                .join(AddressTransaction, AddressTransaction.address_id == Address.id)
                .where(AddressTransaction.transaction_id == transaction_id)
                .order_by(Address.id)
            )
            return list(session.execute(stmt).scalars().all())

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------
    def active_alerts_for(self, address_hashes: Iterable[str]) -> List[AlertSubscription]:
        hashes = sorted({normalize_hash(h) for h in address_hashes if h})
        if not hashes:
            return []
        with self.session_factory() as session:
            stmt = select(AlertSubscription).where(
                func.lower(AlertSubscription.address_hash).in_(hashes),
                AlertSubscription.status == ALERT_ACTIVE,
            )
            return list(session.execute(stmt).scalars().all())

    def get_alert(self, alert_id: int) -> Optional[AlertSubscription]:
        with self.session_factory() as session:
            return session.get(AlertSubscription, alert_id)

    def touch_alert(self, alert_id: int) -> None:
        with self.session_factory() as session:
            session.execute(
                update(AlertSubscription)
                .where(AlertSubscription.id == alert_id)
                .values(last_triggered_at=datetime.now(timezone.utc))
            )
            session.commit()

    # -------------------------------------------------------------------------
    # Task-run ledger
    # -------------------------------------------------------------------------
    def start_run(self, kind: str, entity_key: str) -> uuid.UUID:
        with self.session_factory() as session:
            run = TaskRun(kind=kind, entity_key=str(entity_key), status=RUN_RUNNING, attempts=0)
            session.add(run)
            session.commit()
            return run.run_id

    def finish_run(self, run_id: uuid.UUID, status: str, attempts: int, error: Optional[str] = None) -> None:
        with self.session_factory() as session:
            session.execute(
                update(TaskRun)
                .where(TaskRun.run_id == run_id)
                .values(
                    status=status,
                    attempts=attempts,
                    error_message=error[:4000] if error else None,
                    ended_at=datetime.now(timezone.utc),
                )
            )
            session.commit()

    # -------------------------------------------------------------------------
    # Stream checkpoints
    # -------------------------------------------------------------------------
    def load_stream_checkpoint(self, stream_name: str) -> Optional[int]:
        with self.session_factory() as session:
            checkpoint = session.get(StreamCheckpoint, stream_name)
            return checkpoint.last_block_number if checkpoint else None

    def save_stream_checkpoint(self, stream_name: str, block_number: int) -> None:
        """Advance the checkpoint; an older block number never moves it back."""
        with self.session_factory() as session:
            insert = self._insert_for(session)
            table = StreamCheckpoint.__table__
            stmt = insert(table).values(stream_name=stream_name, last_block_number=block_number)
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.stream_name],
                set_={
                    "last_block_number": stmt.excluded.last_block_number,
                    "updated_at": datetime.now(timezone.utc),
                },
                where=table.c.last_block_number < stmt.excluded.last_block_number,
            )
            session.execute(stmt)
            session.commit()
