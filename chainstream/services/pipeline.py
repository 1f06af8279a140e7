"""Enrichment pipeline: block -> transactions -> addresses -> smart contracts and tokens.

Every unit of work is a ``PipelineTask`` executed by the shared worker
pool. Each handler only persists through the idempotent ``EntityStore``
operations, so duplicated or reordered tasks converge on the same rows.
A task that exhausts its retry budget marks its entity ``failed`` and
stops; nothing re-enqueues it automatically.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from chainstream.core.config import settings
from chainstream.core.errors import DataError, EmbeddingError, RetryExhaustedError, VectorIndexError
from chainstream.core.logging import format_failure, get_logger
from chainstream.core.retry import BlockPollPolicy, RetryPolicy, fetch_retry_policy
from chainstream.core.sampling import SamplingPolicy
from chainstream.ingestion.chain_client import TRANSACTION_PATTERN, normalize_address
from chainstream.models.entities import Block
from chainstream.models.runs import RUN_FAILURE, RUN_PARTIAL, RUN_SUCCESS
from chainstream.services.broadcast import BLOCKS_TOPIC, BroadcastGateway
from chainstream.services.embedding_service import TASK_DOCUMENT, BaseEmbedder
from chainstream.services.entity_store import EntityStore
from chainstream.services.summarizer import (
    summarize_address,
    summarize_block,
    summarize_smart_contract,
    summarize_token,
    summarize_transaction,
)
from chainstream.services.task_queue import TaskQueue
from chainstream.services.vector_index import COLLECTIONS, QdrantIndex

log = get_logger("pipeline")

TASK_BLOCK = "block"
TASK_TRANSACTION = "transaction"
TASK_ADDRESS = "address"
TASK_SMART_CONTRACT = "smart_contract"
TASK_TOKEN = "token"
TASK_WEBHOOK = "webhook"

ENTITY_TASKS = (TASK_BLOCK, TASK_TRANSACTION, TASK_ADDRESS, TASK_SMART_CONTRACT, TASK_TOKEN)

NULL_SEQUENCES = ("\u0000", "\\u0000")


@dataclass(frozen=True)
class PipelineTask:
    kind: str
    entity_id: int
    key: str


@dataclass
class TaskOutcome:
    attempts: int = 0
    partial_errors: List[str] = field(default_factory=list)


def sanitize_payload(data: Any) -> Any:
    """Strip NUL characters (and their escaped form) from every string value."""
    if isinstance(data, dict):
        return {key: sanitize_payload(value) for key, value in data.items()}
    if isinstance(data, list):
        return [sanitize_payload(item) for item in data]
    if isinstance(data, str):
        for sequence in NULL_SEQUENCES:
            data = data.replace(sequence, "")
        return data
    return data


def block_transaction_hashes(data: Dict[str, Any]) -> List[str]:
    raw = data.get("transactions") or {}
    items = raw.get("items", []) if isinstance(raw, dict) else raw
    hashes: List[str] = []
    for item in items or []:
        tx_hash = item.get("hash") if isinstance(item, dict) else item
        if isinstance(tx_hash, str):
            hashes.append(tx_hash.lower())
    return hashes


class EnrichmentPipeline:
    def __init__(
        self,
        store: EntityStore,
        chain: Any,
        embedder: BaseEmbedder,
        index: QdrantIndex,
        broadcast: BroadcastGateway,
        sampling: SamplingPolicy,
        webhooks: Any = None,
        block_poll: Optional[BlockPollPolicy] = None,
        fetch_policy: Optional[RetryPolicy] = None,
        workers: Optional[int] = None,
    ):
        self.store = store
        self.chain = chain
        self.embedder = embedder
        self.index = index
        self.broadcast = broadcast
        self.sampling = sampling
        self.webhooks = webhooks
        self.block_poll = block_poll or BlockPollPolicy(
            max_polls=settings.BLOCK_POLL_ATTEMPTS,
            poll_timeout=settings.BLOCK_POLL_TIMEOUT_SECONDS,
            delay_seconds=settings.BLOCK_POLL_DELAY_SECONDS,
        )
        self.fetch_policy = fetch_policy or fetch_retry_policy(
            attempts=settings.FETCH_RETRY_ATTEMPTS,
            transient_delay=settings.TRANSIENT_RETRY_DELAY_SECONDS,
            api_delay=settings.API_RETRY_DELAY_SECONDS,
        )
        self.queue: TaskQueue[PipelineTask] = TaskQueue(self.handle, workers or settings.PIPELINE_WORKERS)
        self._handlers: Dict[str, Callable[[PipelineTask, TaskOutcome], Awaitable[None]]] = {
            TASK_BLOCK: self.process_block,
            TASK_TRANSACTION: self.process_transaction,
            TASK_ADDRESS: self.process_address,
            TASK_SMART_CONTRACT: self.process_smart_contract,
            TASK_TOKEN: self.process_token,
            TASK_WEBHOOK: self.process_webhook,
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self.queue.running

    def start(self) -> None:
        self.queue.start()

    async def stop(self) -> None:
        await self.queue.stop()

    async def drain(self, timeout: Optional[float] = None) -> None:
        await self.queue.join(timeout=timeout)

    def enqueue(self, task: PipelineTask) -> None:
        if task.kind not in self._handlers:
            raise ValueError(f"Unknown task kind: {task.kind}")
        self.queue.put(task)

    def on_block_created(self, block: Block) -> None:
        """Stream listener hook; returns immediately."""
        self.enqueue(PipelineTask(TASK_BLOCK, block.id, str(block.block_number)))

    def replay(self, kind: str, key: str) -> PipelineTask:
        """Re-enqueue the task for an entity identified by its natural key."""
        if kind == TASK_BLOCK:
            entity, _ = self.store.ensure_block(int(key))
        elif kind == TASK_ADDRESS:
            entity, _ = self.store.ensure_address(normalize_address(key))
        elif kind == TASK_SMART_CONTRACT:
            entity, _ = self.store.ensure_smart_contract(normalize_address(key))
        elif kind == TASK_TOKEN:
            entity, _ = self.store.ensure_token(normalize_address(key))
        elif kind == TASK_TRANSACTION:
            # Transactions only exist under their block
            entity = self.store.find_by_key(kind, key)
            if entity is None:
                raise LookupError(f"Transaction {key} is not known; replay its block instead")
        else:
            raise ValueError(f"Cannot replay task kind {kind!r}")

        task = PipelineTask(kind, entity.id, str(key).lower() if kind != TASK_BLOCK else str(int(key)))
        self.enqueue(task)
        log.info(f"Replaying {kind} {task.key}")
        return task

    # -------------------------------------------------------------------------
    # Task execution
    # -------------------------------------------------------------------------
    async def handle(self, task: PipelineTask) -> str:
        """Run one task and record it in the run ledger; never raises task errors."""
        handler = self._handlers[task.kind]
        run_id = self.store.start_run(task.kind, task.key)
        outcome = TaskOutcome()
        try:
            await handler(task, outcome)
        except Exception as exc:  # noqa: BLE001
            attempts = exc.attempts if isinstance(exc, RetryExhaustedError) else max(outcome.attempts, 1)
            detail = format_failure(exc)
            log.error(f"{task.kind} task {task.key} (id={task.entity_id}) failed after {attempts} attempt(s): {detail}")
            if task.kind in ENTITY_TASKS:
                self.store.mark_failed(task.kind, task.entity_id, f"{type(exc).__name__}: {exc}")
            self.store.finish_run(run_id, RUN_FAILURE, attempts, detail)
            return RUN_FAILURE

        if outcome.partial_errors:
            self.store.finish_run(run_id, RUN_PARTIAL, outcome.attempts, "; ".join(outcome.partial_errors))
            return RUN_PARTIAL
        self.store.finish_run(run_id, RUN_SUCCESS, outcome.attempts)
        return RUN_SUCCESS

    async def _fetch(self, outcome: TaskOutcome, fetch: Callable[[str], Awaitable[Optional[Dict[str, Any]]]], key: str) -> Dict[str, Any]:
        async def attempt() -> Optional[Dict[str, Any]]:
            outcome.attempts += 1
            return await fetch(key)

        data = await self.fetch_policy.run(attempt)
        if not data:
            raise DataError(f"Upstream returned no data for {key}")
        return data

    async def _sample_embed(
        self,
        outcome: TaskOutcome,
        kind: str,
        entity_id: int,
        render: Callable[[], Tuple[str, Dict[str, Any]]],
    ) -> bool:
        """Embed and index the rendered summary when sampled.

        ``render`` returns ``(summary, payload)`` and runs only after the
        sampling draw succeeds. Failures here keep the persisted raw data.
        """
        if not self.sampling.should_sample(kind):
            return False
        summary, payload = render()
        try:
            vector = await self.embedder.embed(summary, TASK_DOCUMENT)
            await self.index.upsert(COLLECTIONS[kind], entity_id, vector, payload)
        except (EmbeddingError, VectorIndexError) as exc:
            outcome.partial_errors.append(f"{type(exc).__name__}: {exc}")
            log.error(f"Embedding {kind} {entity_id} failed, raw data kept: {format_failure(exc)}")
            return False
        return True

    async def process_block(self, task: PipelineTask, outcome: TaskOutcome) -> None:
        block_number = int(task.key)
        self.store.mark_fetching(TASK_BLOCK, task.entity_id)

        async def poll() -> Optional[Dict[str, Any]]:
            outcome.attempts += 1
            return await self.chain.fetch_block(block_number)

        data = await self.block_poll.poll(poll)
        if not data:
            raise RetryExhaustedError(
                f"Block {block_number} not available from the indexer after {outcome.attempts} polls",
                attempts=outcome.attempts,
            )

        self.store.save_raw_data(TASK_BLOCK, task.entity_id, data)
        # Blocks always carry their summary; only the embedding is sampled
        summary = summarize_block(data)
        self.store.save_block_summary(task.entity_id, summary)
        await self._sample_embed(
            outcome,
            TASK_BLOCK,
            task.entity_id,
            lambda: (summary, {"block_number": block_number, "summary": summary}),
        )
        self.broadcast.publish(BLOCKS_TOPIC, {"block_number": block_number, "summary": summary})

        created = 0
        for tx_hash in block_transaction_hashes(data):
            if not TRANSACTION_PATTERN.match(tx_hash):
                log.warning(f"Skipping malformed transaction hash {tx_hash!r} in block {block_number}")
                continue
            transaction, is_new = self.store.ensure_transaction(tx_hash, task.entity_id)
            if is_new:
                created += 1
                self.enqueue(PipelineTask(TASK_TRANSACTION, transaction.id, transaction.transaction_hash))
        log.info(f"Block {block_number} enriched, {created} transaction task(s) queued")

    async def process_transaction(self, task: PipelineTask, outcome: TaskOutcome) -> None:
        self.store.mark_fetching(TASK_TRANSACTION, task.entity_id)
        data = sanitize_payload(await self._fetch(outcome, self.chain.fetch_transaction, task.key))
        self.store.save_raw_data(TASK_TRANSACTION, task.entity_id, data)

        info = data.get("info") or {}
        participants: Dict[int, str] = {}
        for side in ("from", "to"):
            endpoint = info.get(side)
            address_hash = endpoint.get("hash") if isinstance(endpoint, dict) else None
            if not address_hash:
                continue
            address, _ = self.store.ensure_address(address_hash)
            self.store.link_address_transaction(address.id, task.entity_id)
            participants[address.id] = address.address_hash

        for address_id, address_hash in participants.items():
            self.enqueue(PipelineTask(TASK_ADDRESS, address_id, address_hash))

        if self.webhooks is not None:
            for alert in self.store.active_alerts_for(participants.values()):
                self.enqueue(PipelineTask(TASK_WEBHOOK, alert.id, task.key))

        def render() -> Tuple[str, Dict[str, Any]]:
            summary = summarize_transaction(data)
            return summary, {"transaction_hash": task.key, "summary": summary}

        await self._sample_embed(outcome, TASK_TRANSACTION, task.entity_id, render)

    async def process_address(self, task: PipelineTask, outcome: TaskOutcome) -> None:
        self.store.mark_fetching(TASK_ADDRESS, task.entity_id)
        data = await self._fetch(outcome, self.chain.fetch_address, task.key)
        self.store.save_raw_data(TASK_ADDRESS, task.entity_id, data)

        info = data.get("info") or {}
        if info.get("is_contract"):
            contract, _ = self.store.ensure_smart_contract(task.key)
            self.enqueue(PipelineTask(TASK_SMART_CONTRACT, contract.id, contract.address_hash))
        if info.get("token"):
            token, _ = self.store.ensure_token(task.key)
            self.enqueue(PipelineTask(TASK_TOKEN, token.id, token.address_hash))

        def render() -> Tuple[str, Dict[str, Any]]:
            summary = summarize_address(data)
            return summary, {"address_hash": task.key, "address_summary": summary}

        await self._sample_embed(outcome, TASK_ADDRESS, task.entity_id, render)

    async def process_smart_contract(self, task: PipelineTask, outcome: TaskOutcome) -> None:
        self.store.mark_fetching(TASK_SMART_CONTRACT, task.entity_id)
        data = await self._fetch(outcome, self.chain.fetch_smart_contract, task.key)
        self.store.save_raw_data(TASK_SMART_CONTRACT, task.entity_id, data)

        def render() -> Tuple[str, Dict[str, Any]]:
            summary = summarize_smart_contract({**data, "address_hash": task.key})
            return summary, {"address_hash": task.key, "summary": summary}

        await self._sample_embed(outcome, TASK_SMART_CONTRACT, task.entity_id, render)

    async def process_token(self, task: PipelineTask, outcome: TaskOutcome) -> None:
        self.store.mark_fetching(TASK_TOKEN, task.entity_id)
        data = await self._fetch(outcome, self.chain.fetch_token, task.key)
        self.store.save_raw_data(TASK_TOKEN, task.entity_id, data)

        def render() -> Tuple[str, Dict[str, Any]]:
            summary = summarize_token({**data, "address_hash": task.key})
            return summary, {"address_hash": task.key, "token_summary": summary}

        await self._sample_embed(outcome, TASK_TOKEN, task.entity_id, render)

    async def process_webhook(self, task: PipelineTask, outcome: TaskOutcome) -> None:
        outcome.attempts += 1
        await self.webhooks.deliver(task.entity_id, task.key)
