"""Wires the pipeline components together from settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from chainstream.core.config import settings
from chainstream.core.db import SessionLocal
from chainstream.core.errors import VectorIndexError
from chainstream.core.logging import get_logger
from chainstream.core.sampling import SamplingPolicy
from chainstream.ingestion.chain_client import IndexerClient, RpcProxyClient
from chainstream.ingestion.stream_listener import BlockStreamListener
from chainstream.services.broadcast import BroadcastGateway
from chainstream.services.embedding_service import BaseEmbedder, build_embedder
from chainstream.services.entity_store import EntityStore
from chainstream.services.pipeline import EnrichmentPipeline
from chainstream.services.vector_index import COLLECTIONS, QdrantIndex
from chainstream.services.webhook_service import WebhookNotifier

log = get_logger("runtime")


@dataclass
class Runtime:
    store: EntityStore
    indexer: IndexerClient
    rpc: RpcProxyClient
    embedder: BaseEmbedder
    index: QdrantIndex
    broadcast: BroadcastGateway
    webhooks: WebhookNotifier
    pipeline: EnrichmentPipeline
    listener: BlockStreamListener

    async def ensure_collections(self) -> None:
        for collection in COLLECTIONS.values():
            try:
                await self.index.ensure_collection(collection, self.embedder.dimensions)
            except VectorIndexError as exc:
                # Embedding upserts will fail and be logged per task
                log.warning(f"Could not ensure Qdrant collection {collection}: {exc}")

    def start(self, stream: bool = True) -> None:
        self.broadcast.start()
        self.pipeline.start()
        if stream:
            self.listener.start()

    async def stop(self) -> None:
        await self.listener.stop()
        await self.pipeline.stop()
        self.broadcast.stop()
        await self.indexer.aclose()
        await self.rpc.aclose()
        await self.embedder.aclose()
        await self.index.aclose()
        await self.webhooks.aclose()


def build_runtime(session_factory: Optional[sessionmaker] = None) -> Runtime:
    store = EntityStore(session_factory or SessionLocal)
    indexer = IndexerClient()
    embedder = build_embedder()
    index = QdrantIndex()
    broadcast = BroadcastGateway(queue_size=settings.BROADCAST_QUEUE_SIZE)
    webhooks = WebhookNotifier(store)
    pipeline = EnrichmentPipeline(
        store=store,
        chain=indexer,
        embedder=embedder,
        index=index,
        broadcast=broadcast,
        sampling=SamplingPolicy(settings.sampling_rates),
        webhooks=webhooks,
    )
    listener = BlockStreamListener(store, on_block_created=pipeline.on_block_created)
    return Runtime(
        store=store,
        indexer=indexer,
        rpc=RpcProxyClient(),
        embedder=embedder,
        index=index,
        broadcast=broadcast,
        webhooks=webhooks,
        pipeline=pipeline,
        listener=listener,
    )
