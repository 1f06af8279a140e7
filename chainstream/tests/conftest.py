"""Shared fixtures: in-memory database, fake upstreams, fast retry policies."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STREAM_ENABLED", "false")
os.environ.setdefault("RUN_MIGRATIONS", "false")

import pytest

from chainstream.core.db import build_engine, build_session_factory
from chainstream.core.retry import BlockPollPolicy, fetch_retry_policy
from chainstream.core.sampling import SamplingPolicy
from chainstream.models import Base
from chainstream.services.broadcast import BroadcastGateway
from chainstream.services.entity_store import EntityStore
from chainstream.services.pipeline import EnrichmentPipeline
from chainstream.tests.fakes import FakeChain, FakeEmbedder, FakeIndex


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return EntityStore(session_factory)


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def index():
    return FakeIndex()


@pytest.fixture
def gateway():
    gateway = BroadcastGateway(queue_size=10)
    gateway.start()
    return gateway


@pytest.fixture
def make_pipeline(store, chain, embedder, index, gateway):
    def factory(sampling=None, webhooks=None, workers=4, max_polls=3):
        return EnrichmentPipeline(
            store=store,
            chain=chain,
            embedder=embedder,
            index=index,
            broadcast=gateway,
            sampling=sampling or SamplingPolicy.always(),
            webhooks=webhooks,
            block_poll=BlockPollPolicy(max_polls=max_polls, poll_timeout=1.0, delay_seconds=0),
            fetch_policy=fetch_retry_policy(attempts=3, transient_delay=0, api_delay=0),
            workers=workers,
        )

    return factory
