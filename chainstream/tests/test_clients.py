"""HTTP client tests against mocked transports"""

import json

import httpx
import pytest

from chainstream.core.errors import (
    DataError,
    EmbeddingError,
    NotFoundError,
    TransientNetworkError,
    UpstreamApiError,
    VectorIndexError,
)
from chainstream.ingestion.chain_client import IndexerClient, RpcProxyClient, normalize_address
from chainstream.models.alerts import AlertSubscription
from chainstream.services.embedding_service import TASK_QUERY, GeminiEmbedder, OllamaEmbedder
from chainstream.services.vector_index import QdrantIndex
from chainstream.services.webhook_service import WebhookNotifier
from chainstream.tests.fakes import ADDR_A, BLOCK_NUMBER, TX_1, transaction_payload


def indexer(handler):
    return IndexerClient(base_url="http://indexer.test", token="secret", transport=httpx.MockTransport(handler))


class TestIndexerClient:
    @pytest.mark.asyncio
    async def test_fetch_transaction_uses_normalized_path_and_token(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"info": {"hash": TX_1}})

        client = indexer(handler)
        data = await client.fetch_transaction(TX_1.upper().replace("0X", "0x"))
        await client.aclose()

        assert data == {"info": {"hash": TX_1}}
        assert seen[0].url.path == f"/api/v1/ethereum/transactions/{TX_1}"
        assert seen[0].headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_not_found_body_means_no_data(self):
        client = indexer(lambda request: httpx.Response(200, json={"info": {"message": "Not found"}}))
        assert await client.fetch_address(ADDR_A) is None

    @pytest.mark.asyncio
    async def test_block_404_means_not_indexed_yet(self):
        client = indexer(lambda request: httpx.Response(404, json={"message": "Not found"}))

        assert await client.fetch_block(18500000) is None
        with pytest.raises(NotFoundError):
            await client.fetch_address(ADDR_A)

    @pytest.mark.asyncio
    async def test_server_error_raises_upstream_error(self):
        client = indexer(lambda request: httpx.Response(502, text="bad gateway"))

        with pytest.raises(UpstreamApiError) as excinfo:
            await client.fetch_smart_contract(ADDR_A)
        assert excinfo.value.status_code == 502

    @pytest.mark.asyncio
    async def test_fetch_token_path(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, json={"info": {"symbol": "USDT"}})

        data = await indexer(handler).fetch_token(ADDR_A)

        assert data["info"]["symbol"] == "USDT"
        assert seen == [f"/api/v1/ethereum/tokens/{ADDR_A.lower()}"]

    @pytest.mark.asyncio
    async def test_invalid_json_raises_upstream_error(self):
        client = indexer(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(UpstreamApiError):
            await client.fetch_block(1)

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = indexer(handler)
        with pytest.raises(TransientNetworkError):
            await client.fetch_address(ADDR_A)

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = indexer(handler)
        with pytest.raises(TransientNetworkError):
            await client.fetch_transaction(TX_1)

    @pytest.mark.asyncio
    async def test_malformed_hash_rejected_before_request(self):
        client = indexer(lambda request: pytest.fail("no request expected"))
        with pytest.raises(DataError):
            await client.fetch_address("0x123")

    def test_normalize_address(self):
        assert normalize_address(f"  {ADDR_A} ") == ADDR_A.lower()
        with pytest.raises(DataError):
            normalize_address("not-an-address")


class TestRpcProxy:
    @pytest.mark.asyncio
    async def test_forwards_request_and_returns_reply_verbatim(self):
        def handler(request):
            body = json.loads(request.content)
            assert body == {"jsonrpc": "2.0", "method": "eth_blockNumber", "params": [], "id": 7}
            return httpx.Response(200, json={"jsonrpc": "2.0", "result": "0x11a49a0", "id": 7})

        proxy = RpcProxyClient(url="http://node.test", token="", transport=httpx.MockTransport(handler))
        reply = await proxy.forward(b'{"jsonrpc": "2.0", "method": "eth_blockNumber", "params": [], "id": 7}')

        assert reply == {"jsonrpc": "2.0", "result": "0x11a49a0", "id": 7}

    @pytest.mark.asyncio
    async def test_unparseable_request_body(self):
        proxy = RpcProxyClient(url="http://node.test", transport=httpx.MockTransport(lambda r: pytest.fail("no call")))
        reply = await proxy.forward(b"{not json")

        assert reply == {"jsonrpc": "2.0", "error": {"code": -32700, "message": "Parse error"}, "id": None}

    @pytest.mark.asyncio
    async def test_non_json_upstream_reply(self):
        proxy = RpcProxyClient(url="http://node.test", transport=httpx.MockTransport(lambda r: httpx.Response(200, text="oops")))
        reply = await proxy.forward(b'{"jsonrpc": "2.0", "method": "eth_chainId", "id": 3}')

        assert reply["error"]["code"] == -32700
        assert reply["id"] == 3

    @pytest.mark.asyncio
    async def test_upstream_failure_is_internal_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        proxy = RpcProxyClient(url="http://node.test", transport=httpx.MockTransport(handler))
        reply = await proxy.forward(b'{"jsonrpc": "2.0", "method": "eth_chainId", "id": "a"}')

        assert reply == {"jsonrpc": "2.0", "error": {"code": -32603, "message": "Internal error"}, "id": "a"}


class TestEmbedders:
    @pytest.mark.asyncio
    async def test_gemini_request_shape(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"embedding": {"values": [0.1, 0.2, 0.3]}})

        embedder = GeminiEmbedder(
            api_key="k",
            base_url="http://gemini.test/v1beta/models",
            model="text-embedding-004",
            dimensions=3,
            transport=httpx.MockTransport(handler),
        )
        vector = await embedder.embed("Block 1 was mined.", TASK_QUERY)
        await embedder.aclose()

        assert vector == [0.1, 0.2, 0.3]
        request = seen[0]
        assert str(request.url) == "http://gemini.test/v1beta/models/text-embedding-004:embedContent"
        assert request.headers["x-goog-api-key"] == "k"
        assert json.loads(request.content) == {
            "model": "text-embedding-004",
            "content": {"parts": [{"text": "Block 1 was mined."}]},
            "output_dimensionality": 3,
            "task_type": "RETRIEVAL_QUERY",
        }

    @pytest.mark.asyncio
    async def test_gemini_error_status(self):
        embedder = GeminiEmbedder(
            api_key="k", base_url="http://gemini.test", model="m", dimensions=3,
            transport=httpx.MockTransport(lambda r: httpx.Response(429, text="quota")),
        )
        with pytest.raises(EmbeddingError, match="429"):
            await embedder.embed("text")

    @pytest.mark.asyncio
    async def test_dimension_mismatch_rejected(self):
        embedder = GeminiEmbedder(
            api_key="k", base_url="http://gemini.test", model="m", dimensions=4,
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"embedding": {"values": [1.0]}})),
        )
        with pytest.raises(EmbeddingError, match="dimensions"):
            await embedder.embed("text")

    @pytest.mark.asyncio
    async def test_ollama_request_shape(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"embedding": [1, 2]})

        embedder = OllamaEmbedder(
            base_url="http://ollama.test", model="nomic-embed-text", token="", dimensions=2,
            transport=httpx.MockTransport(handler),
        )

        assert await embedder.embed("hello") == [1.0, 2.0]
        assert seen[0].url.path == "/api/embeddings"
        assert json.loads(seen[0].content) == {"model": "nomic-embed-text", "prompt": "hello"}

    @pytest.mark.asyncio
    async def test_ollama_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        embedder = OllamaEmbedder(base_url="http://ollama.test", model="m", token="", dimensions=2,
                                  transport=httpx.MockTransport(handler))
        with pytest.raises(EmbeddingError):
            await embedder.embed("hello")


class TestQdrantIndex:
    @pytest.mark.asyncio
    async def test_ensure_collection_creates_missing(self):
        seen = []

        def handler(request):
            seen.append(request)
            if request.method == "GET":
                return httpx.Response(404, json={"status": {"error": "Not found"}})
            return httpx.Response(200, json={"result": True, "status": "ok"})

        index = QdrantIndex(base_url="http://qdrant.test", api_key="qk", transport=httpx.MockTransport(handler))

        assert await index.ensure_collection("blocks", 768) is True
        create = seen[1]
        assert create.method == "PUT"
        assert create.url.path == "/collections/blocks"
        assert create.headers["api-key"] == "qk"
        assert json.loads(create.content)["vectors"] == {"size": 768, "distance": "Cosine"}

    @pytest.mark.asyncio
    async def test_ensure_collection_existing(self):
        index = QdrantIndex(
            base_url="http://qdrant.test", api_key="",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"result": {"status": "green"}})),
        )
        assert await index.ensure_collection("blocks", 768) is False

    @pytest.mark.asyncio
    async def test_upsert_waits_and_keys_by_entity_id(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"result": {"status": "completed"}, "status": "ok"})

        index = QdrantIndex(base_url="http://qdrant.test", api_key="", transport=httpx.MockTransport(handler))
        await index.upsert("addresses", 42, [0.5, 0.5], {"address_hash": ADDR_A.lower()})

        request = seen[0]
        assert request.method == "PUT"
        assert request.url.path == "/collections/addresses/points"
        assert request.url.params["wait"] == "true"
        assert json.loads(request.content) == {
            "points": [{"id": 42, "vector": [0.5, 0.5], "payload": {"address_hash": ADDR_A.lower()}}]
        }

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        index = QdrantIndex(
            base_url="http://qdrant.test", api_key="",
            transport=httpx.MockTransport(lambda r: httpx.Response(500, text="boom")),
        )
        with pytest.raises(VectorIndexError) as excinfo:
            await index.upsert("blocks", 1, [0.1])
        assert excinfo.value.status_code == 500

    @pytest.mark.asyncio
    async def test_retrieve_missing_point(self):
        index = QdrantIndex(
            base_url="http://qdrant.test", api_key="",
            transport=httpx.MockTransport(lambda r: httpx.Response(404, json={})),
        )
        assert await index.retrieve("blocks", 1) is None

    @pytest.mark.asyncio
    async def test_query_returns_points(self):
        index = QdrantIndex(
            base_url="http://qdrant.test", api_key="",
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, json={"result": {"points": [{"id": 1, "score": 0.9}]}})
            ),
        )
        assert await index.query("blocks", [0.1, 0.2], limit=1) == [{"id": 1, "score": 0.9}]


class TestWebhookNotifier:
    @pytest.fixture
    def alert_id(self, session_factory):
        with session_factory() as session:
            alert = AlertSubscription(address_hash=ADDR_A.lower(), webhook_url="http://hooks.test/a")
            session.add(alert)
            session.commit()
            return alert.id

    @pytest.mark.asyncio
    async def test_payload_carries_transaction_and_summary(self, store, alert_id):

        block, _ = store.ensure_block(BLOCK_NUMBER)
        tx, _ = store.ensure_transaction(TX_1, block.id)
        store.save_raw_data("transaction", tx.id, transaction_payload(TX_1, ADDR_A, ADDR_A))
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(204)

        notifier = WebhookNotifier(store, transport=httpx.MockTransport(handler))

        assert await notifier.deliver(alert_id, TX_1) is True
        assert bodies[0]["address_hash"] == ADDR_A.lower()
        assert bodies[0]["transaction_data"]["info"]["hash"] == TX_1
        assert bodies[0]["summary"].startswith(f"Transaction {TX_1}")

    @pytest.mark.asyncio
    async def test_failed_delivery_still_touches_alert(self, store, alert_id):

        notifier = WebhookNotifier(store, transport=httpx.MockTransport(lambda r: httpx.Response(500)))

        assert await notifier.deliver(alert_id, TX_1) is False
        assert store.get_alert(alert_id).last_triggered_at is not None

    @pytest.mark.asyncio
    async def test_malformed_webhook_url_still_touches_alert(self, store, session_factory):
        with session_factory() as session:
            alert = AlertSubscription(address_hash=ADDR_A.lower(), webhook_url="::")
            session.add(alert)
            session.commit()
            alert_id = alert.id

        notifier = WebhookNotifier(store, transport=httpx.MockTransport(lambda r: pytest.fail("no call")))

        assert await notifier.deliver(alert_id, TX_1) is False
        assert store.get_alert(alert_id).last_triggered_at is not None

    @pytest.mark.asyncio
    async def test_missing_alert_is_skipped(self, store):

        notifier = WebhookNotifier(store, transport=httpx.MockTransport(lambda r: pytest.fail("no call")))
        assert await notifier.deliver(999, TX_1) is False
