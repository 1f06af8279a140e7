"""API endpoint tests"""

from types import SimpleNamespace

import httpx
import pytest
from fastapi.testclient import TestClient

from chainstream.api.deps import get_db
from chainstream.ingestion.chain_client import RpcProxyClient
from chainstream.main import app
from chainstream.models.runs import RUN_FAILURE
from chainstream.core.errors import EmbeddingError
from chainstream.services.embedding_service import TASK_QUERY
from chainstream.tests.fakes import ADDR_A, ADDR_B, BLOCK_NUMBER, TX_1, token_payload


class TestAPI:
    """Test API endpoints"""

    @pytest.fixture
    def runtime(self, make_pipeline, gateway, embedder, index):
        def node(request):
            return httpx.Response(200, json={"jsonrpc": "2.0", "result": "0x1", "id": 1})

        return SimpleNamespace(
            pipeline=make_pipeline(),
            listener=SimpleNamespace(connected=False, running=True),
            rpc=RpcProxyClient(url="http://node.test", token="", transport=httpx.MockTransport(node)),
            broadcast=gateway,
            embedder=embedder,
            index=index,
        )

    @pytest.fixture
    def client(self, session_factory, runtime):
        """Create test client bound to the in-memory database"""

        def override_db():
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_db
        app.state.runtime = runtime
        yield TestClient(app)
        app.dependency_overrides.clear()
        app.state.runtime = None

    @pytest.fixture
    def seeded(self, store):
        block, _ = store.ensure_block(BLOCK_NUMBER)
        store.save_raw_data("block", block.id, {"info": {"height": BLOCK_NUMBER}})
        store.save_block_summary(block.id, f"Block {BLOCK_NUMBER} was mined.")
        tx, _ = store.ensure_transaction(TX_1, block.id)
        sender, _ = store.ensure_address(ADDR_A)
        contract, _ = store.ensure_address(ADDR_B)
        store.save_raw_data("address", contract.id, {"info": {"is_contract": True}})
        store.link_address_transaction(sender.id, tx.id)
        store.link_address_transaction(contract.id, tx.id)
        return block

    def test_health_check(self, client):
        """Test health check endpoint"""
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["database"] == "ok"
        assert body["pipeline"] == "stopped"
        assert body["stream"] == "reconnecting"
        assert body["queued_tasks"] == 0
        assert body["last_task_status"] is None

    def test_health_without_runtime(self, client):
        app.state.runtime = None
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["stream"] == "stopped"

    def test_readiness(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_get_block(self, client, seeded):
        response = client.get(f"/blocks/{BLOCK_NUMBER}")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "enriched"
        assert body["summary"] == f"Block {BLOCK_NUMBER} was mined."
        assert [t["transaction_hash"] for t in body["transactions"]] == [TX_1]

    def test_get_transaction_with_addresses(self, client, seeded):
        response = client.get(f"/transactions/{TX_1.upper().replace('0X', '0x')}")
        assert response.status_code == 200
        addresses = [a["address_hash"] for a in response.json()["addresses"]]
        assert addresses == [ADDR_A.lower(), ADDR_B.lower()]

    def test_get_address_graph(self, client, seeded):
        response = client.get(f"/addresses/{ADDR_B}")
        assert response.status_code == 200
        body = response.json()
        assert body["is_contract"] is True
        assert [t["transaction_hash"] for t in body["transactions"]] == [TX_1]

    def test_get_smart_contract(self, client, store):
        contract, _ = store.ensure_smart_contract(ADDR_B)
        store.save_raw_data("smart_contract", contract.id, {"name": "Vault", "is_verified": True})

        response = client.get(f"/smart-contracts/{ADDR_B}")
        assert response.status_code == 200
        assert response.json()["raw_data"]["name"] == "Vault"

    def test_get_token(self, client, store):
        token, _ = store.ensure_token(ADDR_B)
        store.save_raw_data("token", token.id, token_payload(ADDR_B))

        response = client.get(f"/tokens/{ADDR_B}")
        assert response.status_code == 200
        assert response.json()["raw_data"]["info"]["symbol"] == "USDT"
        assert client.get(f"/tokens/{ADDR_A}").status_code == 404

    def test_search_returns_matching_summaries(self, client, embedder, index):
        index.points[("tokens", 7)] = ([0.1, 0.2, 0.3, 0.4], {"address_hash": ADDR_B.lower(), "token_summary": "Tether USD (USDT)"})
        index.points[("addresses", 3)] = ([0.1, 0.2, 0.3, 0.4], {"address_hash": ADDR_A.lower(), "address_summary": "EOA"})

        response = client.get("/search/token?q=stablecoin&limit=5")
        assert response.status_code == 200
        assert response.json() == [{"id": 7, "score": 1.0, "summary": "Tether USD (USDT)"}]
        assert embedder.texts[-1] == "stablecoin"
        assert embedder.task_types[-1] == TASK_QUERY

        response = client.get("/search/address?q=wallet")
        assert [r["summary"] for r in response.json()] == ["EOA"]

    def test_search_point_lookup(self, client, index):
        index.points[("blocks", 1)] = ([0.1, 0.2, 0.3, 0.4], {"block_number": 1, "summary": "Block 1"})

        response = client.get("/search/block/points/1")
        assert response.status_code == 200
        assert response.json()["summary"] == "Block 1"
        assert client.get("/search/block/points/2").status_code == 404

    def test_search_errors(self, client, embedder):
        assert client.get("/search/token").status_code == 422
        assert client.get("/search/webhook?q=x").status_code == 422

        embedder.error = EmbeddingError("Gemini API Error: 500")
        assert client.get("/search/token?q=x").status_code == 502

    def test_missing_entities_return_404(self, client):
        assert client.get("/blocks/1").status_code == 404
        assert client.get(f"/smart-contracts/{ADDR_A}").status_code == 404
        assert client.get(f"/transactions/{TX_1}").status_code == 404
        assert client.get(f"/addresses/{ADDR_A}").status_code == 404

    def test_get_stats(self, client, store):
        """Test stats endpoint"""
        run_id = store.start_run("address", ADDR_A.lower())
        store.finish_run(run_id, RUN_FAILURE, 3, "RetryExhaustedError: gave up")

        response = client.get("/stats?kind=address&status=failure")
        assert response.status_code == 200
        runs = response.json()
        assert len(runs) == 1
        assert runs[0]["attempts"] == 3
        assert runs[0]["error_message"].startswith("RetryExhaustedError")

    def test_stats_rejects_bad_filters(self, client):
        assert client.get("/stats?kind=nope").status_code == 422
        assert client.get("/stats?limit=1000").status_code == 422

    def test_entity_stats(self, client, seeded, store):
        store.save_stream_checkpoint("ethereum_new_heads", BLOCK_NUMBER)

        response = client.get("/stats/entities")
        assert response.status_code == 200
        body = response.json()
        assert body["entities"]["block"] == {"enriched": 1, "total": 1}
        assert body["entities"]["address"]["total"] == 2
        assert body["entities"]["address_transaction"]["total"] == 2
        assert body["checkpoints"][0]["last_block_number"] == BLOCK_NUMBER

    def test_replay_queues_task(self, client, runtime):
        response = client.post(f"/pipeline/replay/address/{ADDR_A}")
        assert response.status_code == 202
        body = response.json()
        assert body["queued"] is True
        assert body["key"] == ADDR_A.lower()
        assert runtime.pipeline.queue.pending == 1

    def test_replay_errors(self, client):
        assert client.post(f"/pipeline/replay/transaction/{TX_1}").status_code == 404
        assert client.post("/pipeline/replay/address/0x123").status_code == 400
        assert client.post(f"/pipeline/replay/webhook/{TX_1}").status_code == 422

    def test_replay_without_runtime(self, client):
        app.state.runtime = None
        assert client.post(f"/pipeline/replay/address/{ADDR_A}").status_code == 503

    def test_rpc_proxy(self, client):
        response = client.post("/rpc", content=b'{"jsonrpc": "2.0", "method": "eth_chainId", "id": 1}')
        assert response.status_code == 200
        assert response.json() == {"jsonrpc": "2.0", "result": "0x1", "id": 1}

    def test_rpc_parse_error(self, client):
        response = client.post("/rpc", content=b"{broken")
        assert response.json()["error"]["code"] == -32700

    def test_invalid_endpoint(self, client):
        """Test invalid endpoint returns 404"""
        response = client.get("/invalid")
        assert response.status_code == 404
