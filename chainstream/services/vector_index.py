"""Qdrant vector index over its REST API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from chainstream.core.config import settings
from chainstream.core.errors import VectorIndexError
from chainstream.core.logging import get_logger

log = get_logger("vector_index")

# Collection per entity type
COLLECTIONS: Dict[str, str] = {
    "block": "blocks",
    "transaction": "transactions",
    "address": "addresses",
    "smart_contract": "smart_contracts",
    "token": "tokens",
}


class QdrantIndex:
    """Upsert-by-id into named collections; re-upserting an id overwrites the point."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Content-Type": "application/json"}
        api_key = api_key if api_key is not None else settings.QDRANT_API_KEY
        if api_key:
            headers["api-key"] = api_key
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.QDRANT_URL).rstrip("/"),
            headers=headers,
            timeout=15.0,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise VectorIndexError(f"Qdrant Connection Error: {type(exc).__name__} - {exc}") from exc
        if resp.is_error:
            raise VectorIndexError(
                f"Qdrant API Error: {resp.status_code} - {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise VectorIndexError(f"Qdrant JSON Parse Error: {exc}") from exc

    async def collection_exists(self, name: str) -> bool:
        try:
            await self._request("GET", f"/collections/{name}")
        except VectorIndexError as exc:
            if exc.status_code == 404:
                return False
            raise
        return True

    async def ensure_collection(self, name: str, vector_size: int) -> bool:
        """Create ``name`` with cosine distance unless it already exists. True when created."""
        if await self.collection_exists(name):
            return False
        await self._request(
            "PUT",
            f"/collections/{name}",
            json={
                "vectors": {"size": vector_size, "distance": "Cosine"},
                "hnsw_config": {"m": 16, "ef_construct": 100, "full_scan_threshold": 10},
            },
        )
        log.info(f"Created Qdrant collection {name} ({vector_size} dims)")
        return True

    async def upsert(self, collection: str, point_id: int | str, vector: List[float], payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        body = {"points": [{"id": point_id, "vector": vector, "payload": payload or {}}]}
        return await self._request("PUT", f"/collections/{collection}/points", params={"wait": "true"}, json=body)

    async def retrieve(self, collection: str, point_id: int | str) -> Optional[Dict[str, Any]]:
        try:
            data = await self._request("GET", f"/collections/{collection}/points/{point_id}")
        except VectorIndexError as exc:
            if exc.status_code == 404:
                return None
            raise
        return data.get("result")

    async def query(self, collection: str, vector: List[float], limit: int = 10) -> List[Dict[str, Any]]:
        data = await self._request(
            "POST",
            f"/collections/{collection}/points/query",
            json={"query": vector, "limit": limit, "with_payload": True},
        )
        result = data.get("result") or {}
        if isinstance(result, dict):
            return result.get("points", [])
        return result
