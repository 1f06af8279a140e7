"""Upstream chain clients: the indexer REST API and the node JSON-RPC proxy."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

import httpx

from chainstream.core.config import settings
from chainstream.core.errors import DataError, NotFoundError, TransientNetworkError, UpstreamApiError
from chainstream.core.logging import get_logger

log = get_logger("ingestion.chain_client")

ADDRESS_PATTERN = re.compile(r"\A0x[a-f0-9]{40}\Z")
TRANSACTION_PATTERN = re.compile(r"\A0x[a-f0-9]{64}\Z")

# Indexer body used while it has not caught up with the node yet
NOT_FOUND_MESSAGE = "Not found"


def normalize_address(address_hash: str) -> str:
    value = (address_hash or "").strip().lower()
    if not ADDRESS_PATTERN.match(value):
        raise DataError(f"Invalid Ethereum address format: {address_hash!r}")
    return value


def normalize_transaction_hash(transaction_hash: str) -> str:
    value = (transaction_hash or "").strip().lower()
    if not TRANSACTION_PATTERN.match(value):
        raise DataError(f"Invalid Ethereum transaction format: {transaction_hash!r}")
    return value


class IndexerClient:
    """Fetches entity detail from the indexer's ``/api/v1/ethereum`` resources.

    A ``None`` result means the indexer answered but does not know the
    entity (yet). Transport failures raise ``TransientNetworkError``;
    non-success statuses raise ``UpstreamApiError`` (``NotFoundError`` for 404).
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.INDEXER_API_URL).rstrip("/")
        self.token = token if token is not None else settings.INDEXER_API_TOKEN
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or settings.INDEXER_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            resp = await self._client.get(path)
        except httpx.TimeoutException as exc:
            raise TransientNetworkError(f"Timeout fetching {path}: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"Network error fetching {path}: {exc}") from exc

        if resp.status_code == 404:
            raise NotFoundError(f"Resource not found at {path}", status_code=404)
        if resp.is_error:
            raise UpstreamApiError(
                f"Indexer request {path} failed with status {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamApiError(f"Failed to parse JSON response from {path}: {exc}") from exc

        if not data:
            return None
        if isinstance(data, dict) and (data.get("info") or {}).get("message") == NOT_FOUND_MESSAGE:
            return None
        return data

    async def fetch_block(self, block_number: int) -> Optional[Dict[str, Any]]:
        try:
            return await self._get(f"/api/v1/ethereum/blocks/{int(block_number)}")
        except NotFoundError:
            return None

    async def fetch_transaction(self, transaction_hash: str) -> Optional[Dict[str, Any]]:
        return await self._get(f"/api/v1/ethereum/transactions/{normalize_transaction_hash(transaction_hash)}")

    async def fetch_address(self, address_hash: str) -> Optional[Dict[str, Any]]:
        return await self._get(f"/api/v1/ethereum/addresses/{normalize_address(address_hash)}")

    async def fetch_smart_contract(self, address_hash: str) -> Optional[Dict[str, Any]]:
        return await self._get(f"/api/v1/ethereum/smart-contracts/{normalize_address(address_hash)}")

    async def fetch_token(self, address_hash: str) -> Optional[Dict[str, Any]]:
        return await self._get(f"/api/v1/ethereum/tokens/{normalize_address(address_hash)}")


def rpc_error(code: int, message: str, request_id: Any = None) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": request_id}


class RpcProxyClient:
    """Forwards arbitrary JSON-RPC 2.0 requests to the chain node."""

    PARSE_ERROR = -32700
    INTERNAL_ERROR = -32603

    def __init__(
        self,
        url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url or settings.CHAIN_RPC_URL
        token = token if token is not None else settings.CHAIN_RPC_TOKEN
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=timeout or settings.RPC_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def forward(self, body: bytes | str) -> Any:
        try:
            payload = json.loads(body)
        except (TypeError, ValueError):
            log.warning("Rejected JSON-RPC request with unparseable body")
            return rpc_error(self.PARSE_ERROR, "Parse error")

        request_id = payload.get("id") if isinstance(payload, dict) else None
        try:
            resp = await self._client.post(self.url, json=payload)
            resp.raise_for_status()
            return resp.json()
        except ValueError:
            log.error("Chain node returned a non-JSON body")
            return rpc_error(self.PARSE_ERROR, "Parse error", request_id)
        except Exception as exc:  # noqa: BLE001
            log.error(f"RPC proxy error: {type(exc).__name__}: {exc}")
            return rpc_error(self.INTERNAL_ERROR, "Internal error", request_id)
