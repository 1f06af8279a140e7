"""New-block stream over the node's WebSocket JSON-RPC subscription."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, Optional

import websockets

from chainstream.core.config import settings
from chainstream.core.logging import get_logger
from chainstream.models.entities import Block
from chainstream.services.entity_store import EntityStore

log = get_logger("ingestion.stream")

SUBSCRIBE_REQUEST_ID = 1
SUBSCRIBE_REQUEST = {"id": SUBSCRIBE_REQUEST_ID, "jsonrpc": "2.0", "method": "eth_subscribe", "params": ["newHeads"]}

STREAM_NAME = "ethereum_new_heads"


def parse_block_number(value: Any) -> Optional[int]:
    """Header numbers are hex strings; decimal ints are accepted too."""
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return int(value, 16) if value.lower().startswith("0x") else int(value)
    except ValueError:
        return None


class BlockStreamListener:
    """Keeps one ``newHeads`` subscription alive and records every new block once.

    ``on_block_created`` fires only when a block row was actually inserted,
    and must not block: it is expected to enqueue work and return.
    """

    def __init__(
        self,
        store: EntityStore,
        on_block_created: Callable[[Block], None],
        ws_url: str | None = None,
        reconnect_base: float | None = None,
        reconnect_max: float | None = None,
        connect: Callable[..., Any] = websockets.connect,
        stream_name: str = STREAM_NAME,
    ):
        self.store = store
        self.on_block_created = on_block_created
        self.ws_url = ws_url or settings.CHAIN_WS_URL
        self.reconnect_base = reconnect_base if reconnect_base is not None else settings.STREAM_RECONNECT_BASE_SECONDS
        self.reconnect_max = reconnect_max if reconnect_max is not None else settings.STREAM_RECONNECT_MAX_SECONDS
        self._connect = connect
        self.stream_name = stream_name

        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.connected = False
        self.last_block_number: Optional[int] = None
        self.reconnects = 0
        self.blocks_created = 0

    @property
    def running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._running = True
        if self.last_block_number is None:
            self.last_block_number = self.store.load_stream_checkpoint(self.stream_name)
        self._task = asyncio.create_task(self._run(), name="block-stream-listener")
        log.info(f"Starting block stream listener on {self.ws_url}")

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.connected = False
        log.info("Block stream listener stopped")

    async def _run(self) -> None:
        delay = self.reconnect_base
        while self._running:
            try:
                async with self._connect(self.ws_url, ping_interval=20, ping_timeout=20) as ws:
                    self.connected = True
                    delay = self.reconnect_base
                    log.info("Connected to chain WebSocket")
                    await ws.send(json.dumps(SUBSCRIBE_REQUEST))
                    log.info("Subscribed to new block headers")
                    async for message in ws:
                        self.handle_message(message)
                    log.warning("Chain WebSocket closed by peer")
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                log.error(f"WebSocket error: {type(exc).__name__}: {exc}")
            finally:
                self.connected = False

            if not self._running:
                break
            self.reconnects += 1
            log.info(f"Reconnecting in {delay:.1f}s (attempt {self.reconnects})")
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.reconnect_max)

    def handle_message(self, message: str | bytes | Dict[str, Any]) -> Optional[int]:
        """Process one inbound frame; returns the block number when a new block was recorded."""
        try:
            data = json.loads(message) if isinstance(message, (str, bytes, bytearray)) else message
        except ValueError:
            log.warning("Ignoring non-JSON WebSocket frame")
            return None
        if not isinstance(data, dict):
            return None

        if data.get("id") == SUBSCRIBE_REQUEST_ID and data.get("result"):
            log.info(f"Block subscription confirmed: {data['result']}")
            return None
        if data.get("id") == SUBSCRIBE_REQUEST_ID and data.get("error"):
            log.error(f"Block subscription rejected: {data['error']}")
            return None

        if data.get("method") != "eth_subscription":
            return None
        header = (data.get("params") or {}).get("result")
        if not isinstance(header, dict):
            return None

        block_number = parse_block_number(header.get("number"))
        if block_number is None:
            log.warning(f"Block header without a usable number: {header.get('number')!r}")
            return None

        try:
            return self._record_block(block_number)
        except Exception as exc:  # noqa: BLE001
            log.error(f"Error processing block {block_number}: {type(exc).__name__}: {exc}")
            return None

    def _record_block(self, block_number: int) -> Optional[int]:
        self._check_gap(block_number)
        block, created = self.store.ensure_block(block_number)
        self.store.save_stream_checkpoint(self.stream_name, block_number)
        if self.last_block_number is None or block_number > self.last_block_number:
            self.last_block_number = block_number

        if not created:
            log.debug(f"Block {block_number} already recorded")
            return None
        self.blocks_created += 1
        log.info(f"Created block {block_number}")
        self.on_block_created(block)
        return block_number

    def _check_gap(self, block_number: int) -> None:
        last = self.last_block_number
        if last is None or block_number <= last + 1:
            return
        missed = block_number - last - 1
        log.warning(f"Missed {missed} block(s) between {last} and {block_number}; not backfilled")
