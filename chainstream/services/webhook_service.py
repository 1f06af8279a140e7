"""Alert webhook delivery."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from chainstream.core.config import settings
from chainstream.core.logging import get_logger
from chainstream.models.alerts import ALERT_ACTIVE
from chainstream.services.entity_store import EntityStore
from chainstream.services.summarizer import summarize_transaction

log = get_logger("webhooks")


class WebhookNotifier:
    """POSTs ``{address_hash, transaction_data, summary}`` to an alert's URL.

    Delivery failures are logged and swallowed; ``last_triggered_at`` is
    updated either way.
    """

    def __init__(
        self,
        store: EntityStore,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.store = store
        self._client = httpx.AsyncClient(
            timeout=timeout or settings.WEBHOOK_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def build_payload(self, address_hash: str, transaction_data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "address_hash": address_hash,
            "transaction_data": transaction_data,
            "summary": summarize_transaction(transaction_data) if transaction_data else None,
        }

    async def deliver(self, alert_id: int, transaction_hash: str) -> bool:
        alert = self.store.get_alert(alert_id)
        if alert is None or alert.status != ALERT_ACTIVE:
            log.info(f"Skipping webhook for missing or inactive alert {alert_id}")
            return False

        transaction = self.store.find_by_key("transaction", transaction_hash)
        payload = self.build_payload(alert.address_hash, transaction.raw_data if transaction else None)

        delivered = False
        try:
            resp = await self._client.post(alert.webhook_url, json=payload)
            resp.raise_for_status()
            delivered = True
            log.info(f"Webhook for alert {alert_id} delivered ({transaction_hash})")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            log.error(f"Failed to send webhook for alert {alert_id}: {type(exc).__name__}: {exc}")

        self.store.touch_alert(alert_id)
        return delivered
