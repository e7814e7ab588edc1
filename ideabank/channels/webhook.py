"""Webhook channel client.

Posts each entry as JSON to a relay endpoint (scheduler service, automation
hook or a self-hosted bridge) that talks to the actual platform.
"""

import logging
from typing import Optional

import httpx

from ideabank.channels.base import ChannelClient, ChannelConfig, PublishReceipt
from ideabank.config import settings
from ideabank.db.models import DerivedContent
from ideabank.exceptions import ChannelPublishError

logger = logging.getLogger(__name__)


class WebhookChannelClient(ChannelClient):
    """Channel client backed by a shared httpx.AsyncClient."""

    def __init__(self, config: ChannelConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(config)
        if not config.webhook_url:
            raise ValueError(f"Channel '{config.name}' uses the webhook client but has no webhook_url")
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.WEBHOOK_TIMEOUT_SECONDS, connect=10.0),
                headers=self.config.headers,
            )
            self._owns_client = True
        return self._client

    async def publish(self, content: DerivedContent) -> PublishReceipt:
        payload = {
            "channel": self.config.name,
            "content_id": content.id,
            "idea_id": content.idea_id,
            "body": content.body,
        }
        try:
            response = await self._get_client().post(self.config.webhook_url, json=payload)
        except httpx.HTTPError as e:
            raise ChannelPublishError(self.config.name, f"request failed: {e}") from e

        if response.status_code >= 400:
            raise ChannelPublishError(
                self.config.name,
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        data: dict = {}
        if response.headers.get("content-type", "").startswith("application/json"):
            try:
                parsed = response.json()
            except ValueError:
                logger.warning(f"{self.config.name}: webhook returned invalid JSON")
            else:
                if isinstance(parsed, dict):
                    data = parsed
                else:
                    logger.warning(f"{self.config.name}: webhook returned non-object JSON")
        logger.info(f"Published content {content.id} to {self.config.name}")
        return PublishReceipt(
            external_ref=str(data["id"]) if data.get("id") is not None else None,
            url=data.get("url"),
        )

    async def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
