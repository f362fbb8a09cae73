"""Reply pipeline dispatchers.

Exactly one is active per deployment:

- webhook: fire-and-forget POST to an external queue that debounces and
  replies later through /send-message.
- direct: synchronous call to the reply-generation function; its answer
  is sent straight back on the connection.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from wagateway.client.base import normalize_phone
from wagateway.core.exceptions import ExternalServiceError
from wagateway.core.logging import log


@dataclass
class InboundMessage:
    """One inbound text, consumed once by the reply pipeline."""
    tenant_id: str
    from_jid: str
    text: str
    timestamp: datetime
    push_name: str | None = None
    message_id: str | None = None

    @property
    def client_phone(self) -> str:
        return normalize_phone(self.from_jid)

    def to_payload(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "client_phone": self.client_phone,
            "message": self.text,
            "client_name": self.push_name or self.client_phone,
        }


class ReplyDispatcher(ABC):
    """Forwards inbound messages to the reply pipeline."""

    name = "abstract"

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers=headers,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _post(self, message: InboundMessage) -> dict[str, Any]:
        client = self._get_client()
        try:
            response = await client.post(self.url, json=message.to_payload())
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Reply {self.name}", str(e)) from e

        if not response.is_success:
            raise ExternalServiceError(
                f"Reply {self.name}",
                f"HTTP {response.status_code}: {response.text[:500]}",
            )

        try:
            return response.json()
        except ValueError:
            return {}

    @abstractmethod
    async def dispatch(self, message: InboundMessage) -> str | None:
        """Hand the message over; returns reply text to send back, if any."""


class WebhookReplyDispatcher(ReplyDispatcher):
    name = "webhook"

    async def dispatch(self, message: InboundMessage) -> str | None:
        data = await self._post(message)
        scheduled_at = data.get("scheduled_at")
        if scheduled_at:
            log.info(f"Message from {message.client_phone} queued for tenant {message.tenant_id}, processing at {scheduled_at}")
        else:
            log.info(f"Message from {message.client_phone} handed to webhook for tenant {message.tenant_id}")
        return None


class DirectReplyDispatcher(ReplyDispatcher):
    name = "function"

    async def dispatch(self, message: InboundMessage) -> str | None:
        data = await self._post(message)
        reply = data.get("response")
        if not reply or not isinstance(reply, str):
            log.info(f"No reply generated for {message.client_phone} (tenant {message.tenant_id})")
            return None
        return reply


def build_reply_dispatcher(settings, transport: httpx.AsyncBaseTransport | None = None) -> ReplyDispatcher:
    """Pick the dispatcher for this deployment from REPLY_MODE."""
    mode = settings.get("REPLY_MODE", "webhook")
    timeout = float(settings.get("REPLY_TIMEOUT_SECONDS", 30.0))

    if mode == "webhook":
        return WebhookReplyDispatcher(
            url=settings.REPLY_WEBHOOK_URL,
            api_key=settings.get("REPLY_API_KEY"),
            timeout=timeout,
            transport=transport,
        )
    if mode == "direct":
        return DirectReplyDispatcher(
            url=settings.REPLY_FUNCTION_URL,
            api_key=settings.get("REPLY_API_KEY"),
            timeout=timeout,
            transport=transport,
        )
    raise ValueError(f"Unknown REPLY_MODE: {mode}")
