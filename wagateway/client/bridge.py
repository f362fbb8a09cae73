"""Messaging bridge client: drives a Baileys sidecar over HTTP.

The sidecar owns the WhatsApp sockets. The gateway starts, stops and
sends through it, and the sidecar posts connection, credential and
message events back to /bridge/{tenant_id}/events, which are routed to
the tenant's live handle via deliver().
"""

from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from wagateway.client.base import ConnectionHandle, MessagingClient, SentMessage
from wagateway.client.events import (
    ConnectionUpdate,
    CredentialsUpdate,
    EventBus,
    EventKind,
    MessagesUpsert,
)
from wagateway.core.exceptions import ExternalServiceError
from wagateway.core.logging import log

SERVICE_NAME = "WhatsApp bridge"


class BridgeConnectionHandle(ConnectionHandle):
    """Handle for one tenant session living in the bridge sidecar."""

    def __init__(self, client: "BaileysBridgeClient", tenant_id: str, events: EventBus):
        super().__init__(tenant_id, events)
        self._client = client

    async def send_text(self, jid: str, text: str) -> SentMessage:
        data = await self._client.request(
            "POST",
            f"/sessions/{quote(self.tenant_id, safe='')}/send",
            {"jid": jid, "text": text},
        )
        return SentMessage(
            message_id=str(data.get("messageId") or data.get("id") or ""),
            timestamp=_parse_timestamp(data.get("timestamp")),
        )

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._client.forget(self)
        await self._client.request("POST", f"/sessions/{quote(self.tenant_id, safe='')}/close")


class BaileysBridgeClient(MessagingClient):
    """MessagingClient backed by the bridge sidecar's HTTP API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        callback_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.callback_url = callback_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._handles: dict[str, BridgeConnectionHandle] = {}

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "X-API-Key": self.api_key,
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def request(
        self,
        method: str,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated bridge request."""
        client = self._get_client()
        try:
            response = await client.request(method, endpoint, json=json_data)
        except httpx.HTTPError as e:
            log.error(f"Bridge request {method} {endpoint} failed: {e}")
            raise ExternalServiceError(SERVICE_NAME, str(e)) from e

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {"message": response.text}

        if response.status_code >= 400:
            error = data.get("error") or data.get("message") or f"HTTP {response.status_code}"
            raise ExternalServiceError(SERVICE_NAME, str(error))

        return data

    async def open(
        self,
        tenant_id: str,
        credentials: dict[str, Any] | None,
        events: EventBus,
    ) -> BridgeConnectionHandle:
        handle = BridgeConnectionHandle(self, tenant_id, events)
        # Registered before the start call so early callbacks find the handle
        self._handles[tenant_id] = handle
        try:
            await self.request(
                "POST",
                f"/sessions/{quote(tenant_id, safe='')}/start",
                {
                    "credentials": credentials,
                    "callbackUrl": f"{self.callback_url}/bridge/{quote(tenant_id, safe='')}/events",
                },
            )
        except Exception:
            self.forget(handle)
            handle.closed = True
            raise

        log.info(f"Bridge session started for tenant {tenant_id} (saved credentials: {credentials is not None})")
        return handle

    def forget(self, handle: BridgeConnectionHandle) -> None:
        if self._handles.get(handle.tenant_id) is handle:
            del self._handles[handle.tenant_id]

    async def deliver(self, tenant_id: str, event: str, data: dict[str, Any]) -> bool:
        """Route a bridge callback to the tenant's live handle.

        Returns False when nothing consumed it (unknown tenant or event).
        """
        handle = self._handles.get(tenant_id)
        if handle is None:
            log.warning(f"Bridge event {event} for tenant {tenant_id} without a live session")
            return False

        try:
            kind = EventKind(event)
        except ValueError:
            log.debug(f"Ignoring bridge event {event} for tenant {tenant_id}")
            return False

        if kind == EventKind.CREDS_UPDATE:
            payload = CredentialsUpdate(credentials=data.get("credentials", data))
        elif kind == EventKind.CONNECTION_UPDATE:
            payload = ConnectionUpdate.from_payload(data)
        else:
            payload = MessagesUpsert(
                messages=list(data.get("messages") or []),
                type=data.get("type", "notify"),
            )

        await handle.events.emit(kind, payload)
        return True


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        # The library reports seconds; some bridges report milliseconds
        if value > 10_000_000_000:
            value = value / 1000
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)
