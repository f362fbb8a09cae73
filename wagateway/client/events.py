"""Per-connection event bus for messaging client callbacks.

Each connection handle owns one EventBus. The messaging client emits
typed payloads on it; the lifecycle manager subscribes one handler per
event kind before the connection is opened.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from wagateway.core.logging import log


class EventKind(str, enum.Enum):
    """Event names as emitted by the messaging library."""
    CREDS_UPDATE = "creds.update"
    CONNECTION_UPDATE = "connection.update"
    MESSAGES_UPSERT = "messages.upsert"


@dataclass
class CredentialsUpdate:
    """Rotated auth material, to be persisted as-is."""
    credentials: dict[str, Any]


@dataclass
class ConnectionUpdate:
    """Connection state change.

    connection is "connecting", "open" or "close"; qr carries a fresh
    pairing challenge; disconnect_reason is the library's status code
    for a close.
    """
    connection: str | None = None
    qr: str | None = None
    disconnect_reason: int | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "ConnectionUpdate":
        """Parse the library's raw connection.update shape."""
        reason = data.get("statusCode")
        last_disconnect = data.get("lastDisconnect") or {}
        error = last_disconnect.get("error") or {}
        if reason is None:
            reason = (error.get("output") or {}).get("statusCode")
        if reason is None:
            reason = error.get("statusCode")
        return cls(
            connection=data.get("connection"),
            qr=data.get("qr") or None,
            disconnect_reason=int(reason) if reason is not None else None,
        )


@dataclass
class MessagesUpsert:
    """A batch of raw inbound message payloads."""
    messages: list[dict[str, Any]] = field(default_factory=list)
    type: str = "notify"


EventPayload = CredentialsUpdate | ConnectionUpdate | MessagesUpsert
EventHandler = Callable[[Any], Awaitable[None]]


class EventBus:
    """Explicit callback table, one async handler list per event kind."""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        self._handlers: dict[EventKind, list[EventHandler]] = {kind: [] for kind in EventKind}

    def on(self, kind: EventKind, handler: EventHandler) -> None:
        """Subscribe a handler to an event kind."""
        self._handlers[EventKind(kind)].append(handler)

    def clear(self) -> None:
        for handlers in self._handlers.values():
            handlers.clear()

    async def emit(self, kind: EventKind, payload: EventPayload) -> None:
        """Run every handler for the event; failures are logged, never raised."""
        for handler in list(self._handlers[EventKind(kind)]):
            try:
                await handler(payload)
            except Exception as e:
                log.exception(
                    f"Handler for {EventKind(kind).value} failed for tenant {self.tenant_id}: {e}"
                )
