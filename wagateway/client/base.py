"""Messaging client contract.

The WhatsApp multi-device protocol lives in the messaging library; the
gateway only sees this interface: open a connection for a tenant, send
text on it, close it, and receive events on its bus.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from wagateway.client.events import EventBus

DEFAULT_JID_DOMAIN = "s.whatsapp.net"


class DisconnectReason(enum.IntEnum):
    """Close status codes reported by the messaging library."""
    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503


@dataclass
class SentMessage:
    """Receipt for an outbound message."""
    message_id: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "messageId": self.message_id,
            "timestamp": self.timestamp.isoformat(),
        }


class ConnectionHandle(ABC):
    """One open (or opening) network session for a tenant."""

    def __init__(self, tenant_id: str, events: EventBus):
        self.tenant_id = tenant_id
        self.events = events
        self.closed = False

    @abstractmethod
    async def send_text(self, jid: str, text: str) -> SentMessage:
        """Send a text message to a JID."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection and release its resources."""

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<{self.__class__.__name__} tenant={self.tenant_id} {state}>"


class MessagingClient(ABC):
    """Factory for tenant connections."""

    @abstractmethod
    async def open(
        self,
        tenant_id: str,
        credentials: dict[str, Any] | None,
        events: EventBus,
    ) -> ConnectionHandle:
        """Open a connection; credentials=None starts a fresh pairing flow."""

    async def aclose(self) -> None:
        """Release client-wide resources."""


def to_jid(phone: str, domain: str = DEFAULT_JID_DOMAIN) -> str:
    """Turn a bare phone number into a user JID; JIDs pass through unchanged."""
    phone = phone.strip()
    if "@" in phone:
        return phone
    digits = phone.replace("+", "").replace(" ", "").replace("-", "")
    return f"{digits}@{domain}"


def normalize_phone(jid: str) -> str:
    """Strip the JID domain (and any device suffix) from an address."""
    user = jid.split("@", 1)[0]
    return user.split(":", 1)[0]


def is_broadcast_jid(jid: str | None) -> bool:
    """Status updates and broadcast lists are never replied to."""
    if not jid:
        return False
    return jid == "status@broadcast" or jid.endswith("@broadcast")
