"""Messaging client abstraction and the bridge-backed implementation"""

from wagateway.client.base import (
    ConnectionHandle,
    DisconnectReason,
    MessagingClient,
    SentMessage,
    is_broadcast_jid,
    normalize_phone,
    to_jid,
)
from wagateway.client.bridge import BaileysBridgeClient
from wagateway.client.events import (
    ConnectionUpdate,
    CredentialsUpdate,
    EventBus,
    EventKind,
    MessagesUpsert,
)

__all__ = [
    "BaileysBridgeClient",
    "ConnectionHandle",
    "ConnectionUpdate",
    "CredentialsUpdate",
    "DisconnectReason",
    "EventBus",
    "EventKind",
    "MessagesUpsert",
    "MessagingClient",
    "SentMessage",
    "is_broadcast_jid",
    "normalize_phone",
    "to_jid",
]
