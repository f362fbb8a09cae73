"""Inbound message routing and reply pipeline dispatch"""

from wagateway.inbound.dispatch import (
    DirectReplyDispatcher,
    InboundMessage,
    ReplyDispatcher,
    WebhookReplyDispatcher,
    build_reply_dispatcher,
)
from wagateway.inbound.router import InboundRouter, extract_text, parse_inbound

__all__ = [
    "DirectReplyDispatcher",
    "InboundMessage",
    "InboundRouter",
    "ReplyDispatcher",
    "WebhookReplyDispatcher",
    "build_reply_dispatcher",
    "extract_text",
    "parse_inbound",
]
