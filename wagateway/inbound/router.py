"""Inbound message router.

Filters noise out of a messages.upsert batch, extracts text, hands each
message to the reply dispatcher and relays any direct reply. Messages in
one batch are handled one after another; a failure is logged and the
batch moves on.
"""

from datetime import datetime, timezone
from typing import Any

from wagateway.client.base import ConnectionHandle, is_broadcast_jid
from wagateway.client.events import MessagesUpsert
from wagateway.core.logging import log
from wagateway.inbound.dispatch import InboundMessage, ReplyDispatcher


def extract_text(message: dict[str, Any] | None) -> str:
    """Plain conversation text or extended (quoted/linked) text, first non-empty wins."""
    if not message:
        return ""
    text = (message.get("conversation") or "").strip()
    if not text:
        extended = message.get("extendedTextMessage") or {}
        text = (extended.get("text") or "").strip()
    return text


def _timestamp(raw: dict[str, Any]) -> datetime:
    value = raw.get("messageTimestamp")
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError):
        return datetime.now(timezone.utc)


def parse_inbound(tenant_id: str, raw: dict[str, Any]) -> InboundMessage | None:
    """Build an InboundMessage, or None when the payload should be ignored."""
    key = raw.get("key") or {}
    if key.get("fromMe"):
        return None

    remote_jid = key.get("remoteJid")
    if not remote_jid or is_broadcast_jid(remote_jid):
        return None

    text = extract_text(raw.get("message"))
    if not text:
        return None

    return InboundMessage(
        tenant_id=tenant_id,
        from_jid=remote_jid,
        text=text,
        timestamp=_timestamp(raw),
        push_name=raw.get("pushName"),
        message_id=key.get("id"),
    )


class InboundRouter:
    def __init__(self, dispatcher: ReplyDispatcher):
        self.dispatcher = dispatcher

    async def on_inbound_event(
        self,
        tenant_id: str,
        handle: ConnectionHandle | None,
        upsert: MessagesUpsert,
    ) -> int:
        """Process one batch; returns how many messages reached the dispatcher."""
        dispatched = 0
        for raw in upsert.messages:
            try:
                message = parse_inbound(tenant_id, raw)
            except Exception as e:
                log.warning(f"Skipping malformed inbound payload for tenant {tenant_id}: {e}")
                continue
            if message is None:
                continue

            log.info(f"Message for tenant {tenant_id} from {message.from_jid}: {message.text[:100]}")
            dispatched += 1

            try:
                reply = await self.dispatcher.dispatch(message)
                if reply:
                    if handle is None or handle.closed:
                        log.warning(f"Reply for {message.from_jid} dropped, tenant {tenant_id} has no open connection")
                        continue
                    await handle.send_text(message.from_jid, reply)
                    log.info(f"Reply sent to {message.from_jid} for tenant {tenant_id}")
            except Exception as e:
                log.error(f"Failed to process message from {message.from_jid} for tenant {tenant_id}: {e}")

        return dispatched
