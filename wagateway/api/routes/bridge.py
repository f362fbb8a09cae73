"""Bridge callbacks: events pushed by the messaging bridge sidecar"""

from typing import Any

from pydantic import BaseModel, Field
from fastapi import APIRouter

from wagateway.api.dependencies import BridgeAuth, Gateway
from wagateway.client.bridge import BaileysBridgeClient
from wagateway.core.logging import log

router = APIRouter(dependencies=[BridgeAuth])


class BridgeEvent(BaseModel):
    event: str
    data: dict[str, Any] = Field(default_factory=dict)


@router.post("/{tenant_id}/events")
async def receive_event(tenant_id: str, payload: BridgeEvent, gateway: Gateway):
    """Route one event to the tenant's live connection."""
    client = gateway.client
    if not isinstance(client, BaileysBridgeClient):
        log.warning(f"Bridge event {payload.event} received but the bridge client is not in use")
        return {"status": "ignored", "reason": "bridge client not in use"}

    delivered = await client.deliver(tenant_id, payload.event, payload.data)
    if not delivered:
        return {"status": "ignored"}
    return {"status": "received"}
