"""Session control routes: connect, disconnect, logout, send, status"""

from pydantic import BaseModel
from fastapi import APIRouter

from wagateway.api.dependencies import Gateway
from wagateway.core.exceptions import ValidationError
from wagateway.core.logging import log

router = APIRouter()

UNSAFE_TENANT_ID_CHARS = frozenset("/?#")


class TenantRequest(BaseModel):
    """Body carrying a tenant id, accepted as tenant_id or tenantId."""
    tenant_id: str | None = None
    tenantId: str | None = None

    def require_tenant_id(self, missing: str = "tenant_id or tenantId is required") -> str:
        tenant_id = (self.tenant_id or self.tenantId or "").strip()
        if not tenant_id:
            raise ValidationError(missing)
        if UNSAFE_TENANT_ID_CHARS.intersection(tenant_id):
            raise ValidationError("tenant_id must not contain '/', '?' or '#'")
        return tenant_id


class SendMessageRequest(TenantRequest):
    phone: str | None = None
    message: str | None = None


class ActionResponse(BaseModel):
    success: bool
    message: str
    status: str | None = None


class SentMessageData(BaseModel):
    messageId: str
    timestamp: str


class SendMessageResponse(BaseModel):
    success: bool
    message: str
    data: SentMessageData


class SessionStatusResponse(BaseModel):
    """Polled by clients; qr_code is only set while awaiting pairing."""
    tenant_id: str
    status: str
    qr_code: str | None = None
    connected: bool = False
    degraded: bool = False
    updated_at: str | None = None


class SessionListResponse(BaseModel):
    sessions: list[SessionStatusResponse]


@router.post("/connect", response_model=ActionResponse)
async def connect(request: TenantRequest, gateway: Gateway):
    """Start (or reuse) the tenant's WhatsApp connection; poll /status for the QR."""
    tenant_id = request.require_tenant_id()
    log.info(f"Connect requested for tenant {tenant_id}")

    await gateway.manager.connect(tenant_id)
    session = gateway.manager.session(tenant_id)

    return ActionResponse(
        success=True,
        message="Initializing WhatsApp connection",
        status=session.status.value if session else None,
    )


@router.post("/disconnect", response_model=ActionResponse)
async def disconnect(request: TenantRequest, gateway: Gateway):
    """Soft disconnect (keeps credentials, reconnect without QR scan)."""
    tenant_id = request.require_tenant_id()
    log.info(f"Disconnect requested for tenant {tenant_id}")

    had_connection = await gateway.manager.disconnect(tenant_id)
    message = "Disconnected successfully" if had_connection else "No active connection"
    return ActionResponse(success=True, message=message, status="disconnected")


@router.post("/logout", response_model=ActionResponse)
async def logout(request: TenantRequest, gateway: Gateway):
    """Hard reset: close the connection and wipe credentials and QR."""
    tenant_id = request.require_tenant_id()
    log.info(f"Logout requested for tenant {tenant_id}")

    await gateway.manager.logout(tenant_id)
    return ActionResponse(
        success=True,
        message="Session cleared. You can connect again.",
        status="disconnected",
    )


@router.post("/send-message", response_model=SendMessageResponse)
async def send_message(request: SendMessageRequest, gateway: Gateway):
    """Send a text message from the tenant's WhatsApp account."""
    tenant_id = request.require_tenant_id(missing="tenant_id is required")
    if not request.phone or not request.phone.strip():
        raise ValidationError("phone is required")
    if not request.message or not request.message.strip():
        raise ValidationError("message cannot be empty")

    log.info(f"Send requested for tenant {tenant_id} to {request.phone}: {request.message[:50]}")
    sent = await gateway.manager.send_message(tenant_id, request.phone, request.message)

    return SendMessageResponse(
        success=True,
        message="Message sent via WhatsApp",
        data=SentMessageData(**sent.to_dict()),
    )


@router.get("/status", response_model=SessionListResponse)
async def list_status(gateway: Gateway):
    """Status of every tenant known to this process."""
    sessions = [
        SessionStatusResponse(**await gateway.manager.status(session.tenant_id))
        for session in gateway.manager.sessions()
    ]
    return SessionListResponse(sessions=sessions)


@router.get("/status/{tenant_id}", response_model=SessionStatusResponse)
async def get_status(tenant_id: str, gateway: Gateway):
    """Connection status and pending QR challenge for a tenant."""
    return SessionStatusResponse(**await gateway.manager.status(tenant_id))
