"""Tenant session state"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone


class SessionStatus(str, enum.Enum):
    """Connection lifecycle states."""
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    AWAITING_PAIRING = "awaiting_pairing"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    LOGGED_OUT = "logged_out"


@dataclass
class TenantSession:
    """In-process view of one tenant's connection; rebuildable from the store."""
    tenant_id: str
    status: SessionStatus = SessionStatus.UNINITIALIZED
    qr_challenge: str | None = None
    reconnect_attempts: int = 0
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def transition(self, status: SessionStatus, qr_challenge: str | None = None) -> None:
        """Move to a new state; the QR challenge only survives while awaiting pairing."""
        self.status = status
        if status == SessionStatus.AWAITING_PAIRING:
            self.qr_challenge = qr_challenge or self.qr_challenge
        else:
            self.qr_challenge = None
        self.last_updated = datetime.now(timezone.utc)


@dataclass
class StoredSession:
    """What the credential store knows about a tenant."""
    tenant_id: str
    status: str
    qr_code: str | None
    has_credentials: bool
    updated_at: datetime | None = None
