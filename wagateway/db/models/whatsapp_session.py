"""WhatsApp session row: one per tenant, persisted credential material and status"""

from datetime import datetime, timezone
import uuid

from sqlalchemy import DateTime, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from wagateway.db.base import Base


class WhatsAppSession(Base):
    """
    Database-backed storage for a tenant's WhatsApp session.

    session_data holds the messaging client's auth state as-is
    ({"creds": ..., "keys": ...}); the gateway never inspects it.
    """

    __tablename__ = "whatsapp_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    tenant_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)

    # uninitialized, connecting, awaiting_pairing, connected, disconnected, ...
    status: Mapped[str] = mapped_column(String(32), default="disconnected")

    # Pairing challenge, only present while awaiting_pairing
    qr_code: Mapped[str | None] = mapped_column(Text, nullable=True)

    session_data: Mapped[dict | None] = mapped_column(JSON(none_as_null=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<WhatsAppSession tenant={self.tenant_id} status={self.status}>"

    @property
    def has_credentials(self) -> bool:
        """Check if this row carries saved credentials."""
        return bool(self.session_data)
