"""Database models"""

from wagateway.db.models.whatsapp_session import WhatsAppSession

__all__ = [
    "WhatsAppSession",
]
