"""Credential store: per-tenant auth material, status and pairing challenge.

Every operation is a remote call. Writes are best-effort: a failure is
logged and marks the tenant as degraded instead of aborting the
connection flow; the next successful write clears the mark. Reads fail
open (a failed load is treated as "no saved session").
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wagateway.core.logging import log
from wagateway.db.models.whatsapp_session import WhatsAppSession
from wagateway.sessions.states import SessionStatus, StoredSession


class CredentialStore(ABC):
    """Best-effort wrapper around a storage backend."""

    backend = "abstract"

    def __init__(self):
        self._degraded: set[str] = set()

    def is_degraded(self, tenant_id: str) -> bool:
        return tenant_id in self._degraded

    async def _best_effort(
        self,
        tenant_id: str,
        operation: str,
        write: Callable[[], Awaitable[None]],
    ) -> bool:
        try:
            await write()
        except Exception as e:
            self._degraded.add(tenant_id)
            log.error(f"Credential store {operation} failed for tenant {tenant_id} ({self.backend}): {e}")
            return False
        self._degraded.discard(tenant_id)
        return True

    async def load(self, tenant_id: str) -> dict[str, Any] | None:
        """Fetch saved credentials; None when absent or unreachable."""
        try:
            credentials = await self._load(tenant_id)
        except Exception as e:
            log.error(f"Failed to load session for tenant {tenant_id}, starting fresh: {e}")
            return None

        if credentials:
            log.info(f"Loaded saved session for tenant {tenant_id}")
            return credentials

        log.info(f"No saved session for tenant {tenant_id}")
        return None

    async def save(self, tenant_id: str, credentials: dict[str, Any]) -> bool:
        """Upsert credentials (last write wins)."""
        return await self._best_effort(tenant_id, "save", lambda: self._save(tenant_id, credentials))

    async def clear(self, tenant_id: str) -> bool:
        """Wipe credentials and QR challenge, status back to disconnected."""
        ok = await self._best_effort(tenant_id, "clear", lambda: self._clear(tenant_id))
        if ok:
            log.info(f"Cleared saved session for tenant {tenant_id}")
        return ok

    async def set_status(
        self,
        tenant_id: str,
        status: SessionStatus,
        qr_challenge: str | None = None,
    ) -> bool:
        """Persist status; the QR challenge is kept only while awaiting pairing."""
        status = SessionStatus(status)
        qr_code = qr_challenge if status == SessionStatus.AWAITING_PAIRING else None
        return await self._best_effort(
            tenant_id,
            "set_status",
            lambda: self._set_status(tenant_id, status.value, qr_code),
        )

    async def get(self, tenant_id: str) -> StoredSession | None:
        try:
            return await self._get(tenant_id)
        except Exception as e:
            log.error(f"Failed to read session status for tenant {tenant_id}: {e}")
            return None

    async def list_restorable(self) -> list[str]:
        """Tenants that have saved credentials and can be reconnected without pairing."""
        try:
            return await self._list_restorable()
        except Exception as e:
            log.error(f"Failed to list restorable sessions: {e}")
            return []

    async def aclose(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def _load(self, tenant_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def _save(self, tenant_id: str, credentials: dict[str, Any]) -> None: ...

    @abstractmethod
    async def _clear(self, tenant_id: str) -> None: ...

    @abstractmethod
    async def _set_status(self, tenant_id: str, status: str, qr_code: str | None) -> None: ...

    @abstractmethod
    async def _get(self, tenant_id: str) -> StoredSession | None: ...

    @abstractmethod
    async def _list_restorable(self) -> list[str]: ...


class DatabaseCredentialStore(CredentialStore):
    """Rows in the whatsapp_sessions table, one per tenant."""

    backend = "database"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], engine=None):
        super().__init__()
        self.session_factory = session_factory
        self.engine = engine

    async def _fetch(self, db: AsyncSession, tenant_id: str) -> WhatsAppSession | None:
        result = await db.execute(
            select(WhatsAppSession).where(WhatsAppSession.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def _upsert(self, tenant_id: str, **values: Any) -> None:
        async with self.session_factory() as db:
            row = await self._fetch(db, tenant_id)
            if row is None:
                row = WhatsAppSession(tenant_id=tenant_id)
                db.add(row)
            for key, value in values.items():
                setattr(row, key, value)
            row.updated_at = datetime.now(timezone.utc)
            await db.commit()

    async def _load(self, tenant_id: str) -> dict[str, Any] | None:
        async with self.session_factory() as db:
            row = await self._fetch(db, tenant_id)
            return row.session_data if row else None

    async def _save(self, tenant_id: str, credentials: dict[str, Any]) -> None:
        await self._upsert(tenant_id, session_data=credentials)

    async def _clear(self, tenant_id: str) -> None:
        await self._upsert(
            tenant_id,
            session_data=None,
            qr_code=None,
            status=SessionStatus.DISCONNECTED.value,
        )

    async def _set_status(self, tenant_id: str, status: str, qr_code: str | None) -> None:
        await self._upsert(tenant_id, status=status, qr_code=qr_code)

    async def _get(self, tenant_id: str) -> StoredSession | None:
        async with self.session_factory() as db:
            row = await self._fetch(db, tenant_id)
            if row is None:
                return None
            return StoredSession(
                tenant_id=row.tenant_id,
                status=row.status,
                qr_code=row.qr_code,
                has_credentials=row.has_credentials,
                updated_at=row.updated_at,
            )

    async def _list_restorable(self) -> list[str]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(WhatsAppSession.tenant_id).where(WhatsAppSession.session_data.is_not(None))
            )
            return [tenant_id for tenant_id in result.scalars().all()]

    async def aclose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
