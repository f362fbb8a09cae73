"""File-backed credential store: <sessions_dir>/<tenant_id>/session.json"""

import asyncio
import json
import os
import re
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from wagateway.core.logging import log
from wagateway.sessions.states import SessionStatus, StoredSession
from wagateway.sessions.store import CredentialStore

SESSION_FILE = "session.json"
_SAFE_TENANT_ID = re.compile(r"^[A-Za-z0-9_.\-]+$")


class FileCredentialStore(CredentialStore):
    """One directory per tenant; clear() removes the directory's material."""

    backend = "file"

    def __init__(self, sessions_dir: str | Path):
        super().__init__()
        self.sessions_dir = Path(sessions_dir)
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, tenant_id: str) -> asyncio.Lock:
        """Serializes read-modify-write of one tenant's record."""
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        return lock

    def tenant_dir(self, tenant_id: str) -> Path:
        if not _SAFE_TENANT_ID.match(tenant_id) or tenant_id in (".", ".."):
            raise ValueError(f"Tenant id not usable as a directory name: {tenant_id!r}")
        return self.sessions_dir / tenant_id

    def _read(self, tenant_id: str) -> dict[str, Any] | None:
        path = self.tenant_dir(tenant_id) / SESSION_FILE
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _write(self, tenant_id: str, record: dict[str, Any]) -> None:
        directory = self.tenant_dir(tenant_id)
        directory.mkdir(parents=True, exist_ok=True)
        record["updated_at"] = datetime.now(timezone.utc).isoformat()
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=f"{SESSION_FILE}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f)
            os.replace(tmp, directory / SESSION_FILE)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _update(self, tenant_id: str, **values: Any) -> None:
        record = self._read(tenant_id) or {
            "status": SessionStatus.DISCONNECTED.value,
            "qr_code": None,
            "session_data": None,
        }
        record.update(values)
        self._write(tenant_id, record)

    def _wipe(self, tenant_id: str) -> None:
        directory = self.tenant_dir(tenant_id)
        if directory.exists():
            shutil.rmtree(directory)
        self._write(
            tenant_id,
            {"status": SessionStatus.DISCONNECTED.value, "qr_code": None, "session_data": None},
        )

    def _restorable(self) -> list[str]:
        if not self.sessions_dir.exists():
            return []
        tenants = []
        for path in sorted(self.sessions_dir.glob(f"*/{SESSION_FILE}")):
            try:
                record = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                log.warning(f"Skipping unreadable session file {path}: {e}")
                continue
            if isinstance(record, dict) and record.get("session_data"):
                tenants.append(path.parent.name)
        return tenants

    async def _load(self, tenant_id: str) -> dict[str, Any] | None:
        async with self._lock(tenant_id):
            record = await asyncio.to_thread(self._read, tenant_id)
        return record.get("session_data") if record else None

    async def _save(self, tenant_id: str, credentials: dict[str, Any]) -> None:
        async with self._lock(tenant_id):
            await asyncio.to_thread(self._update, tenant_id, session_data=credentials)

    async def _clear(self, tenant_id: str) -> None:
        async with self._lock(tenant_id):
            await asyncio.to_thread(self._wipe, tenant_id)

    async def _set_status(self, tenant_id: str, status: str, qr_code: str | None) -> None:
        async with self._lock(tenant_id):
            await asyncio.to_thread(self._update, tenant_id, status=status, qr_code=qr_code)

    async def _get(self, tenant_id: str) -> StoredSession | None:
        record = await asyncio.to_thread(self._read, tenant_id)
        if record is None:
            return None
        updated_at = record.get("updated_at")
        return StoredSession(
            tenant_id=tenant_id,
            status=record.get("status", SessionStatus.DISCONNECTED.value),
            qr_code=record.get("qr_code"),
            has_credentials=bool(record.get("session_data")),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )

    async def _list_restorable(self) -> list[str]:
        return await asyncio.to_thread(self._restorable)
