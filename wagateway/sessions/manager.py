"""Connection lifecycle manager.

Drives each tenant through

    uninitialized -> connecting -> awaiting_pairing -> connected
    connected/awaiting_pairing/connecting --close--> reconnecting -> connecting
    any --logged-out close / logout--> logged_out

Reconnects use one fixed delay, scheduled as a cancelable loop timer.
Attempts are unlimited unless max_reconnect_attempts is set. A manual
connect cancels a pending reconnect, and connect() is serialized per
tenant, so a tenant never has two live handles.
"""

import asyncio
from typing import Any

from wagateway.client.base import (
    ConnectionHandle,
    DEFAULT_JID_DOMAIN,
    DisconnectReason,
    MessagingClient,
    SentMessage,
    to_jid,
)
from wagateway.client.events import (
    ConnectionUpdate,
    CredentialsUpdate,
    EventBus,
    EventKind,
    MessagesUpsert,
)
from wagateway.core.exceptions import (
    ConnectionOpenError,
    MessageSendError,
    SessionNotActiveError,
)
from wagateway.core.logging import log
from wagateway.inbound.router import InboundRouter
from wagateway.sessions.registry import SessionRegistry
from wagateway.sessions.states import SessionStatus, TenantSession
from wagateway.sessions.store import CredentialStore


class _Binding:
    """Ties event handlers to one connection attempt; superseded bindings go stale."""

    def __init__(self, tenant_id: str, events: EventBus):
        self.tenant_id = tenant_id
        self.events = events
        self.handle: ConnectionHandle | None = None


class ConnectionLifecycleManager:
    def __init__(
        self,
        client: MessagingClient,
        store: CredentialStore,
        registry: SessionRegistry,
        router: InboundRouter,
        reconnect_delay: float = 3.0,
        max_reconnect_attempts: int = 0,
        jid_domain: str = DEFAULT_JID_DOMAIN,
    ):
        self.client = client
        self.store = store
        self.registry = registry
        self.router = router
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self.jid_domain = jid_domain

        self._sessions: dict[str, TenantSession] = {}
        self._bindings: dict[str, _Binding] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._reconnect_timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def session(self, tenant_id: str) -> TenantSession | None:
        return self._sessions.get(tenant_id)

    def sessions(self) -> list[TenantSession]:
        return list(self._sessions.values())

    def _session(self, tenant_id: str) -> TenantSession:
        session = self._sessions.get(tenant_id)
        if session is None:
            session = TenantSession(tenant_id=tenant_id)
            self._sessions[tenant_id] = session
        return session

    def _lock(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        return lock

    def _is_current(self, binding: _Binding) -> bool:
        return self._bindings.get(binding.tenant_id) is binding

    async def _is_known(self, tenant_id: str) -> bool:
        """Seen in this process or has a stored row."""
        if tenant_id in self._sessions:
            return True
        return await self.store.get(tenant_id) is not None

    def has_pending_reconnect(self, tenant_id: str) -> bool:
        return tenant_id in self._reconnect_timers

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def connect(self, tenant_id: str) -> ConnectionHandle:
        """Open a connection for the tenant, or return the live one."""
        self._cancel_reconnect(tenant_id)

        async with self._lock(tenant_id):
            handle = self.registry.get(tenant_id)
            if handle is not None and not handle.closed:
                log.info(f"Tenant {tenant_id} already has a live connection")
                return handle
            if handle is not None:
                self.registry.remove(tenant_id)

            session = self._session(tenant_id)
            session.transition(SessionStatus.CONNECTING)
            await self.store.set_status(tenant_id, SessionStatus.CONNECTING)

            credentials = await self.store.load(tenant_id)

            binding = _Binding(tenant_id, EventBus(tenant_id))
            self._bind(binding)
            self._bindings[tenant_id] = binding

            try:
                handle = await self.client.open(tenant_id, credentials, binding.events)
            except Exception as e:
                if self._is_current(binding):
                    del self._bindings[tenant_id]
                binding.events.clear()
                session.transition(SessionStatus.DISCONNECTED)
                await self.store.set_status(tenant_id, SessionStatus.DISCONNECTED)
                log.error(f"Failed to open connection for tenant {tenant_id}: {e}")
                raise ConnectionOpenError(tenant_id, str(e)) from e

            binding.handle = handle
            if not self._is_current(binding):
                # Closed (or superseded) before open() returned
                await self._close_quietly(handle)
                raise ConnectionOpenError(tenant_id, "connection closed while opening")

            self.registry.put(tenant_id, handle)
            log.info(f"Connection opening for tenant {tenant_id}")
            return handle

    async def disconnect(self, tenant_id: str) -> bool:
        """Close the connection but keep credentials; no reconnect follows.

        Returns False when the tenant had no live connection.
        """
        self._cancel_reconnect(tenant_id)
        async with self._lock(tenant_id):
            self._bindings.pop(tenant_id, None)
            handle = self.registry.remove(tenant_id)
            await self._close_quietly(handle)

            if not await self._is_known(tenant_id):
                log.info(f"Disconnect for unknown tenant {tenant_id}, nothing to do")
                return False

            self._session(tenant_id).transition(SessionStatus.DISCONNECTED)
            await self.store.set_status(tenant_id, SessionStatus.DISCONNECTED)

        log.info(f"Tenant {tenant_id} disconnected (had connection: {handle is not None})")
        return handle is not None

    async def logout(self, tenant_id: str) -> bool:
        """Hard reset: close the connection and wipe credentials and QR."""
        self._cancel_reconnect(tenant_id)
        async with self._lock(tenant_id):
            self._bindings.pop(tenant_id, None)
            handle = self.registry.remove(tenant_id)
            await self._close_quietly(handle)

            if not await self._is_known(tenant_id):
                log.info(f"Logout for unknown tenant {tenant_id}, nothing to do")
                return False

            session = self._session(tenant_id)
            session.transition(SessionStatus.LOGGED_OUT)
            session.reconnect_attempts = 0
            await self.store.clear(tenant_id)

        log.info(f"Tenant {tenant_id} logged out, saved session wiped")
        return handle is not None

    async def send_message(self, tenant_id: str, phone: str, text: str) -> SentMessage:
        handle = self.registry.get(tenant_id)
        session = self._sessions.get(tenant_id)
        if handle is None or handle.closed:
            raise SessionNotActiveError(tenant_id)
        if session is None or session.status != SessionStatus.CONNECTED:
            raise SessionNotActiveError(tenant_id, session.status.value if session else None)

        jid = to_jid(phone, self.jid_domain)
        try:
            sent = await handle.send_text(jid, text)
        except Exception as e:
            log.error(f"Failed to send message to {jid} for tenant {tenant_id}: {e}")
            raise MessageSendError(str(e)) from e

        log.info(f"Message {sent.message_id} sent to {jid} for tenant {tenant_id}")
        return sent

    async def status(self, tenant_id: str) -> dict[str, Any]:
        """Live state when the tenant is known in-process, otherwise the stored row."""
        session = self._sessions.get(tenant_id)
        if session is not None:
            return {
                "tenant_id": tenant_id,
                "status": session.status.value,
                "qr_code": session.qr_challenge,
                "connected": session.status == SessionStatus.CONNECTED,
                "degraded": self.store.is_degraded(tenant_id),
                "updated_at": session.last_updated.isoformat(),
            }

        stored = await self.store.get(tenant_id)
        if stored is None:
            status, qr_code, updated_at = SessionStatus.UNINITIALIZED.value, None, None
        else:
            status, qr_code = stored.status, stored.qr_code
            updated_at = stored.updated_at.isoformat() if stored.updated_at else None
        return {
            "tenant_id": tenant_id,
            "status": status,
            "qr_code": qr_code,
            "connected": False,
            "degraded": self.store.is_degraded(tenant_id),
            "updated_at": updated_at,
        }

    async def restore_sessions(self) -> list[str]:
        """Reconnect every tenant with saved credentials."""
        restored = []
        for tenant_id in await self.store.list_restorable():
            try:
                await self.connect(tenant_id)
                restored.append(tenant_id)
            except Exception as e:
                log.warning(f"Could not restore session for tenant {tenant_id}: {e}")
                self._schedule_reconnect(tenant_id)
        if restored:
            log.info(f"Restored {len(restored)} WhatsApp session(s)")
        return restored

    async def shutdown(self) -> None:
        """Cancel timers and close every live handle; persisted state is left as-is."""
        for tenant_id in list(self._reconnect_timers):
            self._cancel_reconnect(tenant_id)
        for task in list(self._tasks):
            task.cancel()
        self._bindings.clear()
        for tenant_id, handle in self.registry:
            self.registry.remove(tenant_id)
            await self._close_quietly(handle)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _bind(self, binding: _Binding) -> None:
        async def on_creds(update: CredentialsUpdate) -> None:
            await self._on_credentials(binding, update)

        async def on_connection(update: ConnectionUpdate) -> None:
            await self._on_connection_update(binding, update)

        async def on_messages(upsert: MessagesUpsert) -> None:
            if not self._is_current(binding):
                return
            await self.router.on_inbound_event(binding.tenant_id, binding.handle, upsert)

        binding.events.on(EventKind.CREDS_UPDATE, on_creds)
        binding.events.on(EventKind.CONNECTION_UPDATE, on_connection)
        binding.events.on(EventKind.MESSAGES_UPSERT, on_messages)

    async def _on_credentials(self, binding: _Binding, update: CredentialsUpdate) -> None:
        if not self._is_current(binding):
            log.debug(f"Ignoring credentials from a replaced connection for tenant {binding.tenant_id}")
            return
        await self.store.save(binding.tenant_id, update.credentials)

    async def _on_connection_update(self, binding: _Binding, update: ConnectionUpdate) -> None:
        tenant_id = binding.tenant_id
        if not self._is_current(binding):
            log.debug(f"Ignoring connection update from a replaced connection for tenant {tenant_id}")
            return

        session = self._session(tenant_id)

        if update.qr:
            log.info(f"Pairing QR generated for tenant {tenant_id}")
            session.transition(SessionStatus.AWAITING_PAIRING, qr_challenge=update.qr)
            await self.store.set_status(tenant_id, SessionStatus.AWAITING_PAIRING, qr_challenge=update.qr)

        if update.connection == "open":
            log.info(f"WhatsApp connected for tenant {tenant_id}")
            session.transition(SessionStatus.CONNECTED)
            session.reconnect_attempts = 0
            await self.store.set_status(tenant_id, SessionStatus.CONNECTED)
        elif update.connection == "close":
            await self._on_close(binding, update.disconnect_reason)

    async def _on_close(self, binding: _Binding, reason: int | None) -> None:
        tenant_id = binding.tenant_id
        session = self._session(tenant_id)
        self._bindings.pop(tenant_id, None)
        handle = self.registry.get(tenant_id)
        if handle is binding.handle:
            self.registry.remove(tenant_id)
        await self._close_quietly(binding.handle)

        if reason == DisconnectReason.LOGGED_OUT:
            log.warning(f"Tenant {tenant_id} was logged out remotely, not reconnecting")
            session.transition(SessionStatus.LOGGED_OUT)
            session.reconnect_attempts = 0
            await self.store.clear(tenant_id)
            return

        log.warning(f"Connection closed for tenant {tenant_id} (reason {reason}), reconnecting")
        session.transition(SessionStatus.DISCONNECTED)
        await self.store.set_status(tenant_id, SessionStatus.DISCONNECTED)
        self._schedule_reconnect(tenant_id)

    # ------------------------------------------------------------------
    # Reconnect timer
    # ------------------------------------------------------------------

    def _schedule_reconnect(self, tenant_id: str) -> bool:
        session = self._session(tenant_id)
        if self.max_reconnect_attempts and session.reconnect_attempts >= self.max_reconnect_attempts:
            log.error(
                f"Reconnect attempts exhausted for tenant {tenant_id} "
                f"({session.reconnect_attempts}/{self.max_reconnect_attempts})"
            )
            session.transition(SessionStatus.DISCONNECTED)
            return False

        self._cancel_reconnect(tenant_id)
        session.reconnect_attempts += 1
        session.transition(SessionStatus.RECONNECTING)
        loop = asyncio.get_running_loop()
        self._reconnect_timers[tenant_id] = loop.call_later(
            self.reconnect_delay, self._fire_reconnect, tenant_id
        )
        log.info(f"Reconnecting tenant {tenant_id} in {self.reconnect_delay}s (attempt {session.reconnect_attempts})")
        return True

    def _cancel_reconnect(self, tenant_id: str) -> None:
        timer = self._reconnect_timers.pop(tenant_id, None)
        if timer is not None:
            timer.cancel()

    def _fire_reconnect(self, tenant_id: str) -> None:
        self._reconnect_timers.pop(tenant_id, None)
        task = asyncio.get_running_loop().create_task(self._reconnect(tenant_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _reconnect(self, tenant_id: str) -> None:
        session = self._sessions.get(tenant_id)
        if session is None or session.status != SessionStatus.RECONNECTING:
            return
        try:
            await self.connect(tenant_id)
        except Exception as e:
            log.error(f"Reconnect failed for tenant {tenant_id}: {e}")
            self._schedule_reconnect(tenant_id)

    async def _close_quietly(self, handle: ConnectionHandle | None) -> None:
        if handle is None or handle.closed:
            return
        try:
            await handle.close()
        except Exception as e:
            log.warning(f"Error closing connection for tenant {handle.tenant_id}: {e}")
