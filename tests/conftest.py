"""
Pytest fixtures for gateway tests.
"""

import asyncio
import itertools
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio

from wagateway.client.base import ConnectionHandle, MessagingClient, SentMessage
from wagateway.client.events import (
    ConnectionUpdate,
    CredentialsUpdate,
    EventBus,
    EventKind,
    MessagesUpsert,
)
from wagateway.context import GatewayContext
from wagateway.db.base import build_engine, build_session_factory
from wagateway.db.session import create_tables
from wagateway.inbound.dispatch import InboundMessage, ReplyDispatcher
from wagateway.inbound.router import InboundRouter
from wagateway.sessions.file_store import FileCredentialStore
from wagateway.sessions.manager import ConnectionLifecycleManager
from wagateway.sessions.registry import SessionRegistry
from wagateway.sessions.store import DatabaseCredentialStore

RECONNECT_DELAY = 0.01


class FakeHandle(ConnectionHandle):
    """Connection handle that records sends and lets tests emit events."""

    _ids = itertools.count(1)

    def __init__(self, tenant_id: str, events: EventBus):
        super().__init__(tenant_id, events)
        self.sent: list[tuple[str, str]] = []
        self.close_calls = 0
        self.send_error: Exception | None = None

    async def send_text(self, jid: str, text: str) -> SentMessage:
        if self.send_error:
            raise self.send_error
        self.sent.append((jid, text))
        return SentMessage(
            message_id=f"MSG{next(self._ids)}",
            timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True

    async def emit_qr(self, qr: str = "2@pairing-challenge") -> None:
        await self.events.emit(EventKind.CONNECTION_UPDATE, ConnectionUpdate(qr=qr))

    async def emit_open(self) -> None:
        await self.events.emit(EventKind.CONNECTION_UPDATE, ConnectionUpdate(connection="open"))

    async def emit_close(self, reason: int | None) -> None:
        await self.events.emit(
            EventKind.CONNECTION_UPDATE,
            ConnectionUpdate(connection="close", disconnect_reason=reason),
        )

    async def emit_creds(self, credentials: dict[str, Any]) -> None:
        await self.events.emit(EventKind.CREDS_UPDATE, CredentialsUpdate(credentials=credentials))

    async def emit_messages(self, messages: list[dict[str, Any]]) -> None:
        await self.events.emit(EventKind.MESSAGES_UPSERT, MessagesUpsert(messages=messages))


class FakeClient(MessagingClient):
    """Messaging client that opens FakeHandles."""

    def __init__(self, open_delay: float = 0.0):
        self.open_delay = open_delay
        self.opens: list[tuple[str, dict | None]] = []
        self.handles: list[FakeHandle] = []
        self.fail_with: Exception | None = None
        self.closed = False

    async def open(self, tenant_id, credentials, events) -> FakeHandle:
        self.opens.append((tenant_id, credentials))
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.fail_with:
            raise self.fail_with
        handle = FakeHandle(tenant_id, events)
        self.handles.append(handle)
        return handle

    async def aclose(self) -> None:
        self.closed = True

    def last_handle(self) -> FakeHandle:
        return self.handles[-1]


class RecordingDispatcher(ReplyDispatcher):
    """Reply pipeline double; returns `reply` for every message."""

    name = "recording"

    def __init__(self, reply: str | None = None):
        super().__init__(url="http://reply.test")
        self.reply = reply
        self.messages: list[InboundMessage] = []
        self.fail_on: set[str] = set()

    async def dispatch(self, message: InboundMessage) -> str | None:
        self.messages.append(message)
        if message.text in self.fail_on:
            raise RuntimeError(f"pipeline rejected {message.text!r}")
        return self.reply


def inbound_payload(
    text: str = "Oi, tudo bem?",
    remote_jid: str = "5511888888888@s.whatsapp.net",
    from_me: bool = False,
    extended: bool = False,
) -> dict[str, Any]:
    """Raw messages.upsert entry as the messaging library reports it."""
    message = {"extendedTextMessage": {"text": text}} if extended else {"conversation": text}
    return {
        "key": {"id": "3EB0C767D26A", "remoteJid": remote_jid, "fromMe": from_me},
        "message": message,
        "messageTimestamp": 1704067200,
        "pushName": "Maria",
    }


@pytest.fixture
def sample_phone():
    return "5511999999999"


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest_asyncio.fixture
async def db_store(tmp_path):
    """Database credential store on a throwaway SQLite file."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}")
    await create_tables(engine)
    store = DatabaseCredentialStore(build_session_factory(engine), engine=engine)
    yield store
    await store.aclose()


@pytest.fixture
def file_store(tmp_path):
    return FileCredentialStore(tmp_path / "sessions")


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def manager(fake_client, db_store, registry, dispatcher):
    return ConnectionLifecycleManager(
        client=fake_client,
        store=db_store,
        registry=registry,
        router=InboundRouter(dispatcher),
        reconnect_delay=RECONNECT_DELAY,
    )


@pytest.fixture
def gateway(fake_client, db_store, dispatcher):
    return GatewayContext.create(
        client=fake_client,
        store=db_store,
        dispatcher=dispatcher,
        reconnect_delay=RECONNECT_DELAY,
        bridge_api_key="bridge-test-key",
    )
