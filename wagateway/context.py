"""Gateway context: the process-wide object graph.

Created once at startup and torn down at shutdown; route handlers reach
it through app.state instead of module globals.
"""

from dataclasses import dataclass

from wagateway.client.base import DEFAULT_JID_DOMAIN, MessagingClient
from wagateway.client.bridge import BaileysBridgeClient
from wagateway.core.logging import log
from wagateway.db.base import build_engine, build_session_factory
from wagateway.inbound.dispatch import ReplyDispatcher, build_reply_dispatcher
from wagateway.inbound.router import InboundRouter
from wagateway.sessions.file_store import FileCredentialStore
from wagateway.sessions.manager import ConnectionLifecycleManager
from wagateway.sessions.registry import SessionRegistry
from wagateway.sessions.store import CredentialStore, DatabaseCredentialStore


@dataclass
class GatewayContext:
    client: MessagingClient
    store: CredentialStore
    registry: SessionRegistry
    dispatcher: ReplyDispatcher
    router: InboundRouter
    manager: ConnectionLifecycleManager
    restore_on_startup: bool = False
    bridge_api_key: str | None = None

    @classmethod
    def create(
        cls,
        client: MessagingClient,
        store: CredentialStore,
        dispatcher: ReplyDispatcher,
        reconnect_delay: float = 3.0,
        max_reconnect_attempts: int = 0,
        jid_domain: str = DEFAULT_JID_DOMAIN,
        restore_on_startup: bool = False,
        bridge_api_key: str | None = None,
    ) -> "GatewayContext":
        registry = SessionRegistry()
        router = InboundRouter(dispatcher)
        manager = ConnectionLifecycleManager(
            client=client,
            store=store,
            registry=registry,
            router=router,
            reconnect_delay=reconnect_delay,
            max_reconnect_attempts=max_reconnect_attempts,
            jid_domain=jid_domain,
        )
        return cls(
            client=client,
            store=store,
            registry=registry,
            dispatcher=dispatcher,
            router=router,
            manager=manager,
            restore_on_startup=restore_on_startup,
            bridge_api_key=bridge_api_key,
        )

    async def startup(self) -> None:
        if self.restore_on_startup:
            await self.manager.restore_sessions()

    async def shutdown(self) -> None:
        log.info(f"Closing {len(self.registry)} WhatsApp connection(s)")
        await self.manager.shutdown()
        await self.client.aclose()
        await self.dispatcher.aclose()
        await self.store.aclose()


def build_credential_store(settings) -> CredentialStore:
    backend = settings.get("CREDENTIAL_BACKEND", "database")
    if backend == "file":
        return FileCredentialStore(settings.get("SESSIONS_DIR", "sessions"))
    if backend == "database":
        engine = build_engine()
        return DatabaseCredentialStore(build_session_factory(engine), engine=engine)
    raise ValueError(f"Unknown CREDENTIAL_BACKEND: {backend}")


def build_gateway_context(settings) -> GatewayContext:
    """Wire the gateway from configuration."""
    client = BaileysBridgeClient(
        base_url=settings.BRIDGE_URL,
        api_key=settings.get("BRIDGE_API_KEY", ""),
        callback_url=settings.get("PUBLIC_URL", "http://127.0.0.1:8000"),
        timeout=float(settings.get("BRIDGE_TIMEOUT_SECONDS", 30.0)),
    )
    return GatewayContext.create(
        client=client,
        store=build_credential_store(settings),
        dispatcher=build_reply_dispatcher(settings),
        reconnect_delay=float(settings.get("RECONNECT_DELAY_SECONDS", 3.0)),
        max_reconnect_attempts=int(settings.get("MAX_RECONNECT_ATTEMPTS", 0)),
        jid_domain=settings.get("JID_DOMAIN", DEFAULT_JID_DOMAIN),
        restore_on_startup=bool(settings.get("RESTORE_SESSIONS_ON_STARTUP", True)),
        bridge_api_key=settings.get("BRIDGE_API_KEY"),
    )
