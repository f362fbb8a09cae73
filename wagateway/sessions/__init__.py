"""Tenant session lifecycle: credential stores, registry and state machine"""

from wagateway.sessions.file_store import FileCredentialStore
from wagateway.sessions.manager import ConnectionLifecycleManager
from wagateway.sessions.registry import SessionRegistry
from wagateway.sessions.states import SessionStatus, StoredSession, TenantSession
from wagateway.sessions.store import CredentialStore, DatabaseCredentialStore

__all__ = [
    "ConnectionLifecycleManager",
    "CredentialStore",
    "DatabaseCredentialStore",
    "FileCredentialStore",
    "SessionRegistry",
    "SessionStatus",
    "StoredSession",
    "TenantSession",
]
