"""Session registry: tenant id to live connection handle"""

from typing import Iterator

from wagateway.client.base import ConnectionHandle


class SessionRegistry:
    """In-process map holding at most one connection handle per tenant.

    Only mutated from the event loop, so plain dict operations are atomic
    with respect to each other. put() does not close a replaced handle;
    callers close the old one first.
    """

    def __init__(self):
        self._handles: dict[str, ConnectionHandle] = {}

    def get(self, tenant_id: str) -> ConnectionHandle | None:
        return self._handles.get(tenant_id)

    def put(self, tenant_id: str, handle: ConnectionHandle) -> None:
        self._handles[tenant_id] = handle

    def remove(self, tenant_id: str) -> ConnectionHandle | None:
        return self._handles.pop(tenant_id, None)

    def tenants(self) -> list[str]:
        return list(self._handles)

    def __contains__(self, tenant_id: object) -> bool:
        return tenant_id in self._handles

    def __iter__(self) -> Iterator[tuple[str, ConnectionHandle]]:
        return iter(list(self._handles.items()))

    def __len__(self) -> int:
        return len(self._handles)
