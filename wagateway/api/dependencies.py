"""FastAPI dependencies"""

from typing import Annotated

from fastapi import Depends, Header, Request

from wagateway.context import GatewayContext
from wagateway.core.exceptions import AuthenticationError


def get_gateway(request: Request) -> GatewayContext:
    """The gateway context created at startup."""
    return request.app.state.gateway


async def verify_bridge_key(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """Bridge callbacks must carry the shared API key."""
    expected = request.app.state.gateway.bridge_api_key
    if expected and x_api_key != expected:
        raise AuthenticationError()


# Type aliases for dependencies
Gateway = Annotated[GatewayContext, Depends(get_gateway)]
BridgeAuth = Depends(verify_bridge_key)
