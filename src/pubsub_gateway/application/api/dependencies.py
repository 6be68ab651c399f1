"""
FastAPI Dependencies - Educational Documentation
=================================================

WHAT IS DEPENDENCY INJECTION?
-----------------------------
Routes declare what they need as parameters; FastAPI resolves those
parameters per request:

    @router.post("/topic")
    async def publish(gateway: GatewayDep):
        ...

WHERE DOES THE GATEWAY COME FROM?
---------------------------------
The lifespan handler in app.py builds one BrokerGateway at startup and
stores it on `app.state.gateway`. `get_gateway()` reads it back from the
request, so tests can hand create_app() a gateway wired to an in-memory
broker without touching global state.
"""

from typing import Annotated

from fastapi import Depends, Request

from pubsub_gateway.application.services.gateway import BrokerGateway


def get_gateway(request: Request) -> BrokerGateway:
    """
    Return the gateway created during application startup.

    Raises:
        RuntimeError: If the lifespan handler has not run
    """
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise RuntimeError("Broker gateway not initialized. Check application startup logs.")
    return gateway


# ============================================================================
# TYPE ALIASES FOR DEPENDENCY INJECTION
# ============================================================================

GatewayDep = Annotated[BrokerGateway, Depends(get_gateway)]
"""Broker gateway from application state."""
