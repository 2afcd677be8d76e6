"""
Order desk entry point.

This module wires the order core together for a signed-in operator: logging
is configured, the session token is stored, the HTTP gateway is opened against
the configured backend, and a lifecycle coordinator is handed to the caller.
Resources are released when the context exits.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from orderdesk.core.config import Settings, get_settings
from orderdesk.core.logging import configure_logging, get_logger, log_performance
from orderdesk.core.security import SessionTokenStore
from orderdesk.services.orders.repository import HttpOrderGateway
from orderdesk.services.orders.service import Confirmer, OrderLifecycleCoordinator
from orderdesk.services.orders.state_machine import StatusTransitionGate

logger = get_logger(__name__)


@asynccontextmanager
async def order_desk(
    confirmer: Confirmer,
    token: Optional[str] = None,
    gate: Optional[StatusTransitionGate] = None,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> AsyncIterator[OrderLifecycleCoordinator]:
    """
    Order desk lifespan.

    Args:
        confirmer: Confirmation capability shown every mutation prompt
        token: Bearer token issued at login, if already signed in
        gate: Optional transition gate, defaults to the permissive gate
        client: Optional preconfigured httpx client (owned by the caller)
        settings: Optional settings, defaults to the cached settings

    Yields:
        Coordinator bound to the HTTP gateway. The board is not loaded yet.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    logger.info(
        "Order desk starting",
        app_name=settings.app_name,
        environment=settings.environment,
        version=settings.app_version,
        api_base_url=settings.api_base_url,
    )

    token_store = SessionTokenStore(token)
    gateway = HttpOrderGateway(token_store, client=client, settings=settings)
    try:
        yield OrderLifecycleCoordinator(gateway, confirmer, gate=gate)
    finally:
        logger.info("Order desk shutting down")
        with log_performance(logger, "order_desk_shutdown"):
            token_store.logout()
            await gateway.aclose()
