"""
Open order sessions held by this terminal process, one per order id.
Sessions are attached to the shared change feed and refreshed on a timer while open.
"""
from __future__ import annotations

import logging
from typing import Optional

from pos_terminal.schemas.order import OrderCreate
from pos_terminal.services.catalog_client import CatalogClient
from pos_terminal.services.change_feed import ChangeFeed
from pos_terminal.services.order_client import OrderClient
from pos_terminal.services.order_session import OrderSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(
        self,
        order_client: Optional[OrderClient] = None,
        catalog: Optional[CatalogClient] = None,
        feed: Optional[ChangeFeed] = None,
        auto_refresh: bool = True,
    ) -> None:
        self.order_client = order_client or OrderClient()
        self.catalog = catalog or CatalogClient()
        self.feed = feed or ChangeFeed()
        self.auto_refresh = auto_refresh
        self._sessions: dict[str, OrderSession] = {}

    def _track(self, session: OrderSession) -> OrderSession:
        if not session.order.is_open:
            return session
        self._sessions[session.order.id] = session
        session.attach(self.feed)
        if self.auto_refresh:
            session.start_auto_refresh()
        return session

    async def _prune(self) -> None:
        """Stop tracking orders that were completed or cancelled, here or on another terminal."""
        for order_id, session in list(self._sessions.items()):
            if not session.order.is_open:
                await self.release(order_id)

    async def create(self, params: OrderCreate) -> OrderSession:
        await self._prune()
        session = await OrderSession.create(self.order_client, self.catalog, params)
        return self._track(session)

    async def get(self, order_id: str) -> OrderSession:
        session = self._sessions.get(order_id)
        await self._prune()
        if session is None:
            session = self._track(await OrderSession.open(self.order_client, self.catalog, order_id))
        return session

    async def release(self, order_id: str) -> None:
        session = self._sessions.pop(order_id, None)
        if session is not None:
            await session.close()

    async def close_all(self) -> None:
        for order_id in list(self._sessions):
            await self.release(order_id)
        logger.info("order_sessions_closed")


_registry: Optional[SessionRegistry] = None


def get_registry() -> SessionRegistry:
    """Dependency: the process-wide registry."""
    global _registry
    if _registry is None:
        _registry = SessionRegistry()
    return _registry
