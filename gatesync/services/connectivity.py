"""Connectivity monitor tracking online/offline transitions."""

import logging
from datetime import datetime
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    """Holds the current online state and notifies listeners on transitions.

    State is pushed by the platform through :meth:`set_online`, or pulled
    by :meth:`probe` against the remote API's health endpoint.
    """

    def __init__(self, online: bool = True, gateway_factory: Optional[Callable] = None):
        """Initialize connectivity monitor.

        Args:
            online: Initial state.
            gateway_factory: Callable returning a RemoteGateway, used by probe().
        """
        self._online = online
        self._gateway_factory = gateway_factory
        self._listeners: List[ConnectivityListener] = []
        self.last_change_at: Optional[datetime] = None
        self.last_probe_at: Optional[datetime] = None

    def is_online(self) -> bool:
        """Check if currently online."""
        return self._online

    def is_offline(self) -> bool:
        """Check if currently offline."""
        return not self._online

    @property
    def connection_status(self) -> str:
        return "connected" if self._online else "disconnected"

    def set_online(self, online: bool) -> None:
        """Record the current state, notifying listeners if it changed."""
        online = bool(online)
        if online == self._online:
            return

        self._online = online
        self.last_change_at = datetime.utcnow()
        logger.info(f"Network status: {self.connection_status}")

        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception as e:
                logger.error(f"Connectivity listener failed: {e}", exc_info=True)

    def on_change(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register a transition listener.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def probe(self) -> bool:
        """Check the remote API health endpoint and update the state.

        Returns:
            The new online state.
        """
        if self._gateway_factory is None:
            return self._online

        async with self._gateway_factory() as gateway:
            healthy = await gateway.health_check()

        self.last_probe_at = datetime.utcnow()
        self.set_online(healthy)
        return healthy
