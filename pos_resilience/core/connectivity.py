"""Online/offline tracking for the terminal."""
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)

Probe = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """
    Tracks whether the order ledger is reachable.

    The terminal starts out assuming it is offline, so the first successful
    probe counts as connectivity being regained.
    """

    def __init__(self, probe: Probe):
        self._probe = probe
        self.is_online = False
        self.changed_at: Optional[datetime] = None

    async def check(self) -> bool:
        """
        Probe once and update the state.

        Returns:
            bool: True if the terminal just came back online
        """
        try:
            online = bool(await self._probe())
        except Exception as e:
            logger.warning("connectivity_probe_failed", error=str(e))
            online = False

        regained = online and not self.is_online
        if online != self.is_online:
            self.is_online = online
            self.changed_at = datetime.now(timezone.utc)
            logger.info("connectivity_changed", online=online)

        return regained
