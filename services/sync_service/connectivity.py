"""Network reachability probe used to gate queue flushes."""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class ConnectivityProbe:
    """Answers "is the remote store reachable right now".

    With no probe URL configured reachability is unknown, which is treated
    as reachable so queued work is never starved. Any HTTP response, even
    an error status, proves the network path is up; only transport
    failures count as offline.
    """

    def __init__(
        self,
        probe_url: Optional[str] = None,
        timeout: float = 3.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.probe_url = probe_url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def is_online(self) -> bool:
        if not self.probe_url:
            return True

        try:
            await self.client.head(self.probe_url)
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Reachability probe to {self.probe_url} failed: {e}")
            return False

    async def aclose(self):
        await self.client.aclose()
