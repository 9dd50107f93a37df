"""Request pacing per host."""
import asyncio
import logging
import time
from collections import defaultdict
from typing import Dict
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


class RateLimiter:
    """Spaces consecutive requests to the same host by a minimum interval.

    The source enforces a daily call quota rather than a request rate, so this
    only keeps bursts of page requests polite. A rate of 0 disables pacing.
    """

    def __init__(self, rate_per_second: float):
        self.min_interval = 1.0 / rate_per_second if rate_per_second > 0 else 0.0
        self.waited_total = 0.0
        self._last_request: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @staticmethod
    def _host(url: str) -> str:
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}"

    async def acquire(self, url: str) -> None:
        """Wait until the host's interval has elapsed since its last request."""
        host = self._host(url)
        async with self._locks[host]:
            last = self._last_request.get(host)
            if last is not None and self.min_interval:
                wait_time = self.min_interval - (time.monotonic() - last)
                if wait_time > 0:
                    logger.debug(f"Pacing {host}: sleeping {wait_time:.2f}s")
                    self.waited_total += wait_time
                    await asyncio.sleep(wait_time)
            self._last_request[host] = time.monotonic()
