import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger("recipefinder.revalidate")

RefreshFactory = Callable[[], Awaitable[None]]


class StaleRevalidator:
    """Background refresh of stale cache entries, one task per key.

    A second stale hit for a key that is already refreshing joins the running
    task instead of starting another one. The registry entry is removed when
    the task finishes, whatever the outcome.
    """

    def __init__(self):
        self._in_flight: dict[str, asyncio.Task] = {}

    def schedule(self, key: str, refresh: RefreshFactory) -> asyncio.Task:
        # No await between the lookup and the insert
        task = self._in_flight.get(key)
        if task is not None and not task.done():
            logger.debug("Refresh already in flight for %s", key)
            return task

        task = asyncio.ensure_future(self._run(key, refresh))
        self._in_flight[key] = task
        logger.info("Scheduled background refresh for %s", key)
        return task

    async def _run(self, key: str, refresh: RefreshFactory) -> None:
        try:
            await refresh()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Background refresh failed for %s", key)
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                self._in_flight.pop(key, None)

    def in_flight(self, key: str) -> bool:
        task = self._in_flight.get(key)
        return task is not None and not task.done()

    @property
    def pending(self) -> int:
        return sum(1 for t in self._in_flight.values() if not t.done())

    async def wait_idle(self) -> None:
        """Wait until no refresh is running (shutdown, tests)."""
        while True:
            running = [t for t in self._in_flight.values() if not t.done()]
            if not running:
                break
            await asyncio.gather(*running, return_exceptions=True)
        self._in_flight = {k: t for k, t in self._in_flight.items() if not t.done()}
