import asyncio
import logging
from typing import Awaitable, Optional

logger = logging.getLogger("recipefinder.background")


class BackgroundRunner:
    """Fire-and-forget tasks that outlive the request that started them.

    Holds a strong reference to every task until it finishes; failures are
    logged, never raised to the caller.
    """

    def __init__(self, name: str = "background"):
        self.name = name
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable, *, label: Optional[str] = None) -> asyncio.Task:
        task = asyncio.ensure_future(self._guard(coro, label or self.name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, coro: Awaitable, label: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Background task failed: %s", label)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for everything currently scheduled (shutdown, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
