import asyncio
import logging
from typing import Awaitable, Callable, Dict, Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class InFlightRegistry(Generic[T]):
    """Collapse concurrent computations that share a key into one task.

    The lookup and the registration happen in the same step, before the
    first suspension point, so two callers on one event loop can never both
    start work for the same key. The ticket is dropped once the task settles,
    whatever the outcome.
    """

    def __init__(self) -> None:
        self._pending: Dict[str, "asyncio.Task[T]"] = {}

    async def get_or_create(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._pending.get(key)
        if task is not None and not task.done():
            logger.debug("joining in-flight request %s", key)
        else:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(lambda t, k=key: self._release(k, t))

        # A cancelled waiter must not cancel the shared work for the others.
        return await asyncio.shield(task)

    def _release(self, key: str, task: "asyncio.Task[T]") -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("in-flight request %s failed: %s", key, task.exception())

    def clear(self) -> None:
        # Running tasks keep going; later callers just start fresh work.
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._pending)
