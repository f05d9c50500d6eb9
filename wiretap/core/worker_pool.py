"""Bounded asyncio worker pool used by the sweeps (sync-all, provider ingestion, health probes)."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class WorkResult(Generic[T]):
    item: T
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_bounded(
    items: Iterable[T],
    handler: Callable[[T], Awaitable[Any]],
    concurrency: int,
    label: Callable[[T], str] = str,
) -> List[WorkResult[T]]:
    """Run handler over items with at most `concurrency` in flight.

    Workers pull from a shared queue. A failing unit is logged and recorded on its
    WorkResult; it never stops the other units. Results keep the input order.
    """
    items = list(items)
    results: List[Optional[WorkResult[T]]] = [None] * len(items)
    if not items:
        return []

    queue: asyncio.Queue = asyncio.Queue()
    for index, item in enumerate(items):
        queue.put_nowait((index, item))

    async def worker():
        while True:
            try:
                index, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                value = await handler(item)
                results[index] = WorkResult(item=item, value=value)
            except Exception as e:
                logger.error(f"Work unit {label(item)} failed: {e}")
                results[index] = WorkResult(item=item, error=e)
            finally:
                queue.task_done()

    worker_count = max(1, min(concurrency, len(items)))
    await asyncio.gather(*(worker() for _ in range(worker_count)))
    return results
