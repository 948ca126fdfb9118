from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger("curator.updates")

T = TypeVar("T")


class RequestCoalescer(Generic[T]):
    """
    Map of key -> one shared in-flight task.

    Callers asking for a key that already has a task await that task instead
    of starting a second call. A resolved entry stays joinable for `ttl`
    seconds, then is dropped so a later independent run starts fresh.
    With `evict_on_error`, a failed entry is dropped at once so later callers
    don't inherit the failure.

    Lookup and insert happen in one synchronous step (no await in between),
    which is what makes this safe on a single event loop.
    """

    def __init__(self, name: str, *, ttl: Optional[float] = 2.0, evict_on_error: bool = False):
        self.name = name
        self.ttl = ttl
        self.evict_on_error = evict_on_error
        self._pending: Dict[str, asyncio.Task[T]] = {}
        self._timers: List[asyncio.TimerHandle] = []
        self._closed = False

    def __contains__(self, key: str) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def get_or_start(self, key: str, factory: Callable[[], Awaitable[T]]) -> asyncio.Task[T]:
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(lambda t: self._on_done(key, t))
            logger.debug("[%s] started shared call for %s", self.name, key)
        return task

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        # shield: a cancelled waiter must not cancel the call its siblings share
        return await asyncio.shield(self.get_or_start(key, factory))

    def evict(self, key: str, task: Optional[asyncio.Task[T]] = None) -> None:
        # Only drop the entry we were asked about, never a newer one
        current = self._pending.get(key)
        if current is not None and (task is None or current is task):
            del self._pending[key]

    def close(self) -> None:
        self._closed = True
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        # calls nobody waits for anymore (their waiters failed elsewhere)
        for task in self._pending.values():
            if not task.done():
                task.cancel()
        self._pending.clear()

    def _on_done(self, key: str, task: asyncio.Task[T]) -> None:
        if self._closed:
            return
        failed = task.cancelled() or task.exception() is not None
        if failed and self.evict_on_error:
            self.evict(key, task)
            return
        if self.ttl is None:
            return
        loop = asyncio.get_running_loop()
        self._timers.append(loop.call_later(self.ttl, self.evict, key, task))
