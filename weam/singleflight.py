# weam/singleflight.py
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Hashable


class SingleFlight:
    """
    Coalesce concurrent async calls by key: while a call for `key` is running,
    every other caller awaits the same task instead of starting a new one.
    The slot is freed as soon as the task finishes, so the next call after
    that starts fresh.
    """

    def __init__(self) -> None:
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._tasks

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[Any]]) -> Any:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._tasks[key] = task
            task.add_done_callback(lambda _t, k=key: self._tasks.pop(k, None))
        # one cancelled caller must not cancel the shared call
        return await asyncio.shield(task)
