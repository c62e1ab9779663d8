"""
Bounded admission for relay work.

``SlotLimiter`` is a plain counting limiter owned by whoever builds it.
``RelayPool`` is the one place where new work waits for capacity: ``submit``
returns only after a slot has been taken, so a saturated pool stalls the
caller (the message source's delivery loop) instead of queueing unboundedly.
"""

import asyncio
from typing import Awaitable, Callable

import services.logger as log

l = log.get_logger()


class SlotLimiter:
    """Fixed-capacity limiter. ``acquire`` and ``release`` are its only operations."""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._sem = asyncio.Semaphore(capacity)

    async def acquire(self) -> None:
        await self._sem.acquire()

    def release(self) -> None:
        self._sem.release()


class RelayPool:
    """Runs submitted jobs on their own tasks, at most ``limiter.capacity`` at a time."""

    def __init__(self, limiter: SlotLimiter):
        self._limiter = limiter
        self._tasks: set[asyncio.Task] = set()

    @property
    def capacity(self) -> int:
        return self._limiter.capacity

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def submit(self, job: Callable[[], Awaitable], name: str = "") -> asyncio.Task:
        """
        Wait for a free slot, then start *job* in the background.

        The slot is handed to the job's task and released exactly once when
        the job finishes, fails or is cancelled.
        """
        await self._limiter.acquire()
        try:
            task = asyncio.create_task(self._run(job, name), name=name or None)
        except BaseException:
            self._limiter.release()
            raise
        self._tasks.add(task)
        # A done callback also fires for tasks cancelled before their first step
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._limiter.release()

    async def _run(self, job: Callable[[], Awaitable], name: str):
        try:
            return await job()
        except asyncio.CancelledError:
            l.debug(f"Relay job '{name}' cancelled")
            raise
        except Exception as e:
            l.error(f"Relay job '{name}' crashed: {e}", exc_info=True)
            return None

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight jobs. Returns False if *timeout* expired first."""
        if not self._tasks:
            return True
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        return not pending

    async def cancel(self) -> None:
        """Cancel every in-flight job and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
