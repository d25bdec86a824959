from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, nullcontext
from typing import AsyncIterator, Awaitable, Callable

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[BaseException], Awaitable[None]]


class TaskSpawner:
    """Runs fire-and-forget coroutines as tracked asyncio tasks.

    Each task gets an optional deadline and an exception barrier: a failure is
    logged and handed to `on_error` instead of escaping into the event loop.
    With `max_concurrency > 0` at most that many tasks run at once; the rest
    wait for a slot.
    """

    def __init__(self, *, max_concurrency: int = 0):
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency > 0 else None
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        name: str,
        fn: Callable[[], Awaitable[None]],
        *,
        timeout_s: float | None = None,
        on_error: ErrorHandler | None = None,
    ) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._run(name, fn, timeout_s, on_error), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @asynccontextmanager
    async def _slot(self) -> AsyncIterator[None]:
        if self._semaphore is None:
            yield
            return
        async with self._semaphore:
            yield

    async def _run(
        self,
        name: str,
        fn: Callable[[], Awaitable[None]],
        timeout_s: float | None,
        on_error: ErrorHandler | None,
    ) -> None:
        async with self._slot():
            try:
                async with asyncio.timeout(timeout_s) if timeout_s else nullcontext():
                    await fn()
            except asyncio.CancelledError as e:
                logger.warning("background task %s cancelled", name)
                await self._handle(name, e, on_error)
                raise
            except Exception as e:
                logger.exception("background task %s failed", name)
                await self._handle(name, e, on_error)

    @staticmethod
    async def _handle(name: str, exc: BaseException, on_error: ErrorHandler | None) -> None:
        if on_error is None:
            return
        try:
            await on_error(exc)
        except Exception:
            logger.exception("error handler for background task %s failed", name)

    async def drain(self) -> None:
        """Wait until every task spawned so far (and any they spawn) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
