"""
Fire-and-forget outbound notification queue.

Slow or unavailable external channels (Telegram) must never delay a request.
Jobs are put on an in-process ``asyncio.Queue`` and processed by one worker
task started in the application lifespan.

Usage:
    queue = OutboundQueue({"ticket_created": notifier.notify_new_ticket})
    await queue.start()
    queue.submit(OutboundJob("ticket_created", {...}))
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

logger = logging.getLogger(__name__)

OutboundHandler = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class OutboundJob:
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)


class OutboundQueue:
    """Bounded queue plus a single consumer task."""

    def __init__(self, handlers: Mapping[str, OutboundHandler] | None = None, *, maxsize: int = 1000):
        self._handlers: dict[str, OutboundHandler] = dict(handlers or {})
        self._queue: asyncio.Queue[OutboundJob] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task | None = None
        self.dropped = 0

    def register(self, kind: str, handler: OutboundHandler) -> None:
        self._handlers[kind] = handler

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, job: OutboundJob) -> bool:
        """Enqueue without blocking. Returns False if the job was dropped."""
        if job.kind not in self._handlers:
            logger.warning("No outbound handler for %s, dropping job", job.kind)
            self.dropped += 1
            return False
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            logger.warning("Outbound queue full, dropping %s job", job.kind)
            self.dropped += 1
            return False
        return True

    async def start(self) -> None:
        if self.running:
            return
        # asyncio.Queue binds to the loop that first waits on it; carry pending
        # jobs over to a fresh queue for the current loop
        pending = []
        while not self._queue.empty():
            pending.append(self._queue.get_nowait())
        self._queue = asyncio.Queue(maxsize=self._queue.maxsize)
        for job in pending:
            self._queue.put_nowait(job)
        self._task = asyncio.create_task(self._run(), name="outbound-queue")
        logger.info("Outbound queue worker started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Outbound queue worker stopped (%d jobs pending)", self.pending())

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def process(self, job: OutboundJob) -> None:
        """Run one job's handler. Handler errors are logged and swallowed."""
        handler = self._handlers.get(job.kind)
        if handler is None:
            logger.warning("No outbound handler for %s", job.kind)
            return
        try:
            await handler(job.payload)
        except Exception:
            logger.exception("Outbound %s job failed", job.kind)

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.process(job)
            finally:
                self._queue.task_done()
