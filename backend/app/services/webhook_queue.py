from __future__ import annotations

"""In-process retry queue for payment webhook events.

One queue per process (held on `app.state`). Events are processed strictly
one at a time in FIFO order; a failing task is retried in place with a fixed
delay, so it blocks the tasks behind it until it succeeds or runs out of
attempts (`max_retries + 1` in total). Keep `max_retries * retry_delay_ms`
small.

Nothing here is persisted: a process restart loses queued events, and the
payment gateway's own redelivery covers that.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from app.config import DEFAULT_WEBHOOK_MAX_RETRIES, DEFAULT_WEBHOOK_RETRY_DELAY_MS
from app.schemas_webhook import InboundEvent
from app.utils import now_utc

logger = logging.getLogger(__name__)

EventProcessor = Callable[[InboundEvent], Awaitable[Any]]


@dataclass
class QueuedTask:
    event: InboundEvent
    attempt: int = 0
    enqueued_at: datetime = field(default_factory=now_utc)


class WebhookTaskQueue:
    def __init__(
        self,
        processor: EventProcessor,
        *,
        max_retries: int = DEFAULT_WEBHOOK_MAX_RETRIES,
        retry_delay_ms: int = DEFAULT_WEBHOOK_RETRY_DELAY_MS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._processor = processor
        self.max_retries = max(0, int(max_retries))
        self.retry_delay_ms = max(0, int(retry_delay_ms))
        self._sleep = sleep

        self._tasks: Deque[QueuedTask] = deque()
        self._running = False
        self._worker: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()

        self.processed = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def running(self) -> bool:
        return self._running

    def snapshot(self) -> Dict[str, Any]:
        return {
            "pending": self.pending,
            "running": self._running,
            "processed": self.processed,
            "dropped": self.dropped,
            "max_retries": self.max_retries,
            "retry_delay_ms": self.retry_delay_ms,
        }

    def enqueue(self, event: InboundEvent) -> QueuedTask:
        """Append an event and make sure a worker is draining the queue.

        Synchronous: the running flag flips before any await, so concurrent
        callers can never start a second worker.
        """

        task = QueuedTask(event=event)
        self._tasks.append(task)
        logger.info("Webhook queued (%s), pending=%s", event.describe(), self.pending)

        if not self._running:
            self._running = True
            self._idle.clear()
            self._worker = asyncio.get_running_loop().create_task(self._drain())
        return task

    async def join(self) -> None:
        """Wait until every queued task has finished or been dropped."""
        await self._idle.wait()

    async def aclose(self) -> None:
        worker = self._worker
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        if self._tasks:
            logger.warning("Webhook queue closed with %s unprocessed task(s)", len(self._tasks))
            self._tasks.clear()
        self._worker = None
        self._running = False
        self._idle.set()

    async def _drain(self) -> None:
        try:
            while self._tasks:
                task = self._tasks.popleft()
                try:
                    await self._run_task(task)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    # _run_task already handles processor errors; this only
                    # guards the loop itself.
                    logger.exception("Webhook worker error; dropping task (%s)", task.event.describe())
                    self.dropped += 1
        finally:
            self._running = False
            self._worker = None
            self._idle.set()

    async def _run_task(self, task: QueuedTask) -> None:
        while True:
            try:
                await self._processor(task.event)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                task.attempt += 1
                if task.attempt > self.max_retries:
                    logger.error(
                        "Webhook task dropped after %s attempt(s) (%s): %s",
                        task.attempt,
                        task.event.describe(),
                        exc,
                        exc_info=True,
                    )
                    self.dropped += 1
                    return

                logger.warning(
                    "Webhook task failed (attempt %s/%s, %s): %s; retrying in %sms",
                    task.attempt,
                    self.max_retries + 1,
                    task.event.describe(),
                    exc,
                    self.retry_delay_ms,
                )
                await self._sleep(self.retry_delay_ms / 1000.0)
                continue

            self.processed += 1
            return
