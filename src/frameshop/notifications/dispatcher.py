"""Bounded, fire-and-forget notification queue."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from frameshop.domain.orders import Order
from frameshop.notifications.base import NotificationSender

logger = logging.getLogger(__name__)


@dataclass
class DispatchStats:
    queued: int = 0
    delivered: int = 0
    failed: int = 0
    dropped: int = 0


class NotificationDispatcher:
    """Queues status updates and delivers them from a single worker task.

    ``send_status_update`` never blocks and never raises.  When the queue is
    full the update is dropped and counted.
    """

    def __init__(
        self,
        sender: NotificationSender,
        *,
        queue_size: int = 100,
        max_retries: int = 2,
        retry_delay_seconds: float = 0.5,
    ) -> None:
        self._sender = sender
        self._queue: asyncio.Queue[Order] = asyncio.Queue(maxsize=queue_size)
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds
        self._worker: asyncio.Task[None] | None = None
        self._stats = DispatchStats()

    @property
    def stats(self) -> DispatchStats:
        return self._stats

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def send_status_update(self, order: Order) -> bool:
        try:
            self._queue.put_nowait(order)
        except asyncio.QueueFull:
            self._stats.dropped += 1
            logger.warning(
                "Notification queue full; dropped status update for order %s (%s)",
                order.id,
                order.status.value,
            )
            return False
        self._stats.queued += 1
        self._ensure_worker()
        return True

    def start(self) -> None:
        self._ensure_worker()

    async def join(self) -> None:
        """Wait until every queued update has been delivered or given up on."""
        self._ensure_worker()
        await self._queue.join()

    async def stop(self) -> None:
        worker, self._worker = self._worker, None
        if worker is None:
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass
        if self._queue.qsize():
            logger.info("Notification dispatcher stopped with %d pending", self._queue.qsize())

    def _ensure_worker(self) -> None:
        if self._worker is not None and not self._worker.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; the worker starts on the next call made inside one.
            return
        self._worker = loop.create_task(self._run(), name="frameshop-notifications")

    async def _run(self) -> None:
        while True:
            order = await self._queue.get()
            try:
                await self._deliver(order)
            finally:
                self._queue.task_done()

    async def _deliver(self, order: Order) -> None:
        attempts = self._max_retries + 1
        for attempt in range(attempts):
            try:
                await self._sender.send_status_update(order)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    "Notification attempt %d/%d for order %s failed: %s",
                    attempt + 1,
                    attempts,
                    order.id,
                    e,
                )
                if attempt < attempts - 1 and self._retry_delay > 0:
                    await asyncio.sleep(self._retry_delay * (2**attempt))
            else:
                self._stats.delivered += 1
                return
        self._stats.failed += 1
        logger.error("Giving up on status notification for order %s", order.id)
