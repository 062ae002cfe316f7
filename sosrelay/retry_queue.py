"""
Retry queue processor for alerts the relay could not forward.

A single worker drains the queue in FIFO order. The head is retried in place
until it is delivered, sleeping min(max_delay, base_delay * 2**attempts)
between failures, so a head that keeps failing blocks everything behind it.
With the default max_attempts=0 an item is never given up on.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from sosrelay.logging_utils import clear_request_id
from sosrelay.metrics import record_forward_outcome, set_queue_size
from sosrelay.relay_store import MessageStatus, RelayStore

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 60000


def backoff_delay_ms(attempts: int, base_ms: int = DEFAULT_BASE_DELAY_MS, max_ms: int = DEFAULT_MAX_DELAY_MS) -> int:
    return min(max_ms, base_ms * 2 ** attempts)


class RetryQueueProcessor:

    def __init__(
        self,
        store: RelayStore,
        forwarder,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
        max_attempts: int = 0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.forwarder = forwarder
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.max_attempts = max_attempts
        self.sleep = sleep
        self.processing = False
        self._task: Optional[asyncio.Task] = None

    def trigger(self) -> Optional[asyncio.Task]:
        """
        Start draining in the background unless a drain is already running.
        Must be called from inside the event loop.
        """
        if self.processing or (self._task is not None and not self._task.done()):
            return self._task
        self._task = asyncio.create_task(self.run())
        return self._task

    async def run(self) -> None:
        """Drain the queue until it is empty. No-op if already draining."""
        if self.processing:
            return
        self.processing = True
        # The task inherits the triggering request's context
        clear_request_id()
        try:
            await self._drain()
        finally:
            self.processing = False

    async def join(self) -> None:
        """Wait for the current background drain, if any, to finish."""
        if self._task is not None:
            await self._task

    async def stop(self) -> None:
        """Cancel the background drain. Queued items stay queued."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _drain(self) -> None:
        while True:
            item = self.store.head()
            if item is None:
                break

            try:
                ack = await self.forwarder.forward(item.payload)
            except Exception as e:
                error = getattr(e, "message", None) or str(e)
                attempts = self.store.record_failure(item, error)

                if self.max_attempts and attempts >= self.max_attempts:
                    self.store.pop_head()
                    self.store.update_status(item.message_id, MessageStatus.FAILED)
                    set_queue_size(self.store.queue_size())
                    record_forward_outcome("failed")
                    logger.error(
                        f"Dead-lettered message {item.message_id} after {attempts} attempts: {error}",
                        extra={"message_id": item.message_id, "attempts": attempts},
                    )
                    continue

                delay_ms = backoff_delay_ms(attempts, self.base_delay_ms, self.max_delay_ms)
                record_forward_outcome("retried")
                logger.warning(
                    f"Forward of message {item.message_id} failed (attempt {attempts}), retrying in {delay_ms} ms: {error}",
                    extra={"message_id": item.message_id, "attempts": attempts, "delay_ms": delay_ms},
                )
                await self.sleep(delay_ms / 1000)
                continue

            self.store.update_status(item.message_id, MessageStatus.FORWARDED, ack)
            self.store.pop_head()
            set_queue_size(self.store.queue_size())
            record_forward_outcome("forwarded")
            logger.info(
                f"Queued message {item.message_id} forwarded after {item.attempts} failed attempt(s)",
                extra={"message_id": item.message_id, "attempts": item.attempts},
            )
