import logging
from dataclasses import dataclass
from typing import Optional

from sosrelay.errors import UpstreamUnavailable, ValidationError
from sosrelay.metrics import record_forward_outcome, set_queue_size
from sosrelay.relay_store import MessageStatus, RelayMessageRecord, RelayStore, RetryQueueItem
from sosrelay.retry_queue import RetryQueueProcessor

logger = logging.getLogger(__name__)


@dataclass
class SubmitResult:
    record: RelayMessageRecord
    ack: Optional[str] = None

    @property
    def queued(self) -> bool:
        return self.ack is None


class RelayService:
    """Accepts alerts from edge clients and delivers them to the command service."""

    def __init__(self, store: RelayStore, forwarder, processor: RetryQueueProcessor):
        self.store = store
        self.forwarder = forwarder
        self.processor = processor

    async def submit(self, payload: Optional[str]) -> SubmitResult:
        """
        Record the alert and make one forward attempt.

        On success the record becomes "forwarded" and the ack is returned.
        On failure the record becomes "queued", a retry item is appended and
        the queue processor is started if it is not already running.

        Raises:
            ValidationError: payload is missing or empty; nothing is recorded
        """
        if not isinstance(payload, str) or not payload:
            raise ValidationError("missing payload")

        record = self.store.append(payload)
        logger.info(f"Alert received: message_id={record.id}")

        try:
            ack = await self.forwarder.forward(payload)
        except UpstreamUnavailable as e:
            self.store.update_status(record.id, MessageStatus.QUEUED)
            self.store.enqueue(RetryQueueItem(message_id=record.id, payload=payload, last_error=e.message))
            set_queue_size(self.store.queue_size())
            record_forward_outcome("queued")
            logger.warning(f"Command service unavailable, message {record.id} queued: {e.message}")
            self.processor.trigger()
            return SubmitResult(record=record)

        self.store.update_status(record.id, MessageStatus.FORWARDED, ack)
        record_forward_outcome("forwarded")
        logger.info(f"Message {record.id} forwarded: {ack}")
        return SubmitResult(record=record, ack=ack)
