"""
Relay-side state: message records and the retry queue.

The relay owns this state exclusively. RelayStore is the repository
interface; InMemoryRelayStore keeps everything in process memory, which is
also what the tests use.
"""

import abc
import time
from dataclasses import dataclass
from typing import List, Optional


class MessageStatus:
    RECEIVED = "received"
    FORWARDED = "forwarded"
    QUEUED = "queued"
    # Only reachable when RETRY_MAX_ATTEMPTS is set
    FAILED = "failed"


@dataclass
class RelayMessageRecord:
    id: int
    raw: str
    received_at: int  # epoch milliseconds
    status: str = MessageStatus.RECEIVED
    ack: Optional[str] = None


@dataclass
class RetryQueueItem:
    message_id: int
    payload: str
    attempts: int = 0
    last_error: Optional[str] = None


class RelayStore(abc.ABC):
    """Repository for relay message records and the FIFO retry queue."""

    @abc.abstractmethod
    def append(self, raw: str) -> RelayMessageRecord:
        """Create a record with status "received" and the next id."""

    @abc.abstractmethod
    def find(self, message_id: int) -> Optional[RelayMessageRecord]:
        ...

    @abc.abstractmethod
    def update_status(self, message_id: int, status: str, ack: Optional[str] = None) -> None:
        ...

    @abc.abstractmethod
    def list_messages(self) -> List[RelayMessageRecord]:
        """All records in creation order."""

    @abc.abstractmethod
    def enqueue(self, item: RetryQueueItem) -> None:
        ...

    @abc.abstractmethod
    def head(self) -> Optional[RetryQueueItem]:
        """The oldest queued item, left in place."""

    @abc.abstractmethod
    def pop_head(self) -> Optional[RetryQueueItem]:
        ...

    @abc.abstractmethod
    def record_failure(self, item: RetryQueueItem, error: str) -> int:
        """Increment the item's attempts, store the error, return the new count."""

    @abc.abstractmethod
    def queue_items(self) -> List[RetryQueueItem]:
        ...

    def queue_size(self) -> int:
        return len(self.queue_items())


class InMemoryRelayStore(RelayStore):

    def __init__(self) -> None:
        self._messages: List[RelayMessageRecord] = []
        self._queue: List[RetryQueueItem] = []
        self._next_id = 1

    def append(self, raw: str) -> RelayMessageRecord:
        record = RelayMessageRecord(
            id=self._next_id,
            raw=raw,
            received_at=int(time.time() * 1000),
        )
        self._next_id += 1
        self._messages.append(record)
        return record

    def find(self, message_id: int) -> Optional[RelayMessageRecord]:
        for record in self._messages:
            if record.id == message_id:
                return record
        return None

    def update_status(self, message_id: int, status: str, ack: Optional[str] = None) -> None:
        record = self.find(message_id)
        if record is None:
            raise KeyError(message_id)
        record.status = status
        if ack is not None:
            record.ack = ack

    def list_messages(self) -> List[RelayMessageRecord]:
        return list(self._messages)

    def enqueue(self, item: RetryQueueItem) -> None:
        self._queue.append(item)

    def head(self) -> Optional[RetryQueueItem]:
        return self._queue[0] if self._queue else None

    def pop_head(self) -> Optional[RetryQueueItem]:
        return self._queue.pop(0) if self._queue else None

    def record_failure(self, item: RetryQueueItem, error: str) -> int:
        item.attempts += 1
        item.last_error = error
        return item.attempts

    def queue_items(self) -> List[RetryQueueItem]:
        return list(self._queue)

    def queue_size(self) -> int:
        return len(self._queue)
