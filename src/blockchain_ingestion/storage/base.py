"""
Module: base.py
Description: Repository interfaces for the documents and queue tables.

The processor depends only on these two narrow protocols, so it can run
against DynamoDB in production and an in-memory fake in tests.
"""

from datetime import datetime
from typing import Dict, List, Optional, Protocol

from ..models.queue_entry import QueueEntry
from ..models.record import SourceRecord


class DocumentStore(Protocol):
    """Read/write subset of the host documents table."""

    def find_unprocessed(self, limit: int) -> List[SourceRecord]:
        """Documents with unset chain_status, not deleted, oldest first."""
        ...

    def mark_pending(self, record_id: int) -> bool:
        """Set chain_status=pending only if still unset. True if it changed."""
        ...

    def mark_anchored(self, record_id: int, blockchain_tx: str, record_hash: str) -> None:
        ...

    def mark_failed(self, record_id: int) -> None:
        ...

    def reset_failed(self, record_id: int) -> bool:
        """Operator action: failed -> unset. True if it changed."""
        ...

    def count_by_status(self) -> Dict[str, int]:
        ...


class QueueStore(Protocol):
    """The ingestion queue table."""

    def find_active(self, record_id: int) -> Optional[QueueEntry]:
        """The pending or processing entry for a document, if any."""
        ...

    def create(self, entry: QueueEntry) -> None:
        ...

    def get(self, entry_id: str) -> Optional[QueueEntry]:
        ...

    def find_ready(self, now: datetime, limit: int) -> List[QueueEntry]:
        """Pending entries whose retry window has passed, oldest first."""
        ...

    def begin_attempt(self, entry_id: str, now: datetime) -> QueueEntry:
        """Mark processing, increment attempts and stamp last_attempt."""
        ...

    def complete(self, entry_id: str, blockchain_tx: str, record_hash: str, now: datetime) -> None:
        ...

    def schedule_retry(self, entry_id: str, error: str, next_retry_after: datetime, now: datetime) -> None:
        ...

    def fail(self, entry_id: str, error: str, now: datetime) -> None:
        ...

    def reset(self, entry_id: str, now: datetime) -> None:
        """Operator action: back to pending with zero attempts."""
        ...

    def find_latest_for_record(self, record_id: int) -> Optional[QueueEntry]:
        ...

    def recent(self, limit: int) -> List[QueueEntry]:
        """Most recently created entries, newest first."""
        ...
