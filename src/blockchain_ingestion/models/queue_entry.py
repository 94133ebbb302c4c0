"""
Module: queue_entry.py
Description: Queue entry model for the ingestion queue.

A QueueEntry tracks one delivery attempt-series for one document. It is
created once at discovery, mutated through its lifecycle and retained
after reaching a terminal state for audit.

Key Components:
- QueueEntry: durable unit of work
- Status constants: pending, processing, completed, failed
- new_queue_entry(): factory used at discovery time

Dependencies: pydantic, datetime, typing, uuid
"""

from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


QUEUE_PENDING = "pending"
QUEUE_PROCESSING = "processing"
QUEUE_COMPLETED = "completed"
QUEUE_FAILED = "failed"

ACTIVE_STATUSES = (QUEUE_PENDING, QUEUE_PROCESSING)


class QueueEntry(BaseModel):
    """
    Queue entry for one document's anchoring.

    Attributes:
        id: Unique entry identifier (uuid4 hex)
        record_id: Document identifier this entry delivers
        patient_uuid: Owning patient reference, copied for diagnostics
        payload_json: Serialized payload snapshot taken at enqueue time
        attempts: Dispatch attempts made so far
        max_attempts: Attempt ceiling before the entry is failed
        status: pending, processing, completed or failed
        next_retry_after: Earliest time the entry may be dispatched again
        last_attempt: Start time of the latest dispatch
        last_error: Error detail from the latest failed dispatch
        blockchain_tx: Transaction identifier returned on success
        record_hash: Record hash returned on success
        created_at: Creation timestamp (FIFO ordering key)
        updated_at: Last mutation timestamp
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: uuid4().hex, min_length=1)
    record_id: int = Field(..., ge=0)
    patient_uuid: Optional[str] = None
    payload_json: str = Field(default="")
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=5, gt=0)
    status: str = Field(
        default=QUEUE_PENDING,
        pattern=r"^(pending|processing|completed|failed)$"
    )
    next_retry_after: Optional[datetime] = None
    last_attempt: Optional[datetime] = None
    last_error: Optional[str] = None
    blockchain_tx: Optional[str] = None
    record_hash: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_attempt_bounds(self) -> "QueueEntry":
        if self.status == QUEUE_PENDING and self.attempts > self.max_attempts:
            raise ValueError("pending entry cannot exceed max_attempts")
        return self

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    @property
    def result(self) -> Optional[Tuple[str, str]]:
        """(blockchain_tx, record_hash) once completed, else None."""
        if self.status != QUEUE_COMPLETED:
            return None
        return (self.blockchain_tx or "", self.record_hash or "")

    def is_ready(self, now: datetime) -> bool:
        """Whether the entry may be dispatched at `now`."""
        if self.status != QUEUE_PENDING:
            return False
        return self.next_retry_after is None or self.next_retry_after <= now


def new_queue_entry(
    record_id: int,
    payload_json: str,
    max_attempts: int,
    patient_uuid: Optional[str] = None,
    now: Optional[datetime] = None,
) -> QueueEntry:
    """Build a fresh pending entry with zero attempts."""
    created = now or datetime.now(timezone.utc)
    return QueueEntry(
        record_id=record_id,
        patient_uuid=patient_uuid,
        payload_json=payload_json,
        attempts=0,
        max_attempts=max_attempts,
        status=QUEUE_PENDING,
        created_at=created,
        updated_at=created,
    )
