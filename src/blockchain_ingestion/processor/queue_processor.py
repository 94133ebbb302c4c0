"""
Module: queue_processor.py
Description: Discover, enqueue, dispatch and finalize documents for anchoring.

One run() performs two sequential phases:

1. Discover: documents with an unset chain_status (oldest first, capped
   at batch_size) get a queue entry unless one is already active, and
   are marked pending.
2. Dispatch: pending entries whose retry window has passed (oldest
   first, capped at batch_size) are claimed, sent one at a time through
   the delivery client and finalized on both the entry and the document.

Runs must not overlap. The processor is single-threaded and relies on
the caller (host scheduler, PeriodicScheduler) for that; RunGuard makes
an overlapping run a no-op instead of a second writer.

Failures never escape run(): delivery failures become scheduled retries
or terminal failures, a corrupt payload fails its entry immediately,
and any store error aborts the rest of the run after logging. Work
left unfinished is picked up by the next run.
"""

from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from ..config.settings import Settings
from ..delivery.retry import next_retry_time, queue_retry_delay
from ..errors import PayloadCorruptError
from ..models.delivery import DeliveryResult
from ..models.payload import DocumentPayload, decode_payload
from ..models.queue_entry import QueueEntry, new_queue_entry
from ..models.record import SourceRecord
from ..storage.base import DocumentStore, QueueStore
from ..utils.logger import get_logger
from ..utils.metrics import MetricsClient
from .scheduler import RunGuard

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryClient(Protocol):
    def send(self, payload) -> DeliveryResult: ...


class ProcessorConfig(BaseModel):
    """Immutable processor configuration."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=5, ge=1)
    batch_size: int = Field(default=50, ge=1)
    retry_base_delay: int = Field(default=60, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProcessorConfig":
        return cls(
            max_attempts=settings.max_attempts,
            batch_size=settings.batch_size,
            retry_base_delay=settings.retry_base_delay,
        )


class RunSummary(BaseModel):
    """Counters for one run, used for logging and metrics only."""

    discovered: int = 0
    enqueued: int = 0
    dispatched: int = 0
    anchored: int = 0
    retried: int = 0
    failed: int = 0
    skipped: bool = False
    aborted: bool = False

    def metric_counts(self):
        return {
            "DocumentsDiscovered": self.discovered,
            "DocumentsDispatched": self.dispatched,
            "DocumentsAnchored": self.anchored,
            "RetriesScheduled": self.retried,
            "DocumentsFailed": self.failed,
        }


class QueueProcessor:
    """
    Polling work queue for document anchoring.

    Example:
        >>> processor = QueueProcessor(documents, queue, client, ProcessorConfig())
        >>> summary = processor.run()
        >>> summary.anchored
        3
    """

    def __init__(
        self,
        documents: DocumentStore,
        queue: QueueStore,
        client: DeliveryClient,
        config: Optional[ProcessorConfig] = None,
        clock: Callable[[], datetime] = utc_now,
        metrics: Optional[MetricsClient] = None,
        guard: Optional[RunGuard] = None,
    ):
        self.documents = documents
        self.queue = queue
        self.client = client
        self.config = config or ProcessorConfig()
        self.clock = clock
        self.metrics = metrics
        self.guard = guard or RunGuard()

    def run(self) -> RunSummary:
        """
        Execute one discover + dispatch pass.

        Returns:
            RunSummary counters; skipped=True if another run was in
            progress, aborted=True if a store error cut the run short
        """
        summary = RunSummary()

        if not self.guard.acquire():
            logger.warning("Queue run already in progress, skipping")
            summary.skipped = True
            return summary

        try:
            self.discover(summary)
            self.dispatch(summary)
        except Exception:
            summary.aborted = True
            logger.exception("Queue run aborted")
        finally:
            self.guard.release()

        logger.info("Queue run finished", **summary.model_dump())
        if self.metrics is not None:
            self.metrics.put_counts(summary.metric_counts())
        return summary

    # Discover phase

    def discover(self, summary: Optional[RunSummary] = None) -> int:
        """Enqueue unprocessed documents. Returns the number discovered."""
        summary = summary if summary is not None else RunSummary()
        records = self.documents.find_unprocessed(self.config.batch_size)

        for record in records:
            if self.enqueue(record) is not None:
                summary.enqueued += 1
            summary.discovered += 1

        if records:
            logger.debug(
                f"Discovered {len(records)} new document(s) for processing",
                enqueued=summary.enqueued
            )
        return len(records)

    def enqueue(self, record: SourceRecord) -> Optional[QueueEntry]:
        """
        Create a queue entry for a document unless one is already active,
        then mark the document pending.

        Returns:
            The new entry, or None when an active entry already existed
        """
        payload = DocumentPayload.from_record(record)
        entry = None

        if self.queue.find_active(record.id) is None:
            entry = new_queue_entry(
                record_id=record.id,
                payload_json=payload.to_json(),
                max_attempts=self.config.max_attempts,
                patient_uuid=record.patient_uuid,
                now=self.clock(),
            )
            self.queue.create(entry)
            logger.info("Document enqueued", document_id=record.id, queue_id=entry.id)

        # Conditional on chain_status still being unset
        self.documents.mark_pending(record.id)
        return entry

    # Dispatch phase

    def dispatch(self, summary: Optional[RunSummary] = None) -> int:
        """Process ready entries one at a time. Returns the number dispatched."""
        summary = summary if summary is not None else RunSummary()
        entries = self.queue.find_ready(self.clock(), self.config.batch_size)

        for entry in entries:
            self.process_entry(entry, summary)

        return len(entries)

    def process_entry(self, entry: QueueEntry, summary: Optional[RunSummary] = None) -> str:
        """
        Claim, deliver and finalize one queue entry.

        The claim (status=processing, attempts+1) is persisted before the
        network call, so a crash mid-call leaves the entry visibly in
        flight instead of silently re-runnable at the same attempt count.

        Returns:
            Resulting queue status: completed, pending (retry) or failed
        """
        summary = summary if summary is not None else RunSummary()
        summary.dispatched += 1

        claimed = self.queue.begin_attempt(entry.id, self.clock())

        try:
            payload = decode_payload(claimed.id, claimed.payload_json)
        except PayloadCorruptError as e:
            logger.error(
                "Queue payload corrupt, failing without retry",
                queue_id=claimed.id,
                document_id=claimed.record_id,
                reason="payload_corrupt",
                error=e.reason
            )
            self._fail(claimed, str(e))
            summary.failed += 1
            return "failed"

        try:
            result = self.client.send(payload)
        except Exception as e:
            logger.exception(
                "Delivery client raised",
                queue_id=claimed.id,
                document_id=claimed.record_id
            )
            result = DeliveryResult(success=False, error=f"Unexpected delivery error: {e}")

        outcome = self.finalize(claimed, result)
        if outcome == "completed":
            summary.anchored += 1
        elif outcome == "pending":
            summary.retried += 1
        else:
            summary.failed += 1
        return outcome

    def finalize(self, entry: QueueEntry, result: DeliveryResult) -> str:
        """
        Apply a delivery result to the entry and its document.

        `entry` must be the claimed entry, whose attempts already include
        the attempt that produced `result`.
        """
        if result.success:
            self._complete(entry, result)
            return "completed"

        error = result.error or "Unknown error"
        if not result.retryable or entry.exhausted:
            self._fail(entry, error)
            return "failed"

        self._schedule_retry(entry, error)
        return "pending"

    def _complete(self, entry: QueueEntry, result: DeliveryResult) -> None:
        blockchain_tx = result.blockchain_tx
        record_hash = result.record_hash
        now = self.clock()

        self.documents.mark_anchored(entry.record_id, blockchain_tx, record_hash)
        self.queue.complete(entry.id, blockchain_tx, record_hash, now)

        logger.info(
            "Document anchored",
            document_id=entry.record_id,
            queue_id=entry.id,
            attempt=entry.attempts,
            blockchain_tx=blockchain_tx,
            record_hash=record_hash
        )

    def _schedule_retry(self, entry: QueueEntry, error: str) -> None:
        now = self.clock()
        delay = queue_retry_delay(entry.attempts, self.config.retry_base_delay)
        retry_at = next_retry_time(now, entry.attempts, self.config.retry_base_delay)

        self.queue.schedule_retry(entry.id, error, retry_at, now)

        logger.warning(
            "Document retry scheduled",
            document_id=entry.record_id,
            queue_id=entry.id,
            attempt=entry.attempts,
            max_attempts=entry.max_attempts,
            delay_seconds=delay,
            error=error
        )

    def _fail(self, entry: QueueEntry, error: str) -> None:
        self.queue.fail(entry.id, error, self.clock())
        self.documents.mark_failed(entry.record_id)

        logger.error(
            "Document permanently failed",
            document_id=entry.record_id,
            queue_id=entry.id,
            attempts=entry.attempts,
            error=error
        )
