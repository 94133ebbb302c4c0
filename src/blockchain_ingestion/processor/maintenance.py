"""
Module: maintenance.py
Description: Operator actions and read-only status reporting.

Nothing here runs automatically. reset_failed_document() is the only
path by which a failed document re-enters the queue.
"""

from datetime import datetime
from typing import Any, Dict

from ..models.queue_entry import QUEUE_FAILED
from ..storage.base import DocumentStore, QueueStore
from ..utils.logger import get_logger

logger = get_logger(__name__)


def reset_failed_document(
    documents: DocumentStore,
    queue: QueueStore,
    record_id: int,
    now: datetime,
) -> bool:
    """
    Put a failed document back in line for anchoring.

    The document's chain_status goes back to unset and its latest queue
    entry back to pending with zero attempts; the next run's discovery
    re-marks the document pending and dispatch picks the entry up.

    Returns:
        True if the document was failed and has been reset
    """
    if not documents.reset_failed(record_id):
        logger.warning("Document is not in failed state, nothing to reset", document_id=record_id)
        return False

    entry = queue.find_latest_for_record(record_id)
    if entry is not None and entry.status == QUEUE_FAILED:
        queue.reset(entry.id, now)

    logger.info(
        "Document reset by operator",
        document_id=record_id,
        queue_id=entry.id if entry else None
    )
    return True


def queue_status(documents: DocumentStore, queue: QueueStore, limit: int = 25) -> Dict[str, Any]:
    """Document counts per chain status plus the most recent queue entries."""
    recent = []
    for entry in queue.recent(limit):
        recent.append({
            "document_id": entry.record_id,
            "patient_uuid": entry.patient_uuid,
            "status": entry.status,
            "attempts": entry.attempts,
            "max_attempts": entry.max_attempts,
            "last_error": entry.last_error,
            "blockchain_tx": entry.blockchain_tx,
            "created_at": entry.created_at.isoformat(),
            "updated_at": entry.updated_at.isoformat() if entry.updated_at else None,
        })
    return {"documents": documents.count_by_status(), "recent": recent}
