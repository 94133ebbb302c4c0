"""
Module: errors.py
Description: Exception hierarchy for the ingestion queue.

Delivery failures are not exceptions: the delivery client reports them
as DeliveryResult values. Exceptions are reserved for stored payloads
that cannot be decoded and for store-level failures surfaced at the
CLI boundary.
"""


class IngestionError(Exception):
    """Base exception for ingestion queue failures."""


class PayloadCorruptError(IngestionError):
    """A queued payload snapshot could not be decoded.

    Never retried: the snapshot is written once at enqueue time, so a bad
    one points at a bug rather than an unavailable service.
    """

    def __init__(self, queue_id: str, reason: str):
        self.queue_id = queue_id
        self.reason = reason
        super().__init__(f"Invalid JSON payload in queue entry {queue_id}: {reason}")


class StoreError(IngestionError):
    """The documents or queue table could not be read or written."""
