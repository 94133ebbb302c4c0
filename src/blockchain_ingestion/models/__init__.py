"""
Module: models
Description: Package initialization for Pydantic data models.

This package contains the data models used by the ingestion queue:
- SourceRecord: host document subset read and updated by the queue
- QueueEntry: durable unit of delivery work
- DocumentPayload: outbound request body
- DeliveryResult: outcome of one delivery client send()
"""

from .delivery import DeliveryResult
from .payload import DocumentPayload, build_payload, decode_payload
from .queue_entry import QueueEntry, new_queue_entry
from .record import SourceRecord

__all__ = [
    "DeliveryResult",
    "DocumentPayload",
    "QueueEntry",
    "SourceRecord",
    "build_payload",
    "decode_payload",
    "new_queue_entry",
]
