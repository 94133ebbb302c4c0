"""
Module: payload.py
Description: Outbound document payload sent to the Blockchain Ingestion Service.

The payload has a fixed field set plus a constant source/event tag pair.
It is built from a SourceRecord at discovery time, serialized once and
stored on the queue entry, so later edits to the document never change
what gets anchored.

Example payload:
    {
      "patient_uuid": "95f2c42e-6b28-4a61-baf0-123456789abc",
      "document_id": 42,
      "file_path": "file:///var/www/openemr/sites/default/documents/1/abc123.pdf",
      "file_hash": "a3f2b8c9d1e0...",
      "mime_type": "application/pdf",
      "timestamp": "2026-02-21T12:00:00+05:30",
      "category": "Lab Report",
      "source_system": "OpenEMR",
      "event_type": "document.created"
    }
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import PayloadCorruptError
from .record import SourceRecord


SOURCE_SYSTEM = "OpenEMR"
EVENT_TYPE = "document.created"


class DocumentPayload(BaseModel):
    """Normalized document metadata for one anchoring request."""

    model_config = ConfigDict(frozen=True)

    patient_uuid: Optional[str] = None
    document_id: int = 0
    file_path: str = ""
    file_hash: str = ""
    mime_type: str = ""
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    category: str = ""
    source_system: Literal["OpenEMR"] = SOURCE_SYSTEM
    event_type: Literal["document.created"] = EVENT_TYPE

    @classmethod
    def from_record(cls, record: SourceRecord) -> "DocumentPayload":
        created = record.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return cls(
            patient_uuid=record.patient_uuid or None,
            document_id=record.id,
            file_path=record.file_path or "",
            file_hash=record.file_hash or "",
            mime_type=record.mime_type or "",
            timestamp=created.isoformat(),
            category=record.category or "",
        )

    def to_json(self) -> str:
        return json.dumps(self.model_dump(), ensure_ascii=False)


def build_payload(document_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build the payload dictionary from loose document metadata.

    Missing keys fall back to empty strings, a zero document id and the
    current time; the source/event tags are always overwritten.

    Args:
        document_data: Mapping of document metadata

    Returns:
        Payload dictionary with the fixed field set
    """
    values = {k: v for k, v in document_data.items() if v is not None}
    values.pop("source_system", None)
    values.pop("event_type", None)
    if "document_id" in values:
        values["document_id"] = int(values["document_id"])
    if isinstance(values.get("timestamp"), datetime):
        values["timestamp"] = values["timestamp"].isoformat()
    return DocumentPayload(**values).model_dump()


def decode_payload(queue_id: str, payload_json: Optional[str]) -> Dict[str, Any]:
    """
    Decode a stored payload snapshot.

    Raises:
        PayloadCorruptError: If the snapshot is empty, not JSON, not an
            object, or does not match the payload field set
    """
    if not payload_json:
        raise PayloadCorruptError(queue_id, "empty payload")
    try:
        data = json.loads(payload_json)
    except (TypeError, ValueError) as e:
        raise PayloadCorruptError(queue_id, str(e)) from e
    if not isinstance(data, dict) or not data:
        raise PayloadCorruptError(queue_id, "payload is not a JSON object")
    try:
        return DocumentPayload(**data).model_dump()
    except (TypeError, ValidationError) as e:
        raise PayloadCorruptError(queue_id, str(e)) from e
