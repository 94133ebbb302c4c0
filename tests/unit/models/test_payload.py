"""
Module: test_payload.py
Description: Unit tests for the outbound document payload.

Covers building the payload from a source record and from loose
metadata, the constant source/event tags, and decoding of stored
snapshots including corrupt ones.
"""

import json
from datetime import datetime, timezone

import pytest

from blockchain_ingestion.errors import PayloadCorruptError
from blockchain_ingestion.models.payload import DocumentPayload, build_payload, decode_payload
from conftest import make_record


PAYLOAD_FIELDS = [
    "patient_uuid", "document_id", "file_path", "file_hash", "mime_type",
    "timestamp", "category", "source_system", "event_type",
]


class TestDocumentPayload:
    """Test cases for DocumentPayload construction."""

    def test_from_record_has_fixed_field_set(self):
        record = make_record(42)
        payload = DocumentPayload.from_record(record).model_dump()

        assert list(payload.keys()) == PAYLOAD_FIELDS
        assert payload["document_id"] == 42
        assert payload["file_hash"] == "hash0042"
        assert payload["source_system"] == "OpenEMR"
        assert payload["event_type"] == "document.created"
        assert payload["timestamp"] == record.created_at.isoformat()

    def test_from_record_blank_patient_becomes_null(self):
        payload = DocumentPayload.from_record(make_record(7, patient_uuid=""))
        assert payload.patient_uuid is None

    def test_from_record_null_columns_become_empty(self):
        record = make_record(9, file_path=None, file_hash=None, mime_type=None, category=None)
        payload = DocumentPayload.from_record(record)

        assert record.mime_type == ""
        assert payload.file_path == ""
        assert payload.file_hash == ""
        assert payload.mime_type == ""
        assert payload.category == ""

    def test_from_record_naive_timestamp_treated_as_utc(self):
        record = make_record(8, created_at=datetime(2026, 1, 2, 3, 4, 5))
        payload = DocumentPayload.from_record(record)
        assert payload.timestamp == "2026-01-02T03:04:05+00:00"

    def test_to_json_keeps_slashes_and_unicode(self):
        record = make_record(9, category="Résultats", file_path="file:///docs/a.pdf")
        encoded = DocumentPayload.from_record(record).to_json()

        assert "file:///docs/a.pdf" in encoded
        assert "Résultats" in encoded
        assert json.loads(encoded)["category"] == "Résultats"


class TestBuildPayload:
    """Test cases for build_payload()."""

    def test_defaults_for_missing_values(self):
        payload = build_payload({"document_id": "15"})

        assert payload["document_id"] == 15
        assert payload["patient_uuid"] is None
        assert payload["file_path"] == ""
        assert payload["category"] == ""
        assert payload["timestamp"]

    def test_tags_cannot_be_overridden(self):
        payload = build_payload({
            "document_id": 1,
            "source_system": "Other",
            "event_type": "document.deleted",
        })
        assert payload["source_system"] == "OpenEMR"
        assert payload["event_type"] == "document.created"

    def test_datetime_timestamp_serialized(self):
        stamp = datetime(2026, 2, 21, 12, 0, tzinfo=timezone.utc)
        payload = build_payload({"document_id": 1, "timestamp": stamp})
        assert payload["timestamp"] == "2026-02-21T12:00:00+00:00"


class TestDecodePayload:
    """Test cases for decoding stored snapshots."""

    def test_decodes_valid_snapshot(self, sample_payload):
        decoded = decode_payload("q1", json.dumps(sample_payload))
        assert decoded == sample_payload

    @pytest.mark.parametrize("stored", [None, "", "{not json", "[]", "{}", "\"text\""])
    def test_corrupt_snapshots_raise(self, stored):
        with pytest.raises(PayloadCorruptError) as exc_info:
            decode_payload("q1", stored)
        assert exc_info.value.queue_id == "q1"
        assert "Invalid JSON payload" in str(exc_info.value)

    def test_wrong_field_types_raise(self, sample_payload):
        sample_payload["document_id"] = "not-a-number"
        with pytest.raises(PayloadCorruptError):
            decode_payload("q1", json.dumps(sample_payload))
