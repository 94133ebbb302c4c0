"""
Module: conftest.py
Description: Shared pytest fixtures for ingestion queue tests.

Provides in-memory document and queue stores with the same semantics
as the DynamoDB adapters, a controllable clock, a scripted delivery
client, and moto-backed DynamoDB tables for adapter and integration
tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import boto3
import pytest
from moto import mock_aws

from blockchain_ingestion.config.settings import Settings
from blockchain_ingestion.models.delivery import DeliveryResult
from blockchain_ingestion.models.queue_entry import (
    ACTIVE_STATUSES,
    QUEUE_COMPLETED,
    QUEUE_FAILED,
    QUEUE_PENDING,
    QUEUE_PROCESSING,
    QueueEntry,
)
from blockchain_ingestion.models.record import CHAIN_STATUSES, SourceRecord
from blockchain_ingestion.processor.queue_processor import ProcessorConfig, QueueProcessor
from blockchain_ingestion.storage.dynamodb import (
    DynamoDBDocumentStore,
    DynamoDBQueueStore,
    create_documents_table,
    create_queue_table,
)


BASE_TIME = datetime(2026, 2, 21, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class InMemoryDocumentStore:
    """Documents table fake keyed by document id."""

    def __init__(self):
        self.records: Dict[int, SourceRecord] = {}
        self.fail_on: Optional[str] = None

    def add(self, record: SourceRecord) -> SourceRecord:
        self.records[record.id] = record
        return record

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise RuntimeError(f"documents store unavailable during {operation}")

    def find_unprocessed(self, limit: int) -> List[SourceRecord]:
        self._maybe_fail("find_unprocessed")
        records = [r for r in self.records.values() if r.is_unprocessed]
        records.sort(key=lambda r: (r.created_at, r.id))
        return [r.model_copy() for r in records[:limit]]

    def mark_pending(self, record_id: int) -> bool:
        self._maybe_fail("mark_pending")
        record = self.records.get(record_id)
        if record is None or record.chain_status is not None:
            return False
        record.chain_status = "pending"
        return True

    def mark_anchored(self, record_id: int, blockchain_tx: str, record_hash: str) -> None:
        self._maybe_fail("mark_anchored")
        record = self.records[record_id]
        record.chain_status = "anchored"
        record.blockchain_tx = blockchain_tx
        record.record_hash = record_hash

    def mark_failed(self, record_id: int) -> None:
        self._maybe_fail("mark_failed")
        self.records[record_id].chain_status = "failed"

    def reset_failed(self, record_id: int) -> bool:
        record = self.records.get(record_id)
        if record is None or record.chain_status != "failed":
            return False
        record.chain_status = None
        return True

    def count_by_status(self) -> Dict[str, int]:
        counts = {status: 0 for status in CHAIN_STATUSES}
        for record in self.records.values():
            if record.chain_status in counts:
                counts[record.chain_status] += 1
        counts["total"] = sum(counts.values())
        return counts


class InMemoryQueueStore:
    """Queue table fake keyed by entry id."""

    def __init__(self):
        self.entries: Dict[str, QueueEntry] = {}
        self.fail_on: Optional[str] = None

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise RuntimeError(f"queue store unavailable during {operation}")

    def for_record(self, record_id: int) -> List[QueueEntry]:
        return [e for e in self.entries.values() if e.record_id == record_id]

    def find_active(self, record_id: int) -> Optional[QueueEntry]:
        self._maybe_fail("find_active")
        active = [e for e in self.for_record(record_id) if e.status in ACTIVE_STATUSES]
        return min(active, key=lambda e: e.created_at) if active else None

    def find_latest_for_record(self, record_id: int) -> Optional[QueueEntry]:
        entries = self.for_record(record_id)
        return max(entries, key=lambda e: e.created_at) if entries else None

    def create(self, entry: QueueEntry) -> None:
        self._maybe_fail("create")
        if entry.id in self.entries:
            raise ValueError(f"duplicate queue entry {entry.id}")
        self.entries[entry.id] = entry.model_copy()

    def get(self, entry_id: str) -> Optional[QueueEntry]:
        entry = self.entries.get(entry_id)
        return entry.model_copy() if entry else None

    def find_ready(self, now: datetime, limit: int) -> List[QueueEntry]:
        self._maybe_fail("find_ready")
        ready = [e for e in self.entries.values() if e.is_ready(now)]
        ready.sort(key=lambda e: e.created_at)
        return [e.model_copy() for e in ready[:limit]]

    def begin_attempt(self, entry_id: str, now: datetime) -> QueueEntry:
        self._maybe_fail("begin_attempt")
        entry = self.entries[entry_id]
        if entry.status != QUEUE_PENDING:
            raise RuntimeError(f"entry {entry_id} is not pending")
        entry.status = QUEUE_PROCESSING
        entry.attempts += 1
        entry.last_attempt = now
        entry.updated_at = now
        return entry.model_copy()

    def complete(self, entry_id: str, blockchain_tx: str, record_hash: str, now: datetime) -> None:
        self._maybe_fail("complete")
        entry = self.entries[entry_id]
        entry.status = QUEUE_COMPLETED
        entry.blockchain_tx = blockchain_tx
        entry.record_hash = record_hash
        entry.updated_at = now

    def schedule_retry(self, entry_id: str, error: str, next_retry_after: datetime, now: datetime) -> None:
        self._maybe_fail("schedule_retry")
        entry = self.entries[entry_id]
        entry.status = QUEUE_PENDING
        entry.last_error = error
        entry.next_retry_after = next_retry_after
        entry.updated_at = now

    def fail(self, entry_id: str, error: str, now: datetime) -> None:
        self._maybe_fail("fail")
        entry = self.entries[entry_id]
        entry.status = QUEUE_FAILED
        entry.last_error = error
        entry.updated_at = now

    def reset(self, entry_id: str, now: datetime) -> None:
        entry = self.entries[entry_id]
        entry.status = QUEUE_PENDING
        entry.attempts = 0
        entry.next_retry_after = None
        entry.updated_at = now

    def recent(self, limit: int) -> List[QueueEntry]:
        entries = sorted(self.entries.values(), key=lambda e: e.created_at, reverse=True)
        return [e.model_copy() for e in entries[:limit]]


class ScriptedClient:
    """Delivery client returning queued results in order, recording payloads."""

    def __init__(self, *results: DeliveryResult):
        self.results = list(results)
        self.payloads: List[dict] = []

    def queue(self, *results: DeliveryResult) -> None:
        self.results.extend(results)

    def send(self, payload) -> DeliveryResult:
        self.payloads.append(dict(payload))
        if not self.results:
            raise AssertionError("ScriptedClient has no more results")
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def success(tx: str = "0xabc123", record_hash: str = "rh-001") -> DeliveryResult:
    return DeliveryResult(success=True, response={"blockchain_tx": tx, "record_hash": record_hash}, attempts=1)


def failure(error: str = "All 3 attempts failed. Last error: HTTP 503: unavailable") -> DeliveryResult:
    return DeliveryResult(success=False, error=error, attempts=3)


def make_record(record_id: int, minutes: int = 0, **overrides) -> SourceRecord:
    values = {
        "id": record_id,
        "patient_uuid": "95f2c42e-6b28-4a61-baf0-123456789abc",
        "file_path": f"file:///var/www/openemr/sites/default/documents/1/doc{record_id}.pdf",
        "file_hash": f"hash{record_id:04d}",
        "mime_type": "application/pdf",
        "category": "Lab Report",
        "created_at": BASE_TIME - timedelta(hours=1) + timedelta(minutes=minutes),
    }
    values.update(overrides)
    return SourceRecord(**values)


@pytest.fixture
def test_settings():
    """Settings that ignore the environment and .env files."""
    return Settings(
        _env_file=None,
        enabled=True,
        log_level="DEBUG",
        documents_table_name="test-documents",
        queue_table_name="test-queue",
        bis_endpoint="http://bis.test/ingest",
        bis_timeout=5,
        client_retries=3,
        client_backoff_unit=0,
        max_attempts=3,
        batch_size=50,
        retry_base_delay=60,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def documents():
    return InMemoryDocumentStore()


@pytest.fixture
def queue():
    return InMemoryQueueStore()


@pytest.fixture
def client():
    return ScriptedClient()


@pytest.fixture
def processor_config():
    return ProcessorConfig(max_attempts=3, batch_size=50, retry_base_delay=60)


@pytest.fixture
def processor(documents, queue, client, processor_config, clock):
    return QueueProcessor(documents, queue, client, processor_config, clock=clock)


@pytest.fixture
def sample_payload():
    return {
        "patient_uuid": "95f2c42e-6b28-4a61-baf0-123456789abc",
        "document_id": 42,
        "file_path": "file:///var/www/openemr/sites/default/documents/1/abc123.pdf",
        "file_hash": "a3f2b8c9d1e0",
        "mime_type": "application/pdf",
        "timestamp": "2026-02-21T12:00:00+05:30",
        "category": "Lab Report",
        "source_system": "OpenEMR",
        "event_type": "document.created",
    }


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never reaches real accounts."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def dynamodb(aws_credentials):
    """moto-backed DynamoDB resource with both tables created."""
    with mock_aws():
        resource = boto3.resource("dynamodb", region_name="us-east-1")
        create_documents_table(resource, "test-documents")
        create_queue_table(resource, "test-queue")
        yield resource


@pytest.fixture
def dynamo_documents(dynamodb):
    return DynamoDBDocumentStore("test-documents", dynamodb=dynamodb)


@pytest.fixture
def dynamo_queue(dynamodb):
    return DynamoDBQueueStore("test-queue", dynamodb=dynamodb)
