"""
Module: dynamodb.py
Description: DynamoDB implementations of the documents and queue stores.

Key Components:
- DynamoDBDocumentStore: host documents table (key: id, number)
- DynamoDBQueueStore: ingestion queue table (key: id, string) with
  StatusIndex (status, created_at) and RecordIndex (record_id) GSIs
- create_documents_table() / create_queue_table(): schema helpers for
  local setup and tests

Timestamps are stored as fixed-width UTC ISO 8601 strings so that
lexicographic comparison in key conditions and filters matches time
order. None values are never written; absent attributes mean unset.

Dependencies: boto3, botocore, pydantic, datetime, typing
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError
from pydantic import ValidationError

from ..models.queue_entry import (
    ACTIVE_STATUSES,
    QUEUE_COMPLETED,
    QUEUE_FAILED,
    QUEUE_PENDING,
    QUEUE_PROCESSING,
    QueueEntry,
)
from ..models.record import CHAIN_ANCHORED, CHAIN_FAILED, CHAIN_PENDING, CHAIN_STATUSES, SourceRecord
from ..utils.logger import get_logger

logger = get_logger(__name__)

STATUS_INDEX = "StatusIndex"
RECORD_INDEX = "RecordIndex"

_QUEUE_DATETIME_FIELDS = ("next_retry_after", "last_attempt", "created_at", "updated_at")
_QUEUE_INT_FIELDS = ("record_id", "attempts", "max_attempts")


def to_iso(value: datetime) -> str:
    """Serialize a datetime as a fixed-width UTC ISO 8601 string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _client_error_fields(e: ClientError) -> Dict[str, str]:
    return {
        "error_code": e.response["Error"]["Code"],
        "error_message": e.response["Error"]["Message"],
    }


def _is_conditional_failure(e: ClientError) -> bool:
    return e.response["Error"]["Code"] == "ConditionalCheckFailedException"


def _paginate(operation, **kwargs) -> Iterator[Dict[str, Any]]:
    """Yield items across LastEvaluatedKey pages of a query or scan."""
    while True:
        response = operation(**kwargs)
        for item in response.get("Items", []):
            yield item
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return
        kwargs["ExclusiveStartKey"] = last_key


def _resource(dynamodb, region_name: Optional[str]):
    if dynamodb is not None:
        return dynamodb
    return boto3.resource("dynamodb", region_name=region_name)


class DynamoDBDocumentStore:
    """
    Documents table adapter.

    Only reads the columns of SourceRecord and only writes chain_status,
    blockchain_tx and record_hash. Hosts may store an unset status either
    as an absent attribute or as NULL; both count as unset.
    """

    def __init__(self, table_name: str, dynamodb=None, region_name: Optional[str] = None):
        """
        Initialize documents store.

        Args:
            table_name: Name of the documents table
            dynamodb: Optional boto3 DynamoDB resource
            region_name: AWS region used when no resource is given

        Raises:
            ValueError: If table_name is empty or invalid
        """
        if not table_name or not isinstance(table_name, str):
            raise ValueError("table_name must be a non-empty string")

        self.table_name = table_name
        self.dynamodb = _resource(dynamodb, region_name)
        self.table = self.dynamodb.Table(table_name)

        logger.info("Documents store initialized", table_name=table_name)

    def find_unprocessed(self, limit: int) -> List[SourceRecord]:
        """
        Return up to `limit` unset, non-deleted documents, oldest first.

        A scan is used because an unset status cannot be indexed; the
        full result is sorted client-side before the batch cap applies.
        Scan cost grows with the table, anchored documents included. For
        large tables the host should maintain a sparse attribute (set on
        insert, removed once chain_status is set) with a GSI on it and
        query that instead.

        Rows that cannot be read as a SourceRecord are logged and skipped.
        """
        unset = Attr("chain_status").not_exists() | Attr("chain_status").attribute_type("NULL")
        live = Attr("deleted").not_exists() | Attr("deleted").eq(False)

        try:
            items = list(_paginate(self.table.scan, FilterExpression=unset & live))
        except ClientError as e:
            logger.error(
                "Failed to scan documents for discovery",
                table_name=self.table_name,
                **_client_error_fields(e)
            )
            raise

        records = []
        for item in items:
            try:
                records.append(self._to_record(item))
            except (ValidationError, TypeError, ValueError) as e:
                # One malformed host row must not block discovery of the rest
                logger.error(
                    "Skipping unreadable document",
                    document_id=str(item.get("id")),
                    table_name=self.table_name,
                    error=str(e)
                )
        records.sort(key=lambda r: (r.created_at, r.id))
        return records[:limit]

    def mark_pending(self, record_id: int) -> bool:
        try:
            self.table.update_item(
                Key={"id": record_id},
                UpdateExpression="SET chain_status = :pending",
                ConditionExpression=(
                    "attribute_exists(#id) AND "
                    "(attribute_not_exists(chain_status) OR attribute_type(chain_status, :null))"
                ),
                ExpressionAttributeNames={"#id": "id"},
                ExpressionAttributeValues={":pending": CHAIN_PENDING, ":null": "NULL"},
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                return False
            logger.error(
                "Failed to mark document pending",
                document_id=record_id,
                table_name=self.table_name,
                **_client_error_fields(e)
            )
            raise
        return True

    def mark_anchored(self, record_id: int, blockchain_tx: str, record_hash: str) -> None:
        self._update(
            record_id,
            "SET chain_status = :status, blockchain_tx = :tx, record_hash = :hash",
            {":status": CHAIN_ANCHORED, ":tx": blockchain_tx, ":hash": record_hash},
        )

    def mark_failed(self, record_id: int) -> None:
        self._update(record_id, "SET chain_status = :status", {":status": CHAIN_FAILED})

    def reset_failed(self, record_id: int) -> bool:
        try:
            self.table.update_item(
                Key={"id": record_id},
                UpdateExpression="REMOVE chain_status",
                ConditionExpression="chain_status = :failed",
                ExpressionAttributeValues={":failed": CHAIN_FAILED},
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                return False
            logger.error(
                "Failed to reset document status",
                document_id=record_id,
                table_name=self.table_name,
                **_client_error_fields(e)
            )
            raise
        return True

    def count_by_status(self) -> Dict[str, int]:
        counts = {status: 0 for status in CHAIN_STATUSES}
        try:
            for item in _paginate(self.table.scan, ProjectionExpression="chain_status"):
                status = item.get("chain_status")
                if status in counts:
                    counts[status] += 1
        except ClientError as e:
            logger.error(
                "Failed to count documents by status",
                table_name=self.table_name,
                **_client_error_fields(e)
            )
            raise
        counts["total"] = sum(counts.values())
        return counts

    def _update(self, record_id: int, expression: str, values: Dict[str, Any]) -> None:
        try:
            self.table.update_item(
                Key={"id": record_id},
                UpdateExpression=expression,
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            logger.error(
                "Failed to update document",
                document_id=record_id,
                table_name=self.table_name,
                **_client_error_fields(e)
            )
            raise

    @staticmethod
    def _to_record(item: Dict[str, Any]) -> SourceRecord:
        data = dict(item)
        data["id"] = int(data["id"])
        if isinstance(data.get("created_at"), str):
            data["created_at"] = from_iso(data["created_at"])
        return SourceRecord(**data)


class DynamoDBQueueStore:
    """
    Ingestion queue table adapter.

    Example:
        >>> store = DynamoDBQueueStore(table_name="mod-blockchain-queue")
        >>> store.create(entry)
        >>> ready = store.find_ready(datetime.now(timezone.utc), limit=50)
    """

    def __init__(self, table_name: str, dynamodb=None, region_name: Optional[str] = None):
        if not table_name or not isinstance(table_name, str):
            raise ValueError("table_name must be a non-empty string")

        self.table_name = table_name
        self.dynamodb = _resource(dynamodb, region_name)
        self.table = self.dynamodb.Table(table_name)

        logger.info("Queue store initialized", table_name=table_name)

    def find_active(self, record_id: int) -> Optional[QueueEntry]:
        active = [e for e in self._entries_for_record(record_id) if e.status in ACTIVE_STATUSES]
        if not active:
            return None
        return min(active, key=lambda e: e.created_at)

    def find_latest_for_record(self, record_id: int) -> Optional[QueueEntry]:
        entries = self._entries_for_record(record_id)
        if not entries:
            return None
        return max(entries, key=lambda e: e.created_at)

    def create(self, entry: QueueEntry) -> None:
        """
        Insert a new queue entry.

        Raises:
            ClientError: If an entry with the same id exists or DynamoDB fails
        """
        try:
            self.table.put_item(
                Item=self._to_item(entry),
                ConditionExpression="attribute_not_exists(#id)",
                ExpressionAttributeNames={"#id": "id"},
            )
        except ClientError as e:
            logger.error(
                "Failed to store queue entry",
                queue_id=entry.id,
                document_id=entry.record_id,
                table_name=self.table_name,
                **_client_error_fields(e)
            )
            raise

        logger.info(
            "Queue entry stored",
            queue_id=entry.id,
            document_id=entry.record_id,
            table_name=self.table_name
        )

    def get(self, entry_id: str) -> Optional[QueueEntry]:
        try:
            response = self.table.get_item(Key={"id": entry_id})
        except ClientError as e:
            logger.error(
                "Failed to read queue entry",
                queue_id=entry_id,
                table_name=self.table_name,
                **_client_error_fields(e)
            )
            raise
        item = response.get("Item")
        return self._to_entry(item) if item else None

    def find_ready(self, now: datetime, limit: int) -> List[QueueEntry]:
        """
        Pending entries eligible at `now`, ordered by created_at.

        Queries StatusIndex in ascending sort-key order and keeps paging
        until `limit` entries survive the retry-window filter.
        """
        due = Attr("next_retry_after").not_exists() | Attr("next_retry_after").lte(to_iso(now))
        ready: List[QueueEntry] = []
        try:
            for item in _paginate(
                self.table.query,
                IndexName=STATUS_INDEX,
                KeyConditionExpression=Key("status").eq(QUEUE_PENDING),
                FilterExpression=due,
                ScanIndexForward=True,
            ):
                ready.append(self._to_entry(item))
                if len(ready) >= limit:
                    break
        except ClientError as e:
            logger.error(
                "Failed to query ready queue entries",
                table_name=self.table_name,
                **_client_error_fields(e)
            )
            raise
        return ready

    def begin_attempt(self, entry_id: str, now: datetime) -> QueueEntry:
        """
        Claim a pending entry for dispatch.

        Raises:
            ClientError: ConditionalCheckFailedException if the entry is
                no longer pending
        """
        stamp = to_iso(now)
        try:
            response = self.table.update_item(
                Key={"id": entry_id},
                UpdateExpression=(
                    "SET #status = :processing, attempts = if_not_exists(attempts, :zero) + :one, "
                    "last_attempt = :now, updated_at = :now"
                ),
                ConditionExpression="#status = :pending",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={
                    ":processing": QUEUE_PROCESSING,
                    ":pending": QUEUE_PENDING,
                    ":zero": 0,
                    ":one": 1,
                    ":now": stamp,
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            logger.error(
                "Failed to mark queue entry processing",
                queue_id=entry_id,
                table_name=self.table_name,
                **_client_error_fields(e)
            )
            raise
        return self._to_entry(response["Attributes"])

    def complete(self, entry_id: str, blockchain_tx: str, record_hash: str, now: datetime) -> None:
        self._update(
            entry_id,
            "SET #status = :status, blockchain_tx = :tx, record_hash = :hash, updated_at = :now",
            {":status": QUEUE_COMPLETED, ":tx": blockchain_tx, ":hash": record_hash, ":now": to_iso(now)},
        )

    def schedule_retry(self, entry_id: str, error: str, next_retry_after: datetime, now: datetime) -> None:
        self._update(
            entry_id,
            "SET #status = :status, last_error = :error, next_retry_after = :retry, updated_at = :now",
            {
                ":status": QUEUE_PENDING,
                ":error": error,
                ":retry": to_iso(next_retry_after),
                ":now": to_iso(now),
            },
        )

    def fail(self, entry_id: str, error: str, now: datetime) -> None:
        self._update(
            entry_id,
            "SET #status = :status, last_error = :error, updated_at = :now",
            {":status": QUEUE_FAILED, ":error": error, ":now": to_iso(now)},
        )

    def reset(self, entry_id: str, now: datetime) -> None:
        self._update(
            entry_id,
            "SET #status = :status, attempts = :zero, updated_at = :now REMOVE next_retry_after",
            {":status": QUEUE_PENDING, ":zero": 0, ":now": to_iso(now)},
        )

    def recent(self, limit: int) -> List[QueueEntry]:
        try:
            entries = [self._to_entry(item) for item in _paginate(self.table.scan)]
        except ClientError as e:
            logger.error(
                "Failed to scan queue entries",
                table_name=self.table_name,
                **_client_error_fields(e)
            )
            raise
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    def _entries_for_record(self, record_id: int) -> List[QueueEntry]:
        try:
            items = list(_paginate(
                self.table.query,
                IndexName=RECORD_INDEX,
                KeyConditionExpression=Key("record_id").eq(record_id),
            ))
        except ClientError as e:
            logger.error(
                "Failed to query queue entries for document",
                document_id=record_id,
                table_name=self.table_name,
                **_client_error_fields(e)
            )
            raise
        return [self._to_entry(item) for item in items]

    def _update(self, entry_id: str, expression: str, values: Dict[str, Any]) -> None:
        try:
            self.table.update_item(
                Key={"id": entry_id},
                UpdateExpression=expression,
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            logger.error(
                "Failed to update queue entry",
                queue_id=entry_id,
                table_name=self.table_name,
                **_client_error_fields(e)
            )
            raise

    @staticmethod
    def _to_item(entry: QueueEntry) -> Dict[str, Any]:
        item = entry.model_dump()
        for field in _QUEUE_DATETIME_FIELDS:
            if item.get(field) is not None:
                item[field] = to_iso(item[field])
        # DynamoDB rejects None; absent attributes read back as None
        return {k: v for k, v in item.items() if v is not None}

    @staticmethod
    def _to_entry(item: Dict[str, Any]) -> QueueEntry:
        data = dict(item)
        for field in _QUEUE_INT_FIELDS:
            if isinstance(data.get(field), Decimal):
                data[field] = int(data[field])
        for field in _QUEUE_DATETIME_FIELDS:
            if isinstance(data.get(field), str):
                data[field] = from_iso(data[field])
        return QueueEntry(**data)


def create_documents_table(dynamodb, table_name: str):
    """Create the documents table (used for local setup and tests)."""
    return dynamodb.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "N"}],
        BillingMode="PAY_PER_REQUEST",
    )


def create_queue_table(dynamodb, table_name: str):
    """Create the queue table with its StatusIndex and RecordIndex GSIs."""
    return dynamodb.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "id", "AttributeType": "S"},
            {"AttributeName": "status", "AttributeType": "S"},
            {"AttributeName": "created_at", "AttributeType": "S"},
            {"AttributeName": "record_id", "AttributeType": "N"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": STATUS_INDEX,
                "KeySchema": [
                    {"AttributeName": "status", "KeyType": "HASH"},
                    {"AttributeName": "created_at", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": RECORD_INDEX,
                "KeySchema": [{"AttributeName": "record_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )
