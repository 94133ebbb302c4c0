"""
Module: storage
Description: Package initialization for the persistence layer.

- base: DocumentStore / QueueStore repository protocols
- dynamodb: DynamoDB implementations of both stores
"""

from .base import DocumentStore, QueueStore
from .dynamodb import DynamoDBDocumentStore, DynamoDBQueueStore

__all__ = [
    "DocumentStore",
    "QueueStore",
    "DynamoDBDocumentStore",
    "DynamoDBQueueStore",
]
