"""
Package: delivery
Description: Delivery of document payloads to the Blockchain Ingestion Service.

Provides the HTTP client and the two retry layers (client-local and
queue-level) used when anchoring documents.
"""

from .client import BlockchainIngestionClient
from .retry import client_retrying, next_retry_time, queue_retry_delay

__all__ = [
    "BlockchainIngestionClient",
    "client_retrying",
    "next_retry_time",
    "queue_retry_delay",
]
