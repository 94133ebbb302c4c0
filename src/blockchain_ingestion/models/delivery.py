"""
Module: delivery.py
Description: Outcome of a delivery client send() call.

Dependencies: pydantic, typing
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


TX_KEYS = ("blockchain_tx", "tx_hash", "transaction_id")
HASH_KEYS = ("record_hash", "hash")


def _first_present(response: Optional[Dict[str, Any]], keys) -> str:
    if not response:
        return ""
    for key in keys:
        value = response.get(key)
        if value is not None:
            return str(value)
    return ""


class DeliveryResult(BaseModel):
    """
    Result of delivering one payload to the ingestion service.

    Attributes:
        success: True when the service answered with a 2xx status
        response: Parsed JSON object body, None when absent or unparseable
        error: Failure detail, None on success
        attempts: HTTP attempts made by the client for this send
        retryable: False for failures that another attempt cannot fix
    """

    success: bool
    response: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    attempts: int = Field(default=0, ge=0)
    retryable: bool = True

    @property
    def blockchain_tx(self) -> str:
        return _first_present(self.response, TX_KEYS)

    @property
    def record_hash(self) -> str:
        return _first_present(self.response, HASH_KEYS)
