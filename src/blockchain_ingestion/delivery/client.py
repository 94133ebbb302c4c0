"""
Module: client.py
Description: HTTP client for the Blockchain Ingestion Service (BIS).

Sends document metadata as JSON to the BIS endpoint with a bounded
timeout and client-local exponential backoff retries. The client only
forwards metadata: no hashing, signing or chain logic happens here.
"""

import json
import time
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from ..models.delivery import DeliveryResult
from ..utils.logger import get_logger
from .retry import client_retrying

logger = get_logger(__name__)

SOURCE_HEADER = "OpenEMR-BIM"
MAX_ERROR_DETAIL = 500


class BlockchainIngestionClient:
    """
    HTTP client for anchoring document payloads.

    Stateless across send() calls apart from its configuration.

    Example:
        >>> client = BlockchainIngestionClient("http://localhost:4000/ingest", timeout_seconds=10)
        >>> result = client.send(payload)
        >>> result.success, result.blockchain_tx
        (True, "0xabc...")
    """

    def __init__(
        self,
        endpoint: str,
        timeout_seconds: float = 10,
        max_retries: int = 3,
        backoff_unit: float = 1.0,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the ingestion client.

        Args:
            endpoint: BIS endpoint URL
            timeout_seconds: Total HTTP timeout per attempt
            max_retries: HTTP attempts per send() call
            backoff_unit: Seconds multiplied by 2^(attempt-1) between attempts
            http_client: Optional pre-built httpx.Client (shared pool, tests)
            sleep: Blocking sleep used between attempts

        Raises:
            ValueError: If endpoint or retry count is invalid
        """
        if not endpoint or not isinstance(endpoint, str):
            raise ValueError("endpoint must be a non-empty string")
        if not endpoint.startswith(("http://", "https://")):
            raise ValueError("endpoint must be a valid HTTP/HTTPS URL")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.endpoint = endpoint
        self.max_retries = max_retries
        self.backoff_unit = backoff_unit
        self.timeout = httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds))
        self._http_client = http_client
        self._sleep = sleep

        logger.info(
            "Ingestion client initialized",
            endpoint=endpoint,
            timeout_seconds=timeout_seconds,
            max_retries=max_retries
        )

    def send(self, payload: Mapping[str, Any]) -> DeliveryResult:
        """
        Send a payload to the BIS endpoint with retry logic.

        Args:
            payload: JSON-serializable payload dictionary

        Returns:
            DeliveryResult with success flag, parsed response and error
        """
        document_id = payload.get("document_id", "unknown") if isinstance(payload, Mapping) else "unknown"

        try:
            body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            error = f"Failed to encode payload to JSON: {e}"
            logger.error(error, document_id=document_id)
            return DeliveryResult(success=False, error=error, retryable=False)

        attempt_count = 0

        def attempt() -> DeliveryResult:
            nonlocal attempt_count
            attempt_count += 1
            result = self._post(body)
            if result.success:
                logger.debug(
                    "Payload accepted by ingestion service",
                    document_id=document_id,
                    attempt=attempt_count
                )
            else:
                logger.warning(
                    f"Attempt {attempt_count}/{self.max_retries} failed",
                    document_id=document_id,
                    error=result.error
                )
            return result

        retrying = client_retrying(self.max_retries, self.backoff_unit, sleep=self._sleep)
        result = retrying(attempt)

        if result.success:
            return result.model_copy(update={"attempts": attempt_count})

        return DeliveryResult(
            success=False,
            response=None,
            error=f"All {attempt_count} attempts failed. Last error: {result.error or 'Unknown error'}",
            attempts=attempt_count,
        )

    def _post(self, body: bytes) -> DeliveryResult:
        """Execute a single HTTP POST and classify the outcome."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Source": SOURCE_HEADER,
            "Content-Length": str(len(body)),
        }

        try:
            if self._http_client is not None:
                response = self._http_client.post(
                    self.endpoint, content=body, headers=headers, timeout=self.timeout
                )
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.endpoint, content=body, headers=headers)

        except httpx.HTTPError as e:
            # Connect errors, timeouts, DNS failures, broken connections, undecodable bodies
            return DeliveryResult(
                success=False,
                error=f"Transport error ({type(e).__name__}): {e}",
            )

        response_data = _parse_body(response)

        if response.is_success:
            return DeliveryResult(success=True, response=response_data)

        detail = None
        if response_data:
            detail = response_data.get("error") or response_data.get("message")
        if not detail:
            detail = response.text[:MAX_ERROR_DETAIL]

        return DeliveryResult(
            success=False,
            response=response_data,
            error=f"HTTP {response.status_code}: {detail}",
        )


def _parse_body(response: httpx.Response) -> Optional[Dict[str, Any]]:
    """Parse a JSON object body, returning None for anything else."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
