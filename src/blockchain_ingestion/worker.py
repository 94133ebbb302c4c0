"""
Module: worker.py
Description: Entry points invoked by the external scheduler.

- process_blockchain_queue(): one run, called by a host background
  service scheduler
- handler(): Lambda handler for scheduled (EventBridge) invocations

Both return quietly when the module is disabled and never raise: any
failure while building or running the processor is logged.
"""

from typing import Any, Dict, Optional

from .config.settings import Settings, get_settings
from .delivery.client import BlockchainIngestionClient
from .processor.queue_processor import ProcessorConfig, QueueProcessor, RunSummary
from .processor.scheduler import RunGuard
from .storage.dynamodb import DynamoDBDocumentStore, DynamoDBQueueStore
from .utils.logger import configure_logging, get_logger
from .utils.metrics import MetricsClient

logger = get_logger(__name__)

# Shared across invocations in one process so overlapping runs are skipped
_RUN_GUARD = RunGuard()


def build_processor(settings: Settings, guard: Optional[RunGuard] = None) -> QueueProcessor:
    """Wire stores, delivery client and metrics from settings."""
    documents = DynamoDBDocumentStore(settings.documents_table_name, region_name=settings.aws_region)
    queue = DynamoDBQueueStore(settings.queue_table_name, region_name=settings.aws_region)
    client = BlockchainIngestionClient(
        settings.bis_endpoint,
        timeout_seconds=settings.bis_timeout,
        max_retries=settings.client_retries,
        backoff_unit=settings.client_backoff_unit,
    )
    metrics = None
    if settings.metrics_enabled:
        metrics = MetricsClient(settings.metrics_namespace, region_name=settings.aws_region)

    return QueueProcessor(
        documents,
        queue,
        client,
        ProcessorConfig.from_settings(settings),
        metrics=metrics,
        guard=guard or _RUN_GUARD,
    )


def process_blockchain_queue(settings: Optional[Settings] = None) -> Optional[RunSummary]:
    """
    Run the ingestion queue once.

    Returns:
        RunSummary of the run, or None when disabled or on fatal error
    """
    try:
        settings = settings or get_settings()
        configure_logging(settings.log_level)

        if not settings.enabled:
            logger.debug("Blockchain ingestion disabled, skipping run")
            return None

        return build_processor(settings).run()

    except Exception as e:
        logger.exception("Fatal error in blockchain ingestion service", error=str(e))
        return None


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for scheduled queue runs.

    Args:
        event: Scheduled event (contents ignored)
        context: Lambda context

    Returns:
        Run counters, or a status marker when the run did not happen
    """
    summary = process_blockchain_queue()
    if summary is None:
        return {"status": "not_run"}
    return {"status": "ok", **summary.model_dump()}
