"""
Module: metrics.py
Description: CloudWatch custom metrics for queue runs.

Publishes per-run counters (documents discovered, anchored, retried,
failed) so that a stalled or failing queue is visible without reading
logs. Publishing failures are logged and never interrupt a run.

Dependencies: boto3, typing, logger
"""

from typing import Dict, Optional

import boto3

from .logger import get_logger

logger = get_logger(__name__)


class MetricsClient:
    """CloudWatch metrics client."""

    def __init__(self, namespace: str = "BlockchainIngestion", cloudwatch=None, region_name: Optional[str] = None):
        """
        Initialize metrics client.

        Args:
            namespace: CloudWatch metrics namespace
            cloudwatch: Optional boto3 CloudWatch client
            region_name: AWS region used when no client is given
        """
        self.namespace = namespace
        self.cloudwatch = cloudwatch or boto3.client("cloudwatch", region_name=region_name)

        logger.info("Metrics client initialized", namespace=namespace)

    def put_counts(self, counts: Dict[str, int], dimensions: Optional[Dict[str, str]] = None) -> None:
        """
        Publish several Count metrics in one call.

        Args:
            counts: Metric name to value
            dimensions: Optional metric dimensions applied to every metric
        """
        if not counts:
            return

        metric_data = []
        for name, value in counts.items():
            datum = {"MetricName": name, "Value": float(value), "Unit": "Count"}
            if dimensions:
                datum["Dimensions"] = [{"Name": k, "Value": v} for k, v in dimensions.items()]
            metric_data.append(datum)

        try:
            self.cloudwatch.put_metric_data(Namespace=self.namespace, MetricData=metric_data)
            logger.debug("Metrics published to CloudWatch", namespace=self.namespace, metrics=counts)
        except Exception as e:
            # Metrics are best effort; the queue state is already persisted
            logger.warning(
                "Failed to publish metrics",
                namespace=self.namespace,
                metrics=counts,
                error=str(e)
            )
