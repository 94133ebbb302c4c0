"""
Package: processor
Description: Queue processor and run scheduling.
"""

from .queue_processor import ProcessorConfig, QueueProcessor, RunSummary
from .scheduler import PeriodicScheduler, RunGuard

__all__ = [
    "PeriodicScheduler",
    "ProcessorConfig",
    "QueueProcessor",
    "RunGuard",
    "RunSummary",
]
