"""
Module: utils
Description: Logging and metrics helpers.
"""

from .logger import configure_logging, get_logger
from .metrics import MetricsClient

__all__ = ["configure_logging", "get_logger", "MetricsClient"]
