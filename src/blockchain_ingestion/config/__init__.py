"""
Package: config
Description: Configuration for the ingestion queue.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
