"""
Package: blockchain_ingestion
Description: Polling work queue that anchors new documents through an
external Blockchain Ingestion Service.
"""

__version__ = "0.1.0"
