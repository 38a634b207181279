"""
Logging and error handling for the catalog ingest pipeline.
"""

from .error_handler import (
    describe_error,
    CatalogIngestError,
    SourceReadError,
    ParseTimeoutError,
    SyncWriteError,
    StoreConnectionError,
    ConfigurationError,
)
from .logger import setup_logger

__all__ = [
    'describe_error',
    'setup_logger',
    'CatalogIngestError',
    'SourceReadError',
    'ParseTimeoutError',
    'SyncWriteError',
    'StoreConnectionError',
    'ConfigurationError',
]
