import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)


class CatalogIngestError(Exception):
    """Base class for every error raised by the ingest pipeline."""
    code = "CATALOG_INGEST_ERROR"


class SourceReadError(CatalogIngestError):
    """Raised when a source document is missing or cannot be read."""
    code = "SOURCE_READ_ERROR"


class ParseTimeoutError(CatalogIngestError):
    """Raised when a single source exceeds its parse time budget."""
    code = "PARSE_TIMEOUT"


class SyncWriteError(CatalogIngestError):
    """Raised when the remote store rejects a write or delete."""
    code = "SYNC_WRITE_ERROR"


class StoreConnectionError(CatalogIngestError):
    """Raised when the remote store cannot be reached at all."""
    code = "STORE_CONNECTION_ERROR"


class ConfigurationError(CatalogIngestError):
    """Raised when settings or the override table are unusable."""
    code = "CONFIGURATION_ERROR"


# Warning kinds recorded on parse results. These are never raised.
PATTERN_MISMATCH_WARNING = "PatternMismatchWarning"
DUPLICATE_RECORD_WARNING = "DuplicateRecordWarning"
EXTRACTION_ERROR = "ExtractionError"

FATAL_ERRORS = (ConfigurationError, StoreConnectionError)


def describe_error(error: Exception) -> Dict[str, Any]:
    """
    Turn an exception into a serialisable error description.

    Args:
        error (Exception): The caught exception

    Returns:
        Dict[str, Any]: Error response details
    """
    logger.error(f"Error occurred: {str(error)}", exc_info=error)

    return {
        "status": "error",
        "message": str(error),
        "type": error.__class__.__name__,
        "code": getattr(error, "code", "UNKNOWN_ERROR"),
        "fatal": isinstance(error, FATAL_ERRORS),
    }
