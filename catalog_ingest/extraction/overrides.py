# catalog_ingest/extraction/overrides.py
import json
import logging
from pathlib import Path
from types import MappingProxyType
from collections.abc import Mapping
from typing import Dict, Iterator, Optional, Tuple

from pydantic import Field, ValidationError

from ..models import Record
from ..utils.error_handler import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_OVERRIDES_PATH = Path(__file__).parent / "overrides.json"


class OverrideEntry(Record):
    control_number: str
    competency_units: int = Field(ge=0)


class OverrideTable(Mapping):
    """
    Read-only courseCode -> OverrideEntry mapping.

    Loaded once per batch and handed to every parse call. Codes in the table
    always win over pattern-matched values.
    """

    def __init__(self, entries: Optional[Dict[str, OverrideEntry]] = None):
        self._entries = MappingProxyType(dict(sorted((entries or {}).items())))

    def __getitem__(self, code: str) -> OverrideEntry:
        return self._entries[code]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def codes(self) -> Tuple[str, ...]:
        return tuple(self._entries)

    def __repr__(self) -> str:
        return f"OverrideTable({len(self)} codes)"


EMPTY_OVERRIDES = OverrideTable()


def load_overrides(path: Optional[Path] = None) -> OverrideTable:
    """
    Load the manual override table.

    Args:
        path (Path): JSON file mapping course codes to
            {"controlNumber", "competencyUnits"}; the packaged table when None

    Returns:
        OverrideTable: Immutable table

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    path = Path(path) if path else DEFAULT_OVERRIDES_PATH
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Override table {path} must be a JSON object")
        entries = {str(code): OverrideEntry.model_validate(value) for code, value in raw.items()}
    except ConfigurationError:
        raise
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid override table {path}: {e}") from e

    logger.info(f"Loaded {len(entries)} course overrides from {path}")
    return OverrideTable(entries)
