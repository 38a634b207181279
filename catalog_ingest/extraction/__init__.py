"""
Catalog text extraction: pattern library, format selection, parsing and aggregation.
"""

from .aggregator import CanonicalTables, CatalogAggregator, FieldConflict
from .catalog_parser import CatalogParser, failed_result
from .overrides import EMPTY_OVERRIDES, OverrideTable, load_overrides
from .selector import period_from_filename, select_for_source, select_strategy, verify_format
from .sources import SourceText, discover_sources, load_source_text, resolve_sources

__all__ = [
    'CanonicalTables',
    'CatalogAggregator',
    'FieldConflict',
    'CatalogParser',
    'failed_result',
    'EMPTY_OVERRIDES',
    'OverrideTable',
    'load_overrides',
    'period_from_filename',
    'select_for_source',
    'select_strategy',
    'verify_format',
    'SourceText',
    'discover_sources',
    'load_source_text',
    'resolve_sources',
]
