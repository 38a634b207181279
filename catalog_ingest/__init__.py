"""
Catalog Ingest
--------------
Turns periodically published institutional catalogs into structured course
and degree-plan records.

The package covers:
- A versioned, multi-pass parsing engine selected by publication date
- Health scoring of every parse run, with trends and alerts over time
- Content-hash synchronisation of the records into a document store
"""

__version__ = '0.1.0'

from .config import Settings
from .models import CatalogRunResult, CourseRecord, DegreePlanRecord, HealthSnapshot, SyncableDocument
from .pipeline import BatchResult, CatalogPipeline

__all__ = [
    'Settings',
    'CatalogRunResult',
    'CourseRecord',
    'DegreePlanRecord',
    'HealthSnapshot',
    'SyncableDocument',
    'BatchResult',
    'CatalogPipeline',
    '__version__',
]
