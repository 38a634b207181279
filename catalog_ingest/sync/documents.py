# catalog_ingest/sync/documents.py
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..extraction.aggregator import CanonicalTables
from ..models import CatalogRunResult, SyncableDocument
from ..monitoring.health import HealthReport
from .hashing import content_hash, make_document, volatile_serializer

COURSES = "courses"
DEGREE_PLANS = "degree-plans"
CATALOGS = "catalogs"
METADATA = "metadata"

# Run-specific values that never count as a content change
VOLATILE_KEYS = ("extractedAt", "parsedAt", "syncedAt")

record_serializer = volatile_serializer(VOLATILE_KEYS)

ENHANCED_SECTIONS = {"standalone_courses", "course_bundles", "certificate_programs", "program_outcomes"}


def catalog_payload(run: CatalogRunResult, report: Optional[HealthReport] = None) -> Dict:
    payload = {
        "sourceFile": run.source_file,
        "sourcePeriod": run.source_period,
        "parsedAt": run.parsed_at,
        "parserVersion": run.parser_version,
        "formatIdentifier": run.format_identifier,
        "pageCount": run.page_count,
        "statistics": run.statistics.model_dump(by_alias=True, mode="json"),
        "courseCodes": sorted(run.courses),
        "degreeIds": sorted(run.degree_plans),
        "warnings": [w.model_dump(by_alias=True, mode="json") for w in run.warnings],
        "errors": [e.model_dump(by_alias=True, mode="json") for e in run.errors],
    }
    # Enhanced-format sections are only present when the catalog printed them
    enhanced = run.model_dump(by_alias=True, mode="json", include=ENHANCED_SECTIONS)
    payload.update({key: value for key, value in enhanced.items() if value})
    if report is not None:
        payload["healthStatus"] = report.status
    return payload


def metadata_document(collection: str, documents: List[SyncableDocument]) -> SyncableDocument:
    """Summary of one collection. Carries no timestamp so it only changes with the collection."""
    fingerprint = content_hash(sorted([d.document_id, d.content_hash] for d in documents))
    return make_document(METADATA, collection, {
        "collection": collection,
        "documentCount": len(documents),
        "documentIds": sorted(d.document_id for d in documents),
        "fingerprint": fingerprint,
    })


def build_sync_documents(
    tables: CanonicalTables,
    runs: Iterable[CatalogRunResult],
    reports: Optional[Dict[str, HealthReport]] = None,
) -> Dict[str, List[SyncableDocument]]:
    """
    Turn canonical tables and per-source runs into store documents.

    Args:
        tables: Aggregated courses and degree programs
        runs: Parse runs; each becomes one document in "catalogs"
        reports: Health reports keyed by source file

    Returns:
        Documents per collection name, "metadata" last
    """
    reports = reports or {}

    collections: Dict[str, List[SyncableDocument]] = {
        COURSES: [
            make_document(COURSES, code, payload, record_serializer)
            for code, payload in tables.courses_json().items()
        ],
        DEGREE_PLANS: [
            make_document(DEGREE_PLANS, degree_id, payload, record_serializer)
            for degree_id, payload in tables.degree_programs_json().items()
        ],
    }

    catalogs: Dict[str, SyncableDocument] = {}
    for run in runs:
        document_id = Path(run.source_file).stem
        payload = catalog_payload(run, reports.get(run.source_file))
        catalogs[document_id] = make_document(CATALOGS, document_id, payload, record_serializer)
    collections[CATALOGS] = [catalogs[key] for key in sorted(catalogs)]

    collections[METADATA] = [metadata_document(name, docs) for name, docs in collections.items()]
    return collections
