import json
import time

import pytest

from catalog_ingest.extraction.catalog_parser import CatalogParser
from catalog_ingest.pipeline import CatalogPipeline
from catalog_ingest.sync.storage import InMemoryDocumentStore
from catalog_ingest.utils.error_handler import ConfigurationError, StoreConnectionError

from .conftest import ENHANCED_CATALOG, MODERN_CATALOG

NEWER_CATALOG = MODERN_CATALOG.replace("MGMT 3000C715", "MGMT 3100C715").replace(
    "Total 8 CUs\n",
    "Total 8 CUs\n\nCloud Foundations Certificate\nITCL 3001D311Cloud Foundations31\nTotal CUs: 3\n",
)


@pytest.fixture
def sources(settings):
    (settings.SOURCE_DIR / "catalog_2022_06.txt").write_text(MODERN_CATALOG, encoding="utf-8")
    (settings.SOURCE_DIR / "catalog_2024_02.txt").write_text(NEWER_CATALOG, encoding="utf-8")
    (settings.SOURCE_DIR / "notes.md").write_text("ignored", encoding="utf-8")
    return settings.SOURCE_DIR


class UnreachableStore(InMemoryDocumentStore):
    def check_connection(self):
        raise StoreConnectionError("store offline")


def test_batch_without_store(settings, sources):
    progress = []
    batch = CatalogPipeline(settings).run(progress=progress.append)

    assert [run.source_file for run in batch.runs] == ["catalog_2022_06.txt", "catalog_2024_02.txt"]
    assert [run.parser_version for run in batch.runs] == ["v2.0.0-modern", "v2.1.0-enhanced"]
    assert progress == [50.0, 100.0]
    assert batch.failures == []
    assert batch.sync_reports == {}

    c715 = batch.tables.courses["C715"]
    assert c715.control_number == "MGMT 3100"
    assert c715.catalog_versions == ["2022-06", "2024-02"]
    assert [c.field for c in batch.tables.conflicts] == ["control_number"]

    courses = json.loads((settings.OUTPUT_DIR / "courses.json").read_text())
    assert "C635" in courses
    assert (settings.OUTPUT_DIR / "degree-programs.csv").exists()
    assert (settings.HEALTH_DIR / "reports" / "catalog_2022_06.md").exists()

    summary = batch.summary()
    assert summary["sources"] == 2
    assert summary["failed"] == 0
    assert summary["conflicts"] == 1


def test_second_sync_writes_nothing(settings, sources):
    store = InMemoryDocumentStore()

    first = CatalogPipeline(settings, store=store).run()
    assert first.sync_reports["courses"].updated == len(first.tables.courses)
    assert first.sync_reports["catalogs"].updated == 2
    assert all(report.ok for report in first.sync_reports.values())
    writes = store.writes

    second = CatalogPipeline(settings, store=store).run()
    for name, report in second.sync_reports.items():
        assert report.updated == 0, name
        assert report.deleted == 0, name
    assert store.writes == writes
    assert store.list_ids("metadata") == ["catalogs", "courses", "degree-plans"]


def test_removed_source_is_deleted_from_store(settings, sources):
    store = InMemoryDocumentStore()
    CatalogPipeline(settings, store=store).run()

    (sources / "catalog_2024_02.txt").unlink()
    batch = CatalogPipeline(settings, store=store).run()

    assert batch.sync_reports["catalogs"].deleted == 1
    assert store.list_ids("catalogs") == ["catalog_2022_06"]


def test_failed_source_keeps_its_records_in_store(settings, sources):
    store = InMemoryDocumentStore()
    CatalogPipeline(settings, store=store).run()
    assert "D311" in store.list_ids("courses")

    (sources / "catalog_2024_02.txt").write_bytes(b"\xff\xfe\x00not text")
    batch = CatalogPipeline(settings, store=store).run()

    assert [f["source"] for f in batch.failures] == ["catalog_2024_02.txt"]
    assert "D311" not in batch.tables.courses
    for name in ("courses", "degree-plans"):
        report = batch.sync_reports[name]
        assert report.deleted == 0, name
        assert report.deletes_suppressed, name
    assert not batch.sync_reports["catalogs"].deletes_suppressed
    assert batch.summary()["sync"]["courses"]["deletes_suppressed"] is True

    assert "D311" in store.list_ids("courses")
    assert "cloud-foundations-certificate" in store.list_ids("degree-plans")


def test_missing_source_fails_alone(settings, sources):
    batch = CatalogPipeline(settings).run([sources / "catalog_2022_06.txt", sources / "catalog_2019_01.txt"])

    assert len(batch.runs) == 2
    assert [f["source"] for f in batch.failures] == ["catalog_2019_01.txt"]
    failed = batch.runs[1]
    assert failed.errors[0].kind == "SourceReadError"
    assert failed.parser_version == "v1.0.0-legacy"
    assert batch.reports["catalog_2019_01.txt"].status == "CRITICAL"
    assert "C715" in batch.tables.courses


def test_slow_parse_times_out(settings, sources, monkeypatch):
    original = CatalogParser.parse

    def slow_parse(self, raw_text, page_count, source_file, **kwargs):
        if source_file == "catalog_2024_02.txt":
            time.sleep(2.0)
        return original(self, raw_text, page_count, source_file, **kwargs)

    monkeypatch.setattr(CatalogParser, "parse", slow_parse)
    fast = settings.model_copy(update={"PARSE_TIMEOUT_SECONDS": 0.5})

    batch = CatalogPipeline(fast).run()

    assert [f["source"] for f in batch.failures] == ["catalog_2024_02.txt"]
    timed_out = batch.runs[1]
    assert timed_out.errors[0].kind == "ParseTimeoutError"
    assert timed_out.courses == {}
    assert batch.runs[0].courses
    assert batch.failures[0]["error"]["type"] == "ParseTimeoutError"
    assert batch.failures[0]["error"]["code"] == "PARSE_TIMEOUT"


def test_store_unreachable_stops_before_parsing(settings, sources):
    with pytest.raises(StoreConnectionError):
        CatalogPipeline(settings, store=UnreachableStore()).run()
    assert not (settings.OUTPUT_DIR / "courses.json").exists()


def test_bad_override_table_is_fatal(settings, sources, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("[]")

    with pytest.raises(ConfigurationError):
        CatalogPipeline(settings.model_copy(update={"OVERRIDES_PATH": bad})).run()


def test_process_batch_records_status(settings, sources):
    tasks = {}
    CatalogPipeline(settings).process_batch("task-1", None, tasks)

    assert tasks["task-1"]["status"] == "completed"
    assert tasks["task-1"]["progress"] == 100
    assert tasks["task-1"]["result"]["sources"] == 2


def test_process_batch_records_failure(settings):
    tasks = {}
    CatalogPipeline(settings, store=UnreachableStore()).process_batch("task-2", None, tasks)

    assert tasks["task-2"]["status"] == "failed"
    assert tasks["task-2"]["error"]["code"] == "STORE_CONNECTION_ERROR"


def test_month_named_sources_are_ordered_by_month(settings):
    (settings.SOURCE_DIR / "catalog-january2025.txt").write_text(MODERN_CATALOG, encoding="utf-8")
    (settings.SOURCE_DIR / "catalog-february2025.txt").write_text(NEWER_CATALOG, encoding="utf-8")

    batch = CatalogPipeline(settings).run()

    assert sorted(run.source_period for run in batch.runs) == ["2025-01", "2025-02"]
    c715 = batch.tables.courses["C715"]
    assert c715.control_number == "MGMT 3100"
    assert c715.catalog_versions == ["2025-01", "2025-02"]


def test_content_confirms_format_generation(settings):
    (settings.SOURCE_DIR / "catalog_2022_09.txt").write_text(ENHANCED_CATALOG, encoding="utf-8")

    batch = CatalogPipeline(settings).run()

    [run] = batch.runs
    assert run.source_period == "2022-09"
    assert run.parser_version == "v2.1.0-enhanced"
    assert sorted(run.standalone_courses) == ["C949", "D276"]


def test_content_check_can_be_disabled(settings):
    (settings.SOURCE_DIR / "catalog_2022_09.txt").write_text(ENHANCED_CATALOG, encoding="utf-8")

    batch = CatalogPipeline(settings.model_copy(update={"FORMAT_SAMPLE_PAGES": 0})).run()

    assert batch.runs[0].parser_version == "v2.0.0-modern"
    assert batch.runs[0].standalone_courses == {}


def test_enhanced_sections_reach_catalog_documents(settings):
    (settings.SOURCE_DIR / "catalog_2024_05.txt").write_text(ENHANCED_CATALOG, encoding="utf-8")
    store = InMemoryDocumentStore()

    CatalogPipeline(settings, store=store).run()

    payload = store.get("catalogs", "catalog_2024_05").payload
    assert sorted(payload["standaloneCourses"]) == ["C949", "D276"]
    assert payload["certificatePrograms"]["CERT1"]["courses"] == ["D311", "D312"]
    assert "courseBundles" in payload
    assert "programOutcomes" in payload
