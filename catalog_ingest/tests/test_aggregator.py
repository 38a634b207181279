import json

import pandas as pd

from catalog_ingest.extraction.aggregator import CatalogAggregator
from catalog_ingest.models import ParseIssue

from .conftest import make_course, make_plan, make_run


def two_catalogs():
    older = make_run(
        "catalog_2022_06.pdf", "2022-06",
        courses=[
            make_course("C715", "Organizational Behavior", "catalog_2022_06.pdf",
                        control_number="MGMT 3000", competency_units=3, description="Old text"),
            make_course("D072", "Fundamentals for Success in Business", "catalog_2022_06.pdf",
                        competency_units=2),
        ],
        plans=[make_plan("Bachelor of Science, Business Management", ["C715", "D072"], "catalog_2022_06.pdf")],
    )
    newer = make_run(
        "catalog_2024_02.pdf", "2024-02",
        courses=[
            make_course("C715", "Organizational Behavior", "catalog_2024_02.pdf",
                        control_number="MGMT 3100", competency_units=3),
            make_course("D204", "The Data Analytics Journey", "catalog_2024_02.pdf",
                        control_number="DATA 5100", competency_units=4),
        ],
    )
    return older, newer


def test_latest_non_empty_value_wins():
    older, newer = two_catalogs()
    tables = CatalogAggregator().aggregate([newer, older])

    c715 = tables.courses["C715"]
    assert c715.control_number == "MGMT 3100"
    # empty in the newer catalog, so the older text survives
    assert c715.description == "Old text"
    assert c715.catalog_versions == ["2022-06", "2024-02"]
    assert c715.last_updated == "2024-02"

    assert tables.courses["D072"].catalog_versions == ["2022-06"]
    assert sorted(tables.courses) == ["C715", "D072", "D204"]


def test_conflicts_are_recorded_not_overwritten():
    older, newer = two_catalogs()
    tables = CatalogAggregator().aggregate([older, newer])

    assert len(tables.conflicts) == 1
    conflict = tables.conflicts[0]
    assert conflict.key == "C715"
    assert conflict.field == "control_number"
    assert conflict.values == {"catalog_2022_06.pdf": "MGMT 3000", "catalog_2024_02.pdf": "MGMT 3100"}
    assert conflict.resolved_value == "MGMT 3100"
    assert conflict.resolved_source == "catalog_2024_02.pdf"


def test_degree_programs_merge():
    older, _ = two_catalogs()
    tables = CatalogAggregator().aggregate([older])

    program = tables.degree_programs["bachelor-of-science-business-management"]
    assert program.course_codes() == ["C715", "D072"]
    assert program.catalog_versions == ["2022-06"]


def test_failed_runs_are_ignored():
    older, _ = two_catalogs()
    failed = make_run("broken.pdf", "2023-01", errors=[ParseIssue(kind="SourceReadError", message="corrupt")])

    aggregator = CatalogAggregator()
    aggregator.add(failed)
    tables = aggregator.aggregate([older])

    assert aggregator.runs == []
    assert all("broken.pdf" != c.provenance.source_file for c in tables.courses.values())


def test_repeated_aggregate_does_not_double_count():
    older, newer = two_catalogs()
    aggregator = CatalogAggregator()
    aggregator.add(older)

    first = aggregator.aggregate([newer])
    second = aggregator.aggregate([newer])

    assert aggregator.runs == [older]
    assert first.courses == second.courses
    assert second.courses["C715"].catalog_versions == ["2022-06", "2024-02"]
    assert len(second.conflicts) == 1


def test_later_month_of_the_same_year_wins():
    january = make_run("catalog-january2025.pdf", "2025-01", courses=[
        make_course("C715", "Organizational Behavior", "catalog-january2025.pdf", control_number="MGMT 3000"),
    ])
    february = make_run("catalog-february2025.pdf", "2025-02", courses=[
        make_course("C715", "Organizational Behavior", "catalog-february2025.pdf", control_number="MGMT 3100"),
    ])

    c715 = CatalogAggregator().aggregate([january, february]).courses["C715"]

    assert c715.control_number == "MGMT 3100"
    assert c715.last_updated == "2025-02"


def test_write_outputs(tmp_path):
    older, newer = two_catalogs()
    tables = CatalogAggregator().aggregate([older, newer])
    paths = tables.write(tmp_path / "out")

    courses = json.loads(paths["courses"].read_text())
    assert courses["C715"]["controlNumber"] == "MGMT 3100"
    assert courses["C715"]["catalogVersions"] == ["2022-06", "2024-02"]

    conflicts = json.loads(paths["conflicts"].read_text())
    assert conflicts[0]["resolvedSource"] == "catalog_2024_02.pdf"

    frame = pd.read_csv(paths["courses_csv"])
    assert len(frame) == 3
    assert "provenance.sourceFile" in frame.columns

    programs = pd.read_csv(paths["degree_programs_csv"])
    assert list(programs["courseCode"]) == ["C715", "D072"]
    assert set(programs["degreeId"]) == {"bachelor-of-science-business-management"}


def test_statistics():
    older, newer = two_catalogs()
    stats = CatalogAggregator().aggregate([older, newer]).get_statistics()

    assert stats["total_courses"] == 3
    assert stats["total_conflicts"] == 1
    assert stats["courses_with_control_number"] == 2


def test_empty_aggregate_writes_empty_files(tmp_path):
    tables = CatalogAggregator().aggregate()
    paths = tables.write(tmp_path)

    assert json.loads(paths["courses"].read_text()) == {}
    assert tables.get_statistics()["total_courses"] == 0
