import pytest

from catalog_ingest.config import Settings
from catalog_ingest.models import (
    CatalogRunResult,
    CourseRecord,
    DegreePlanCourse,
    DegreePlanRecord,
    HealthMetrics,
    HealthSnapshot,
    Provenance,
    slugify,
)

PARSED_AT = "2024-03-01T12:00:00+00:00"

C715_DESCRIPTION = (
    "Organizational Behavior explores how individuals and groups act within organizations, "
    "covering motivation, leadership, team dynamics and organizational culture for new managers. 3 CUs"
)
D072_DESCRIPTION = (
    "This introductory course gives students an overview of the field of business and a basis "
    "for understanding how businesses operate in a global environment. Prerequisite: C715."
)

MODERN_CATALOG = f"""Institutional Catalog
July 2022

School of Business

Bachelor of Science, Business Management
MGMT 3000C715Organizational Behavior31
ACCT 2010D072Fundamentals for Success in Business21
FINC 3100C716Business Communication32
Total CUs: 120

School of Technology

Master of Science, Data Analytics
DATA 5100D204The Data Analytics Journey41
DATA 5200D205Data Acquisition42
Total 8 CUs

Course Descriptions

C715 – Organizational Behavior – {C715_DESCRIPTION}
D072 – Fundamentals for Success in Business – {D072_DESCRIPTION}
"""


ENHANCED_SECTIONS = """
Standalone Courses
C949 - Data Structures and Algorithms II $1,250 (4 CUs)
D276 - Web Development Foundations $990 (3 CUs)
Bundle pricing: $1,800 - $2,100 for 6 months access

Certificate Programs
Cloud Foundations - Core cloud skills covering D311 and D312 $2,995 (12 CUs)
Project Management - Leading teams and projects $3,500

Program Outcomes
School of Technology
Bachelor of Science, Computer Science:
• Apply programming and software engineering principles
• Communicate clearly with professional audiences
Master of Science, Data Analytics:
• Perform statistical analysis on large data sets
School of Business
Bachelor of Science, Business Management:
• Lead organizational change
"""

ENHANCED_CATALOG = MODERN_CATALOG + ENHANCED_SECTIONS


@pytest.fixture
def modern_catalog() -> str:
    return MODERN_CATALOG


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        SOURCE_DIR=tmp_path / "sources",
        OUTPUT_DIR=tmp_path / "processed",
        HEALTH_DIR=tmp_path / "health",
        SYNC_DIR=tmp_path / "store",
        LOGS_DIR=tmp_path / "logs",
        SOURCE_EXTENSION=".txt",
        PARSE_TIMEOUT_SECONDS=30.0,
        SYNC_BACKOFF_SECONDS=0.0,
    )


def make_course(code: str, name: str, source_file: str = "catalog.pdf", **fields) -> CourseRecord:
    return CourseRecord(
        course_code=code,
        name=name,
        provenance=Provenance(source_file=source_file, page_number=1, extracted_at=PARSED_AT),
        **fields,
    )


def make_plan(name: str, codes, source_file: str = "catalog.pdf", **fields) -> DegreePlanRecord:
    return DegreePlanRecord(
        degree_id=slugify(name),
        degree_name=name,
        college=fields.pop("college", "School of Business"),
        degree_type=fields.pop("degree_type", "bachelor"),
        courses=[DegreePlanCourse(course_code=code) for code in codes],
        provenance=Provenance(source_file=source_file, extracted_at=PARSED_AT),
        **fields,
    )


def make_run(source_file: str, period: str, courses=(), plans=(), **fields) -> CatalogRunResult:
    return CatalogRunResult(
        source_file=source_file,
        source_period=period,
        parsed_at=PARSED_AT,
        parser_version="v2.0.0-modern",
        format_identifier="modern",
        page_count=fields.pop("page_count", 10),
        courses={c.course_code: c for c in courses},
        degree_plans={p.degree_id: p for p in plans},
        **fields,
    )


def make_snapshot(source_id: str = "catalog_2024_01", captured_at: str = PARSED_AT, **metrics) -> HealthSnapshot:
    defaults = dict(
        courses_found=100,
        control_number_coverage=96.0,
        competency_unit_coverage=98.0,
        description_coverage=95.0,
        avg_description_length=240.0,
        short_descriptions=2,
        missing_from_degree_plans=0,
        parse_time_ms=1200.0,
        pdf_pages=40,
    )
    defaults.update(metrics)
    return HealthSnapshot(
        source_id=source_id,
        source_file=f"{source_id}.pdf",
        captured_at=captured_at,
        parser_version="v2.1.0-enhanced",
        success=defaults["courses_found"] > 0,
        metrics=HealthMetrics(**defaults),
    )
