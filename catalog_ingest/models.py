# catalog_ingest/models.py
import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Record(BaseModel):
    """Base for every JSON-facing record: snake_case in Python, camelCase on disk."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class FormatDescriptor(Record):
    major_version: int
    minor_version: int
    patch_version: int
    identifier: str
    course_code_patterns: List[str]
    control_number_format_note: str
    degree_table_format_note: str
    text_notes: List[str] = Field(default_factory=list)
    first_seen_period: str
    last_seen_period: Optional[str] = None

    @property
    def version(self) -> str:
        return f"v{self.major_version}.{self.minor_version}.{self.patch_version}"

    @property
    def parser_version(self) -> str:
        return f"{self.version}-{self.identifier}"

    def covers(self, period: str) -> bool:
        if period < self.first_seen_period:
            return False
        return self.last_seen_period is None or period <= self.last_seen_period


class Provenance(Record):
    source_file: str
    page_number: Optional[int] = None
    extracted_at: str


class CourseRecord(Record):
    course_code: str
    control_number: Optional[str] = None
    name: str
    description: Optional[str] = None
    competency_units: int = Field(default=0, ge=0)
    prerequisites: List[str] = Field(default_factory=list)
    level: Optional[str] = None
    academic_area: Optional[str] = None
    provenance: Provenance


class DegreePlanCourse(Record):
    course_code: str
    term: Optional[int] = None
    kind: Literal["required", "elective", "capstone"] = "required"
    category: Optional[str] = None


class DegreePlanRecord(Record):
    degree_id: str
    degree_name: str
    college: str
    degree_type: Literal["bachelor", "master", "doctorate", "certificate"]
    total_competency_units: int = 0
    courses: List[DegreePlanCourse] = Field(default_factory=list)
    provenance: Provenance

    def course_codes(self) -> List[str]:
        return [course.course_code for course in self.courses]


class ParseIssue(Record):
    kind: str
    message: str
    location: Optional[str] = None


class StandaloneCourse(Record):
    course_code: str
    name: str
    price: int
    competency_units: Optional[int] = None
    access_type: str = "Self-paced"


class CourseBundle(Record):
    min_price: int
    max_price: int
    duration_months: Optional[int] = None
    access_type: str = "Self-paced"
    courses: List[str] = Field(default_factory=list)


class CertificateProgram(Record):
    code: str
    name: str
    description: str
    price: int
    total_competency_units: Optional[int] = None
    courses: List[str] = Field(default_factory=list)


class ProgramOutcome(Record):
    outcome: str
    category: Optional[Literal["technical", "professional", "analytical"]] = None


class ProgramOutcomes(Record):
    school: str
    program: str
    outcomes: List[ProgramOutcome] = Field(default_factory=list)


class RunStatistics(Record):
    courses_found: int = 0
    degree_plans_found: int = 0
    control_number_coverage_pct: float = 0.0
    competency_unit_coverage_pct: float = 0.0


class CatalogRunResult(Record):
    source_file: str
    source_period: Optional[str] = None
    parsed_at: str
    parser_version: str
    format_identifier: str
    page_count: int = 0
    courses: Dict[str, CourseRecord] = Field(default_factory=dict)
    degree_plans: Dict[str, DegreePlanRecord] = Field(default_factory=dict)
    duplicate_degree_plans: List[DegreePlanRecord] = Field(default_factory=list)
    standalone_courses: Dict[str, StandaloneCourse] = Field(default_factory=dict)
    course_bundles: List[CourseBundle] = Field(default_factory=list)
    certificate_programs: Dict[str, CertificateProgram] = Field(default_factory=dict)
    program_outcomes: Dict[str, ProgramOutcomes] = Field(default_factory=dict)
    statistics: RunStatistics = Field(default_factory=RunStatistics)
    warnings: List[ParseIssue] = Field(default_factory=list)
    errors: List[ParseIssue] = Field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.errors) and not self.courses and not self.degree_plans


class HealthMetrics(Record):
    courses_found: int = 0
    degree_plans_found: int = 0
    courses_with_control_number: int = 0
    courses_with_description: int = 0
    courses_with_competency_units: int = 0
    control_number_coverage: float = 0.0
    competency_unit_coverage: float = 0.0
    description_coverage: float = 0.0
    avg_description_length: float = 0.0
    short_descriptions: int = 0
    missing_from_degree_plans: int = 0
    parse_time_ms: float = 0.0
    pdf_pages: int = 0
    courses_per_page: float = 0.0
    memory_mb: float = 0.0


class HealthSnapshot(Record):
    source_id: str
    source_file: str
    captured_at: str
    parser_version: str
    success: bool
    metrics: HealthMetrics
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class SyncableDocument(Record):
    collection_name: str
    document_id: str
    payload: Dict[str, Any]
    content_hash: str


def slugify(text: str) -> str:
    """
    Derive a stable identifier from a display name.

    "Bachelor of Science, Computer Science" -> "bachelor-of-science-computer-science"
    """
    slug = re.sub(r"[^a-z0-9\s-]", "", text.lower())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")
