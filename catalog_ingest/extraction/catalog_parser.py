# catalog_ingest/extraction/catalog_parser.py
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from ..models import (
    CatalogRunResult,
    CertificateProgram,
    CourseBundle,
    CourseRecord,
    DegreePlanCourse,
    DegreePlanRecord,
    FormatDescriptor,
    ParseIssue,
    ProgramOutcome,
    ProgramOutcomes,
    Provenance,
    RunStatistics,
    StandaloneCourse,
    slugify,
)
from ..utils.error_handler import (
    DUPLICATE_RECORD_WARNING,
    EXTRACTION_ERROR,
    PATTERN_MISMATCH_WARNING,
)
from ..utils.logger import setup_logger
from .overrides import EMPTY_OVERRIDES, OverrideTable
from .patterns import (
    CompiledPatterns,
    PatternTable,
    SECTION_ROWS,
    college_for,
    compile_patterns,
    degree_type_for,
    get_table,
    outcome_category,
)

logger = setup_logger("catalog_parser")

# Context searched around a detailed entry for a competency-unit mention
CONTEXT_BEFORE = 200
CONTEXT_AFTER = 500
# Longest stretch of text after a degree title that can belong to its plan
MAX_DEGREE_WINDOW = 3000
MIN_CU, MAX_CU = 1, 10
MIN_TERM, MAX_TERM = 1, 9
GRADUATE_LEVEL_FLOOR = 5000

CONTROL_NUMBER_PARTS = re.compile(r"^(?P<area>[A-Z]+)\s*(?P<number>\d+)")


@dataclass
class _WorkingCourse:
    course_code: str
    name: str
    control_number: Optional[str] = None
    description: Optional[str] = None
    competency_units: int = 0
    page_number: Optional[int] = None


@dataclass
class _ParseState:
    text: str
    page_count: int
    source_file: str
    parsed_at: str
    patterns: CompiledPatterns
    overrides: OverrideTable
    lookup: Dict[str, Dict] = field(default_factory=dict)
    packed_names: Dict[str, Tuple[str, int]] = field(default_factory=dict)
    courses: Dict[str, _WorkingCourse] = field(default_factory=dict)
    plans: Dict[str, DegreePlanRecord] = field(default_factory=dict)
    duplicate_plans: List[DegreePlanRecord] = field(default_factory=list)
    standalone: Dict[str, StandaloneCourse] = field(default_factory=dict)
    bundles: List[CourseBundle] = field(default_factory=list)
    certificates: Dict[str, CertificateProgram] = field(default_factory=dict)
    outcomes: Dict[str, ProgramOutcomes] = field(default_factory=dict)
    warnings: List[ParseIssue] = field(default_factory=list)
    errors: List[ParseIssue] = field(default_factory=list)

    def page_for(self, offset: int) -> int:
        chars_per_page = len(self.text) / self.page_count
        if chars_per_page <= 0:
            return 1
        return min(max(int(offset // chars_per_page) + 1, 1), self.page_count)

    def provenance(self, offset: Optional[int]) -> Provenance:
        return Provenance(
            source_file=self.source_file,
            page_number=self.page_for(offset) if offset is not None else None,
            extracted_at=self.parsed_at,
        )

    def record_error(self, message: str, location: Optional[str] = None):
        logger.warning(f"{self.source_file}: {message}")
        self.errors.append(ParseIssue(kind=EXTRACTION_ERROR, message=message, location=location))


class CatalogParser:
    """
    Multi-pass extraction of course and degree-plan records from catalog text.

    One parser exists per format generation; the descriptor says which
    generation, the pattern table says how to read it. Later passes only fill
    gaps left by earlier, higher-confidence ones.
    """

    def __init__(self, descriptor: FormatDescriptor, table: Optional[PatternTable] = None):
        self.descriptor = descriptor
        self.table = table or get_table(descriptor.identifier)

    @property
    def parser_version(self) -> str:
        return self.descriptor.parser_version

    def __repr__(self) -> str:
        return f"CatalogParser({self.parser_version})"

    def parse(
        self,
        raw_text: str,
        page_count: int,
        source_file: str,
        overrides: OverrideTable = EMPTY_OVERRIDES,
        parsed_at: Optional[str] = None,
        source_period: Optional[str] = None,
    ) -> CatalogRunResult:
        """
        Parse one catalog's extracted text.

        The result is a pure function of the arguments only when parsed_at is
        given. Left as None it defaults to the current time, so two calls on the
        same text differ in parsedAt and every provenance extractedAt.

        Args:
            raw_text (str): Full document text
            page_count (int): Pages in the source document
            source_file (str): Name recorded in every record's provenance
            overrides (OverrideTable): Manual courseCode overrides
            parsed_at (str): ISO timestamp of the run; now when None
            source_period (str): YYYY-MM period of the source, if known

        Returns:
            CatalogRunResult: Never raises for malformed input
        """
        parsed_at = parsed_at or datetime.now(timezone.utc).isoformat()
        compiled = compile_patterns(self.descriptor.identifier, overrides.codes)
        state = _ParseState(
            text=raw_text or "",
            page_count=max(int(page_count or 0), 1),
            source_file=source_file,
            parsed_at=parsed_at,
            patterns=compiled,
            overrides=overrides,
        )

        logger.info(f"Parsing {source_file} with {self.parser_version} ({len(state.text)} chars, {state.page_count} pages)")

        passes = [
            ("packed-table", self._extract_packed_table),
            ("overrides", self._apply_overrides),
            ("detailed-descriptions", self._extract_detailed_descriptions),
            ("course-listings", self._extract_course_listings),
            ("degree-plans", self._extract_degree_plans),
            ("enhanced-sections", self._extract_enhanced_sections),
            ("known-courses", self._backfill_known_courses),
        ]
        for name, run_pass in passes:
            try:
                run_pass(state)
            except Exception as e:
                state.record_error(f"Pass '{name}' failed: {e}", location=f"pass:{name}")

        if not state.courses:
            state.warnings.append(ParseIssue(
                kind=PATTERN_MISMATCH_WARNING,
                message="No courses found in source text",
            ))

        result = self._build_result(state, source_period)
        logger.info(
            f"Parsed {source_file}: {result.statistics.courses_found} courses, "
            f"{result.statistics.degree_plans_found} degree plans, "
            f"{len(result.warnings)} warnings, {len(result.errors)} errors"
        )
        return result

    def _extract_packed_table(self, state: _ParseState):
        """Pass 1: control number, code, title and packed CU/term digits in one table row."""
        for match in state.patterns.packed_row.finditer(state.text):
            cu, term = int(match["cu"]), int(match["term"])
            if not (MIN_CU <= cu <= MAX_CU and MIN_TERM <= term <= MAX_TERM):
                continue
            code = match["code"]
            control = " ".join(match["control"].split())
            state.lookup.setdefault(code, {"control_number": control, "competency_units": cu})
            name = (match["name"] or "").strip()
            if name and code not in state.packed_names:
                state.packed_names[code] = (name, match.start())

        logger.debug(f"Packed table lookup holds {len(state.lookup)} codes")

    def _apply_overrides(self, state: _ParseState):
        """Pass 2: manual overrides replace whatever the table produced."""
        for code, entry in state.overrides.items():
            state.lookup[code] = {
                "control_number": entry.control_number,
                "competency_units": entry.competency_units,
            }

    def _extract_detailed_descriptions(self, state: _ParseState):
        """Pass 3: long-form "code - title - description" entries."""
        for match in state.patterns.detailed.finditer(state.text):
            code = match["code"]
            try:
                name = match["title"].strip()
                description = match["description"].strip()
                known = state.lookup.get(code, {})

                if code in state.courses:
                    if state.courses[code].description != description:
                        state.warnings.append(ParseIssue(
                            kind=DUPLICATE_RECORD_WARNING,
                            message=f"Course {code} described twice with different content; keeping the first",
                            location=f"offset:{match.start()}",
                        ))
                    continue

                control = known.get("control_number")
                if not control and "control" in match.re.groupindex:
                    control = " ".join(match["control"].split())

                cu = known.get("competency_units") or self._contextual_units(state, match.start())

                state.courses[code] = _WorkingCourse(
                    course_code=code,
                    name=name,
                    control_number=control,
                    description=description,
                    competency_units=cu,
                    page_number=state.page_for(match.start()),
                )
            except Exception as e:
                state.record_error(f"Could not read detailed entry for {code}: {e}", location=f"offset:{match.start()}")

    def _contextual_units(self, state: _ParseState, offset: int) -> int:
        start = max(0, offset - CONTEXT_BEFORE)
        context = state.text[start:offset + CONTEXT_AFTER]
        for pattern in state.patterns.competency_units:
            for match in pattern.finditer(context):
                value = int(match["cu"])
                if MIN_CU <= value <= MAX_CU:
                    return value
        return 0

    def _extract_course_listings(self, state: _ParseState):
        """Pass 4: short listings create missing courses or backfill empty fields."""
        for pattern in state.patterns.listings:
            for match in pattern.finditer(state.text):
                groups = match.groupdict()
                cu = int(groups["cu"]) if groups.get("cu") else 0
                self._merge_listing(state, match["code"], match["name"].strip(), cu, match.start())

        for code, (name, offset) in state.packed_names.items():
            self._merge_listing(state, code, name, 0, offset)

    def _merge_listing(self, state: _ParseState, code: str, name: str, cu: int, offset: int):
        if not MIN_CU <= cu <= MAX_CU:
            cu = 0
        known = state.lookup.get(code, {})
        course = state.courses.get(code)

        if course is None:
            if not name:
                return
            state.courses[code] = _WorkingCourse(
                course_code=code,
                name=name,
                control_number=known.get("control_number"),
                competency_units=known.get("competency_units") or cu,
                page_number=state.page_for(offset),
            )
            return

        if not course.control_number and known.get("control_number"):
            course.control_number = known["control_number"]
        if not course.competency_units:
            course.competency_units = known.get("competency_units") or cu
        if name and 5 < len(name) < len(course.name):
            course.name = name

    def _extract_degree_plans(self, state: _ParseState):
        """Pass 5: degree titles and the course codes listed beneath them."""
        patterns = state.patterns
        titles = list(patterns.degree_title.finditer(state.text))
        if not titles:
            state.warnings.append(ParseIssue(
                kind=PATTERN_MISMATCH_WARNING,
                message="No degree titles found in source text",
            ))
            return

        headings = [(m.start(), m["college"].strip()) for m in patterns.college_heading.finditer(state.text)]

        for index, title_match in enumerate(titles):
            title = " ".join(title_match["title"].split())
            try:
                next_start = titles[index + 1].start() if index + 1 < len(titles) else len(state.text)
                window_end = min(next_start, title_match.end() + MAX_DEGREE_WINDOW)
                for heading_start, _ in headings:
                    if title_match.end() < heading_start < window_end:
                        window_end = heading_start
                        break
                window = state.text[title_match.end():window_end]

                total_match = patterns.total_cus.search(window)
                if total_match:
                    window = window[:total_match.end()]

                plan = self._build_plan(state, title, title_match.start(), window, total_match, headings)
                if plan is None:
                    continue
                self._register_plan(state, plan, title_match.start())
            except Exception as e:
                state.record_error(f"Could not read degree plan '{title}': {e}", location=f"offset:{title_match.start()}")

    def _build_plan(self, state, title, offset, window, total_match, headings) -> Optional[DegreePlanRecord]:
        codes: List[str] = []
        for token in state.patterns.code_token.finditer(window):
            if token.group(0) not in codes:
                codes.append(token.group(0))
        if not codes:
            logger.debug(f"Skipping degree title without courses: {title}")
            return None

        degree_id = slugify(title)
        if not degree_id:
            return None

        terms: Dict[str, int] = {}
        for row in state.patterns.packed_row.finditer(window):
            term = int(row["term"])
            if MIN_TERM <= term <= MAX_TERM:
                terms.setdefault(row["code"], term)

        college = None
        for heading_start, heading in headings:
            if heading_start < offset:
                college = heading
        college = college or college_for(title)

        if total_match:
            total = int(total_match["total"] or total_match["total_after"])
        else:
            total = sum(self._known_units(state, code) for code in codes)

        return DegreePlanRecord(
            degree_id=degree_id,
            degree_name=title,
            college=college,
            degree_type=degree_type_for(title),
            total_competency_units=total,
            courses=[DegreePlanCourse(course_code=code, term=terms.get(code)) for code in codes],
            provenance=state.provenance(offset),
        )

    def _known_units(self, state: _ParseState, code: str) -> int:
        if code in state.courses and state.courses[code].competency_units:
            return state.courses[code].competency_units
        return state.lookup.get(code, {}).get("competency_units", 0)

    def _register_plan(self, state: _ParseState, plan: DegreePlanRecord, offset: int):
        existing = state.plans.get(plan.degree_id)
        if existing is None:
            state.plans[plan.degree_id] = plan
            return
        if existing.courses == plan.courses:
            return
        state.warnings.append(ParseIssue(
            kind=DUPLICATE_RECORD_WARNING,
            message=f"Degree plan '{plan.degree_id}' appears more than once with different courses",
            location=f"offset:{offset}",
        ))
        state.duplicate_plans.append(plan)

    def _extract_enhanced_sections(self, state: _ParseState):
        """Pass 6: standalone courses, bundle pricing, certificate programs and program outcomes."""
        patterns = state.patterns
        if patterns.standalone_section is not None:
            self._extract_standalone(state, patterns.standalone_section, patterns.standalone_row)
        if patterns.certificate_section is not None:
            self._extract_certificates(state, patterns.certificate_section)
        if patterns.outcomes_section is not None:
            self._extract_outcomes(state, patterns.outcomes_section)

    def _extract_standalone(self, state: _ParseState, section, row):
        found = section.search(state.text)
        if not found:
            return
        body = found["body"]
        for match in row.finditer(body):
            code = match["code"]
            if code in state.standalone:
                continue
            state.standalone[code] = StandaloneCourse(
                course_code=code,
                name=match["name"].strip(),
                price=_amount(match["price"]),
                competency_units=int(match["cu"]) if match["cu"] else None,
            )

        pricing = SECTION_ROWS.bundle_pricing.search(body)
        if pricing:
            access = SECTION_ROWS.bundle_access.search(body)
            state.bundles.append(CourseBundle(
                min_price=_amount(pricing["min"]),
                max_price=_amount(pricing["max"]),
                duration_months=int(access["months"]) if access else None,
                courses=sorted(state.standalone),
            ))
        logger.debug(f"Standalone section holds {len(state.standalone)} courses, {len(state.bundles)} bundles")

    def _extract_certificates(self, state: _ParseState, section):
        found = section.search(state.text)
        if not found:
            return
        for match in SECTION_ROWS.certificate_row.finditer(found["body"]):
            code = f"CERT{len(state.certificates) + 1}"
            description = match["description"].strip()
            courses: List[str] = []
            for token in state.patterns.code_token.finditer(description):
                if token.group(0) not in courses:
                    courses.append(token.group(0))
            state.certificates[code] = CertificateProgram(
                code=code,
                name=match["name"].strip(),
                description=description,
                price=_amount(match["price"]),
                total_competency_units=int(match["cu"]) if match["cu"] else None,
                courses=courses,
            )

    def _extract_outcomes(self, state: _ParseState, section):
        found = section.search(state.text)
        if not found:
            return
        body = found["body"]
        schools = list(SECTION_ROWS.outcome_school.finditer(body))
        for index, school_match in enumerate(schools):
            end = schools[index + 1].start() if index + 1 < len(schools) else len(body)
            school_text = body[school_match.end():end]
            school = " ".join(school_match["school"].split())

            programs = list(SECTION_ROWS.outcome_program.finditer(school_text))
            for position, program_match in enumerate(programs):
                stop = programs[position + 1].start() if position + 1 < len(programs) else len(school_text)
                program = " ".join(program_match["program"].split())
                bullets = SECTION_ROWS.outcome_bullet.finditer(school_text[program_match.end():stop])
                outcomes = [
                    ProgramOutcome(outcome=text, category=outcome_category(text))
                    for text in (bullet["outcome"].strip() for bullet in bullets)
                    if text
                ]
                if not outcomes:
                    continue
                key = slugify(f"{school} {program}")
                state.outcomes.setdefault(key, ProgramOutcomes(school=school, program=program, outcomes=outcomes))

    def _backfill_known_courses(self, state: _ParseState):
        """Pass 7: every override code ends up in the result with override values."""
        for code, entry in state.overrides.items():
            course = state.courses.get(code)
            if course is None:
                state.courses[code] = _WorkingCourse(
                    course_code=code,
                    name=f"{code} Course",
                    control_number=entry.control_number,
                    competency_units=entry.competency_units,
                )
            else:
                course.control_number = entry.control_number
                course.competency_units = entry.competency_units

    def _build_result(self, state: _ParseState, source_period: Optional[str]) -> CatalogRunResult:
        courses: Dict[str, CourseRecord] = {}
        for code in sorted(state.courses):
            working = state.courses[code]
            try:
                courses[code] = self._to_record(state, working)
            except Exception as e:
                state.record_error(f"Invalid course record {code}: {e}", location=f"course:{code}")

        plans = {degree_id: state.plans[degree_id] for degree_id in sorted(state.plans)}

        return CatalogRunResult(
            source_file=state.source_file,
            source_period=source_period,
            parsed_at=state.parsed_at,
            parser_version=self.parser_version,
            format_identifier=self.descriptor.identifier,
            page_count=state.page_count,
            courses=courses,
            degree_plans=plans,
            duplicate_degree_plans=state.duplicate_plans,
            standalone_courses={code: state.standalone[code] for code in sorted(state.standalone)},
            course_bundles=state.bundles,
            certificate_programs=state.certificates,
            program_outcomes={key: state.outcomes[key] for key in sorted(state.outcomes)},
            statistics=compute_statistics(courses, plans),
            warnings=state.warnings,
            errors=state.errors,
        )

    def _to_record(self, state: _ParseState, working: _WorkingCourse) -> CourseRecord:
        level = area = None
        if working.control_number:
            parts = CONTROL_NUMBER_PARTS.match(working.control_number)
            if parts:
                area = parts["area"]
                level = "graduate" if int(parts["number"]) >= GRADUATE_LEVEL_FLOOR else "undergraduate"

        return CourseRecord(
            course_code=working.course_code,
            control_number=working.control_number,
            name=working.name,
            description=working.description,
            competency_units=working.competency_units,
            prerequisites=self._prerequisites(state, working),
            level=level,
            academic_area=area,
            provenance=Provenance(
                source_file=state.source_file,
                page_number=working.page_number,
                extracted_at=state.parsed_at,
            ),
        )

    def _prerequisites(self, state: _ParseState, working: _WorkingCourse) -> List[str]:
        if not working.description:
            return []
        marker = state.patterns.prerequisites.search(working.description)
        if not marker:
            return []
        found: List[str] = []
        for token in state.patterns.code_token.finditer(marker["prerequisites"]):
            code = token.group(0)
            if code != working.course_code and code not in found:
                found.append(code)
        return found


def _amount(text: str) -> int:
    return int(text.replace(",", ""))


def compute_statistics(courses: Dict[str, CourseRecord], plans: Dict[str, DegreePlanRecord]) -> RunStatistics:
    total = len(courses)
    with_control = sum(1 for c in courses.values() if c.control_number)
    with_units = sum(1 for c in courses.values() if c.competency_units > 0)
    return RunStatistics(
        courses_found=total,
        degree_plans_found=len(plans),
        control_number_coverage_pct=round(100.0 * with_control / total, 2) if total else 0.0,
        competency_unit_coverage_pct=round(100.0 * with_units / total, 2) if total else 0.0,
    )


def failed_result(
    source_file: str,
    issue: ParseIssue,
    parser_version: str = "unknown",
    format_identifier: str = "unknown",
    parsed_at: Optional[str] = None,
    source_period: Optional[str] = None,
) -> CatalogRunResult:
    """Empty, zero-statistics result for a source that could not be read or parsed in time."""
    return CatalogRunResult(
        source_file=source_file,
        source_period=source_period,
        parsed_at=parsed_at or datetime.now(timezone.utc).isoformat(),
        parser_version=parser_version,
        format_identifier=format_identifier,
        errors=[issue],
    )
