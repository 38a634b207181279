# catalog_ingest/extraction/patterns.py
"""
Pattern Library.

Every catalog format generation is described by a FormatDescriptor (what it
looks like, when it was published) and a PatternTable (the regex fragments
the parser runs against it). The parser never inlines a literal pattern: it
asks this module for the compiled table of the generation it was built for.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional, Pattern, Tuple

from ..models import FormatDescriptor

# Separators between "code - title - description" fields. A plain hyphen only
# counts when surrounded by whitespace so hyphenated titles survive.
SEPARATOR = r"(?:\s+-\s+|\s*[–—]\s*)"

# Anchors
ANCHOR_SCHOOL_OF = r"^[ \t]*(?P<college>(?:School|College) of [A-Z][^\n]{2,80}?)[ \t]*$"
ANCHOR_PREREQUISITES = r"Prerequisites?\s*:\s*(?P<prerequisites>[^\n.]+)"

# Course row patterns
PATTERN_COURSE_CODE = r"[A-Z]\d{3,4}(?:[A-Z](?![a-z]))?"
PATTERN_LEGACY_COURSE_CODE = r"[A-Z]\d{3}(?:[A-Z](?![a-z]))?"
PATTERN_CONTROL_NUMBER = r"[A-Z]{2,5}\s+\d{4}"
PATTERN_LEGACY_CONTROL_NUMBER = r"[A-Z]{2,5}\s+\d{3,4}"
PATTERN_COMPETENCY_UNITS = r"\b(?P<cu>\d{1,2})\s*(?:competency\s+units?|CUs?|credits?)\b"
PATTERN_DEGREE_TITLE = (
    r"^[ \t]*(?P<title>(?:Bachelor|Master|Doctor)\s+of\s+[A-Z][^\n]{2,120}?"
    r"|[A-Z][^\n]{2,100}?\s+Certificate)[ \t]*$"
)
PATTERN_TOTAL_CUS = (
    r"Total[^\n\d]{0,40}?(?:(?P<total>\d{1,3})\s*(?:CUs?|Competency Units)\b"
    r"|CUs?\s*:?\s*(?P<total_after>\d{1,3}))"
)

# Enhanced-format sections. Each body runs until the next known section heading.
SECTION_STANDALONE = (
    r"^[ \t]*Standalone\s+Courses?[ \t]*\n(?P<body>[\s\S]*?)"
    r"(?=\n[ \t]*(?:Certificate|Course\s+Descriptions|Program\s+Outcomes|©)|\Z)"
)
SECTION_CERTIFICATES = (
    r"^[ \t]*Certificate\s+Programs?[ \t]*\n(?P<body>[\s\S]*?)"
    r"(?=\n[ \t]*(?:Course\s+Descriptions|Standalone|Program\s+Outcomes|©)|\Z)"
)
SECTION_OUTCOMES = (
    r"^[ \t]*Program\s+Outcomes?[ \t]*\n(?P<body>[\s\S]*?)"
    r"(?=\n[ \t]*(?:Course\s+Descriptions|Certificate|Standalone|©)|\Z)"
)
PATTERN_STANDALONE_ROW = (
    r"(?P<code>{code})[ \t]*[-–][ \t]*(?P<name>[^$\n]+?)[ \t]*\$(?P<price>[\d,]+)"
    r"(?:[ \t]*\((?P<cu>\d+)[ \t]*CUs?\))?"
)
PATTERN_CERTIFICATE_ROW = (
    r"^[ \t]*(?P<name>[^$\n]+?)[ \t]+[-–][ \t]+(?P<description>[^$\n]+?)[ \t]*\$(?P<price>[\d,]+)"
    r"(?:[ \t]*\((?P<cu>\d+)[ \t]*CUs?\))?"
)
PATTERN_BUNDLE_PRICING = r"Bundle\s+pricing[^\n]*?\$(?P<min>[\d,]+)\s*[-–]\s*\$(?P<max>[\d,]+)"
PATTERN_BUNDLE_ACCESS = r"(?P<months>\d+)\s*months?\s+access"
PATTERN_OUTCOME_SCHOOL = r"^[ \t]*(?P<school>(?:School|College)\s+of\s+[A-Z][^\n:]*?)[ \t]*$"
PATTERN_OUTCOME_PROGRAM = r"^[ \t]*(?P<program>(?:Bachelor|Master|Doctor)\s+of\s+[^:\n]+):[ \t]*$"
PATTERN_OUTCOME_BULLET = r"[•·▪][ \t]*(?P<outcome>[^\n•·▪]+)"

# Content signatures that confirm a generation from a text sample
SIGNATURE_LEGACY = (
    r"(?<![A-Za-z])[A-Z]\d{3,4}[A-Z]?\s*\([A-Z]{2,4}\s+\d{3,5}\)"
    r"|(?<![A-Za-z])[A-Z]\d{3}[A-Z]?\s+[-–]\s+[A-Z]{2,5}\s+\d{3,4}\s+[-–]\s"
)
SIGNATURE_MODERN = r"CCN\s+Course\s+Number\s+Course\s+Description"
SIGNATURE_ENHANCED = r"Program\s+Outcomes|Standalone\s+Courses"

# Registered
ANCHORS = {
    "SCHOOL_OF": ANCHOR_SCHOOL_OF,
    "PREREQUISITES": ANCHOR_PREREQUISITES,
}

COURSE_PATTERNS = {
    "COURSE_CODE": PATTERN_COURSE_CODE,
    "LEGACY_COURSE_CODE": PATTERN_LEGACY_COURSE_CODE,
    "CONTROL_NUMBER": PATTERN_CONTROL_NUMBER,
    "LEGACY_CONTROL_NUMBER": PATTERN_LEGACY_CONTROL_NUMBER,
    "COMPETENCY_UNITS": PATTERN_COMPETENCY_UNITS,
    "DEGREE_TITLE": PATTERN_DEGREE_TITLE,
    "TOTAL_CUS": PATTERN_TOTAL_CUS,
}

SECTION_PATTERNS = {
    "STANDALONE": SECTION_STANDALONE,
    "CERTIFICATES": SECTION_CERTIFICATES,
    "OUTCOMES": SECTION_OUTCOMES,
}

CONTENT_SIGNATURES = {
    "legacy": SIGNATURE_LEGACY,
    "modern": SIGNATURE_MODERN,
    "enhanced": SIGNATURE_ENHANCED,
}

# Keywords that file a program outcome under a category
OUTCOME_CATEGORIES = [
    ("technical", ("technical", "programming", "software")),
    ("professional", ("professional", "communication", "leadership")),
    ("analytical", ("analytical", "analysis", "research")),
]

# Keyword fallback used when no "School of" heading precedes a degree title.
COLLEGE_KEYWORDS = [
    ("School of Business", ("business", "accounting", "management", "marketing", "finance")),
    ("School of Technology", ("information technology", "computer", "software", "cyber", "data", "network", "cloud")),
    ("Leavitt School of Health", ("nursing", "health", "healthcare")),
    ("School of Education", ("education", "teaching", "curriculum", "instructional")),
]

DEGREE_TYPES = {
    "bachelor": "bachelor",
    "master": "master",
    "doctor": "doctorate",
}


@dataclass(frozen=True)
class PatternTable:
    """Regex fragments for one format generation. Strings, not compiled patterns."""
    course_code: str
    control_number: str
    # "{control}" and "{code}" are substituted at compile time
    packed_row: str
    detailed: str
    listings: Tuple[str, ...]
    competency_units: Tuple[str, ...] = (PATTERN_COMPETENCY_UNITS,)
    degree_title: str = PATTERN_DEGREE_TITLE
    total_cus: str = PATTERN_TOTAL_CUS
    college_heading: str = ANCHOR_SCHOOL_OF
    prerequisites: str = ANCHOR_PREREQUISITES
    # Generations without these sections leave them unset
    standalone_section: Optional[str] = None
    certificate_section: Optional[str] = None
    outcomes_section: Optional[str] = None


PACKED_ROW = r"(?P<control>{control})\s*(?P<code>{code})(?P<name>[A-Z][^\d\n]*?)?\s*(?P<cu>\d)(?P<term>\d)(?!\d)"

DETAILED = (
    r"(?<![A-Za-z])(?P<code>{code})" + SEPARATOR +
    r"(?P<title>[^\n–—]{10,100}?)" + SEPARATOR +
    r"(?P<description>[^\n]{100,})"
)

LEGACY_DETAILED = (
    r"(?<![A-Za-z])(?P<code>{code})" + SEPARATOR +
    r"(?P<control>{control})" + SEPARATOR +
    r"(?P<title>[^\n–—]{10,100}?)" + SEPARATOR +
    r"(?P<description>[^\n]{100,})"
)

LISTING = (
    r"^[ \t]*•?[ \t]*(?P<code>{code})[ \t]*(?:-|–|—)[ \t]*"
    r"(?P<name>[^\n–—$]{3,120}?)(?:[ \t]+(?P<cu>\d{1,2})(?:[ \t]*CUs?)?)?[ \t]*$"
)

BULLET_LISTING = r"•[ \t]*(?P<name>[^\n()•]{3,120}?)[ \t]*\((?P<code>{code})\)"


LEGACY = FormatDescriptor(
    major_version=1,
    minor_version=0,
    patch_version=0,
    identifier="legacy",
    course_code_patterns=[PATTERN_LEGACY_COURSE_CODE],
    control_number_format_note="Department prefix and 3-4 digit number, embedded in course descriptions",
    degree_table_format_note="Degree plans list course codes with a packed CU/term column",
    text_notes=["Detailed entries read code - control number - title - description"],
    first_seen_period="2017-01",
    last_seen_period="2020-12",
)

MODERN = FormatDescriptor(
    major_version=2,
    minor_version=0,
    patch_version=0,
    identifier="modern",
    course_code_patterns=[PATTERN_COURSE_CODE],
    control_number_format_note="Department prefix and 4 digit number, printed in degree tables",
    degree_table_format_note="Structured rows: control number, code, title, packed CU/term digits",
    text_notes=["Detailed entries read code - title - description"],
    first_seen_period="2021-01",
    last_seen_period="2023-12",
)

ENHANCED = FormatDescriptor(
    major_version=2,
    minor_version=1,
    patch_version=0,
    identifier="enhanced",
    course_code_patterns=[PATTERN_COURSE_CODE],
    control_number_format_note="Department prefix and 4 digit number, printed in degree tables",
    degree_table_format_note="Structured rows plus bullet listings of the form '• Name (C123)'",
    text_notes=[
        "Detailed entries read code - title - description",
        "Bullet course listings",
        "Standalone courses with bundle pricing, certificate programs and program outcomes",
    ],
    first_seen_period="2024-01",
    last_seen_period=None,
)

STRATEGIES: List[Tuple[FormatDescriptor, PatternTable]] = [
    (LEGACY, PatternTable(
        course_code=PATTERN_LEGACY_COURSE_CODE,
        control_number=PATTERN_LEGACY_CONTROL_NUMBER,
        packed_row=PACKED_ROW,
        detailed=LEGACY_DETAILED,
        listings=(LISTING,),
    )),
    (MODERN, PatternTable(
        course_code=PATTERN_COURSE_CODE,
        control_number=PATTERN_CONTROL_NUMBER,
        packed_row=PACKED_ROW,
        detailed=DETAILED,
        listings=(LISTING,),
    )),
    (ENHANCED, PatternTable(
        course_code=PATTERN_COURSE_CODE,
        control_number=PATTERN_CONTROL_NUMBER,
        packed_row=PACKED_ROW,
        detailed=DETAILED,
        listings=(LISTING, BULLET_LISTING),
        standalone_section=SECTION_STANDALONE,
        certificate_section=SECTION_CERTIFICATES,
        outcomes_section=SECTION_OUTCOMES,
    )),
]


@dataclass(frozen=True)
class CompiledPatterns:
    code_token: Pattern
    packed_row: Pattern
    detailed: Pattern
    listings: Tuple[Pattern, ...]
    competency_units: Tuple[Pattern, ...]
    degree_title: Pattern
    total_cus: Pattern
    college_heading: Pattern
    prerequisites: Pattern
    standalone_section: Optional[Pattern] = None
    certificate_section: Optional[Pattern] = None
    outcomes_section: Optional[Pattern] = None
    standalone_row: Optional[Pattern] = None


@dataclass(frozen=True)
class SectionPatterns:
    """Row-level patterns shared by every generation that prints enhanced sections."""
    certificate_row: Pattern = re.compile(PATTERN_CERTIFICATE_ROW, re.MULTILINE)
    bundle_pricing: Pattern = re.compile(PATTERN_BUNDLE_PRICING, re.IGNORECASE)
    bundle_access: Pattern = re.compile(PATTERN_BUNDLE_ACCESS, re.IGNORECASE)
    outcome_school: Pattern = re.compile(PATTERN_OUTCOME_SCHOOL, re.MULTILINE)
    outcome_program: Pattern = re.compile(PATTERN_OUTCOME_PROGRAM, re.MULTILINE)
    outcome_bullet: Pattern = re.compile(PATTERN_OUTCOME_BULLET)


SECTION_ROWS = SectionPatterns()


def get_table(identifier: str) -> PatternTable:
    for descriptor, table in STRATEGIES:
        if descriptor.identifier == identifier:
            return table
    raise KeyError(f"No pattern table registered for '{identifier}'")


def code_alternation(table: PatternTable, override_codes: Tuple[str, ...]) -> str:
    """Course-code fragment that also recognises every override code verbatim."""
    literals = [re.escape(code) for code in sorted(override_codes, key=len, reverse=True)]
    return "(?:" + "|".join(literals + [table.course_code]) + ")"


@lru_cache(maxsize=None)
def compile_patterns(identifier: str, override_codes: Tuple[str, ...] = ()) -> CompiledPatterns:
    table = get_table(identifier)
    code = code_alternation(table, override_codes)

    def fill(template: str) -> str:
        return template.replace("{code}", code).replace("{control}", table.control_number)

    def optional(template: Optional[str]) -> Optional[Pattern]:
        return re.compile(template, re.MULTILINE) if template else None

    return CompiledPatterns(
        code_token=re.compile(r"(?<![A-Za-z])" + code + r"(?!\d)"),
        packed_row=re.compile(fill(table.packed_row)),
        detailed=re.compile(fill(table.detailed)),
        listings=tuple(re.compile(fill(p), re.MULTILINE) for p in table.listings),
        competency_units=tuple(re.compile(p, re.IGNORECASE) for p in table.competency_units),
        degree_title=re.compile(table.degree_title, re.MULTILINE),
        total_cus=re.compile(table.total_cus, re.IGNORECASE),
        college_heading=re.compile(table.college_heading, re.MULTILINE),
        prerequisites=re.compile(table.prerequisites, re.IGNORECASE),
        standalone_section=optional(table.standalone_section),
        certificate_section=optional(table.certificate_section),
        outcomes_section=optional(table.outcomes_section),
        standalone_row=re.compile(fill(PATTERN_STANDALONE_ROW)) if table.standalone_section else None,
    )


def degree_type_for(title: str) -> str:
    first = title.split()[0].lower() if title.split() else ""
    return DEGREE_TYPES.get(first, "certificate")


def college_for(title: str) -> str:
    lowered = title.lower()
    for college, keywords in COLLEGE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return college
    return "Unknown"


def descriptors() -> List[FormatDescriptor]:
    return [descriptor for descriptor, _ in STRATEGIES]


def registered_patterns() -> Dict[str, str]:
    return {**ANCHORS, **COURSE_PATTERNS, **SECTION_PATTERNS}


@lru_cache(maxsize=None)
def content_signature(identifier: str) -> Optional[Pattern]:
    """Pattern whose presence in a text sample confirms the generation, None if it has none."""
    signature = CONTENT_SIGNATURES.get(identifier)
    return re.compile(signature) if signature else None


def outcome_category(outcome: str) -> Optional[str]:
    lowered = outcome.lower()
    for category, keywords in OUTCOME_CATEGORIES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return None
