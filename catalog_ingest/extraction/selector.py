# catalog_ingest/extraction/selector.py
import logging
import re
from pathlib import Path
from typing import List, Optional, Tuple, Union

from ..models import FormatDescriptor
from .catalog_parser import CatalogParser
from .patterns import STRATEGIES, PatternTable, content_signature

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    r"jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?"
    r"|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?"
)
MONTHS = {
    name: f"{number:02d}"
    for number, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"), start=1)
}

YEAR = r"(?P<year>(?:19|20)\d{2})"

# Tried in order; the first match wins
PERIOD_PATTERNS = [
    re.compile(r"(?<!\d)" + YEAR + r"[-_](?P<month>0[1-9]|1[0-2])(?!\d)"),
    re.compile(r"(?<![a-z])(?P<month_name>" + MONTH_NAMES + r")[-_ ]?" + YEAR + r"(?!\d)", re.IGNORECASE),
    re.compile(r"(?<!\d)" + YEAR + r"[-_ ]?(?P<month_name>" + MONTH_NAMES + r")(?![a-z])", re.IGNORECASE),
    re.compile(r"(?<!\d)" + YEAR + r"(?P<month>0[1-9]|1[0-2])(?!\d)"),
    re.compile(r"(?<!\d)" + YEAR),
]
VALID_PERIOD = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def period_from_filename(name: Union[str, Path]) -> Optional[str]:
    """
    Read the publication period from a catalog file name.

    "catalog_2023_07.pdf" -> "2023-07", "catalog-january2025.pdf" -> "2025-01",
    "catalog_201907.pdf" -> "2019-07", "catalog-2019.pdf" -> "2019-01"
    """
    stem = Path(name).stem
    for pattern in PERIOD_PATTERNS:
        match = pattern.search(stem)
        if not match:
            continue
        groups = match.groupdict()
        if groups.get("month_name"):
            month = MONTHS[groups["month_name"][:3].lower()]
        else:
            month = groups.get("month") or "01"
        return f"{match['year']}-{month}"
    return None


def _ordered() -> List[Tuple[FormatDescriptor, PatternTable]]:
    return sorted(STRATEGIES, key=lambda s: (s[0].first_seen_period, s[0].last_seen_period or "9999-12"))


def verify_format(descriptor: FormatDescriptor, sample: str) -> bool:
    """True when the text sample carries the generation's content signature."""
    signature = content_signature(descriptor.identifier)
    return bool(signature and signature.search(sample))


def detect_from_content(sample: str) -> Optional[FormatDescriptor]:
    for descriptor, _ in _ordered():
        if verify_format(descriptor, sample):
            return descriptor
    return None


def _by_period(source_date: Optional[str]) -> Optional[FormatDescriptor]:
    ordered = _ordered()
    if source_date is None or not VALID_PERIOD.match(str(source_date)):
        return None

    for descriptor, _ in ordered:
        if descriptor.covers(source_date):
            return descriptor

    earliest = ordered[0][0]
    if source_date < earliest.first_seen_period:
        logger.info(f"Period {source_date} predates every known format; using {earliest.parser_version}")
        return earliest

    # Gap between ranges: the most recent generation that started before it
    candidates = [d for d, _ in ordered if d.first_seen_period <= source_date]
    chosen = candidates[-1]
    logger.warning(f"No format covers {source_date}; using {chosen.parser_version}")
    return chosen


def select_descriptor(source_date: Optional[str], sample: Optional[str] = None) -> FormatDescriptor:
    """
    Pick the format generation for a source.

    The period decides first. With a text sample the choice is checked against
    the generation's content signature; when that fails, the first generation
    whose signature is present wins instead. Without a period or a matching
    signature the period choice stands, or the latest generation.
    """
    by_period = _by_period(source_date)

    if sample:
        if by_period is not None and verify_format(by_period, sample):
            return by_period
        detected = detect_from_content(sample)
        if detected is not None:
            if by_period is not None and detected is not by_period:
                logger.warning(
                    f"Content of period {source_date} reads as {detected.parser_version}, "
                    f"not {by_period.parser_version}"
                )
            return detected

    if by_period is not None:
        return by_period

    latest = _ordered()[-1][0]
    logger.warning(f"Unreadable source period {source_date!r}; falling back to {latest.parser_version}")
    return latest


def select_strategy(source_date: Optional[str], sample: Optional[str] = None) -> CatalogParser:
    """Pick the parser for a source published in `source_date` (YYYY-MM). Never fails."""
    descriptor = select_descriptor(source_date, sample)
    table = next(t for d, t in STRATEGIES if d is descriptor)
    return CatalogParser(descriptor, table)


def select_for_source(path: Union[str, Path], sample: Optional[str] = None) -> Tuple[Optional[str], CatalogParser]:
    period = period_from_filename(path)
    return period, select_strategy(period, sample)
