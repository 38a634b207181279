# catalog_ingest/extraction/aggregator.py
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

import pandas as pd
from pydantic import BaseModel

from ..models import CatalogRunResult, CourseRecord, DegreePlanRecord, Record

logger = logging.getLogger(__name__)

COURSE_FIELDS = (
    "name",
    "control_number",
    "description",
    "competency_units",
    "prerequisites",
    "level",
    "academic_area",
)
PROGRAM_FIELDS = (
    "degree_name",
    "college",
    "degree_type",
    "total_competency_units",
    "courses",
)


class CanonicalCourse(CourseRecord):
    catalog_versions: List[str]
    last_updated: str


class CanonicalDegreeProgram(DegreePlanRecord):
    catalog_versions: List[str]
    last_updated: str


class FieldConflict(Record):
    record_type: str
    key: str
    field: str
    values: Dict[str, Any]
    resolved_value: Any
    resolved_source: str


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == 0 or value == []


def _label(run: CatalogRunResult) -> str:
    return run.source_period or run.source_file


@dataclass
class CanonicalTables:
    """De-duplicated, cross-version course and degree-program tables."""
    courses: Dict[str, CanonicalCourse] = field(default_factory=dict)
    degree_programs: Dict[str, CanonicalDegreeProgram] = field(default_factory=dict)
    conflicts: List[FieldConflict] = field(default_factory=list)

    def courses_json(self) -> Dict[str, Dict]:
        return {code: c.model_dump(by_alias=True, mode="json") for code, c in self.courses.items()}

    def degree_programs_json(self) -> Dict[str, Dict]:
        return {key: p.model_dump(by_alias=True, mode="json") for key, p in self.degree_programs.items()}

    def conflicts_json(self) -> List[Dict]:
        return [c.model_dump(by_alias=True, mode="json") for c in self.conflicts]

    def write(self, output_dir: Path) -> Dict[str, Path]:
        """
        Write the canonical tables as JSON plus flat CSV exports.

        Args:
            output_dir: Directory receiving courses.json, degree-programs.json,
                conflicts.json, courses.csv and degree-programs.csv

        Returns:
            Dict mapping each artifact name to its path
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        paths = {
            "courses": output_dir / "courses.json",
            "degree_programs": output_dir / "degree-programs.json",
            "conflicts": output_dir / "conflicts.json",
            "courses_csv": output_dir / "courses.csv",
            "degree_programs_csv": output_dir / "degree-programs.csv",
        }

        for name, payload in (
            ("courses", self.courses_json()),
            ("degree_programs", self.degree_programs_json()),
            ("conflicts", self.conflicts_json()),
        ):
            with open(paths[name], "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)

        self._courses_frame().to_csv(paths["courses_csv"], index=False)
        self._programs_frame().to_csv(paths["degree_programs_csv"], index=False)

        logger.info(f"Wrote {len(self.courses)} courses, {len(self.degree_programs)} degree programs "
                    f"and {len(self.conflicts)} conflicts to {output_dir}")
        return paths

    def _courses_frame(self) -> pd.DataFrame:
        rows = []
        for course in self.courses_json().values():
            course["prerequisites"] = "; ".join(course["prerequisites"])
            course["catalogVersions"] = "; ".join(course["catalogVersions"])
            rows.append(course)
        return pd.json_normalize(rows) if rows else pd.DataFrame()

    def _programs_frame(self) -> pd.DataFrame:
        programs = list(self.degree_programs_json().values())
        if not programs:
            return pd.DataFrame()
        return pd.json_normalize(
            programs,
            record_path="courses",
            meta=["degreeId", "degreeName", "college", "degreeType", "totalCompetencyUnits"],
        )

    def get_statistics(self) -> Dict:
        stats = {
            "total_courses": len(self.courses),
            "total_degree_programs": len(self.degree_programs),
            "total_conflicts": len(self.conflicts),
        }
        if self.courses:
            df = self._courses_frame()
            stats.update({
                "avg_competency_units": round(float(df["competencyUnits"].mean()), 2),
                "courses_with_control_number": int(df["controlNumber"].notna().sum()),
            })
        return stats


class CatalogAggregator:
    """
    Merge parse runs from many catalogs into canonical tables.

    Runs are applied oldest first. For every field the most recent non-empty
    value wins; whenever sources disagree the disagreement is kept as a
    FieldConflict instead of being overwritten silently.
    """

    def __init__(self):
        self.runs: List[CatalogRunResult] = []

    @staticmethod
    def _accepts(run: CatalogRunResult) -> bool:
        if run.failed or (not run.courses and not run.degree_plans):
            logger.warning(f"Skipping {run.source_file}: no records to aggregate")
            return False
        return True

    def add(self, run: CatalogRunResult) -> None:
        if self._accepts(run):
            self.runs.append(run)

    def aggregate(self, runs: Optional[Iterable[CatalogRunResult]] = None) -> CanonicalTables:
        """Merge the added runs plus `runs`. Does not change what has been added."""
        merged = self.runs + [run for run in runs or [] if self._accepts(run)]

        ordered = sorted(merged, key=lambda r: (r.source_period or "", r.source_file))
        conflicts: List[FieldConflict] = []

        courses = self._merge(
            "course",
            [(run, run.courses) for run in ordered],
            COURSE_FIELDS,
            CanonicalCourse,
            conflicts,
        )
        programs = self._merge(
            "degree_program",
            [(run, run.degree_plans) for run in ordered],
            PROGRAM_FIELDS,
            CanonicalDegreeProgram,
            conflicts,
        )

        tables = CanonicalTables(courses=courses, degree_programs=programs, conflicts=conflicts)
        self._log_statistics(tables, len(ordered))
        return tables

    def _merge(
        self,
        record_type: str,
        sources: List[Tuple[CatalogRunResult, Dict[str, Record]]],
        fields: Tuple[str, ...],
        model: Type[Record],
        conflicts: List[FieldConflict],
    ) -> Dict[str, Record]:
        history: Dict[str, List[Tuple[CatalogRunResult, Record]]] = {}
        for run, records in sources:
            for key, record in records.items():
                history.setdefault(key, []).append((run, record))

        merged = {}
        for key in sorted(history):
            entries = history[key]
            latest_run, latest_record = entries[-1]
            data = latest_record.model_dump()

            for name in fields:
                values: Dict[str, Any] = {}
                resolved_source = None
                for run, record in entries:
                    value = _plain(getattr(record, name))
                    if _is_empty(value):
                        continue
                    values[run.source_file] = value
                    data[name] = value
                    resolved_source = run.source_file

                distinct: List[Any] = []
                for value in values.values():
                    if value not in distinct:
                        distinct.append(value)
                if len(distinct) > 1:
                    conflicts.append(FieldConflict(
                        record_type=record_type,
                        key=key,
                        field=name,
                        values=values,
                        resolved_value=data[name],
                        resolved_source=resolved_source,
                    ))

            versions: List[str] = []
            for run, _ in entries:
                if _label(run) not in versions:
                    versions.append(_label(run))
            data["catalog_versions"] = versions
            data["last_updated"] = _label(latest_run)
            merged[key] = model.model_validate(data)

        return merged

    def _log_statistics(self, tables: CanonicalTables, run_count: int) -> None:
        logger.info("Aggregation Statistics:")
        logger.info(f"runs: {run_count}")
        for key, value in tables.get_statistics().items():
            logger.info(f"{key}: {value}")
        if tables.conflicts:
            logger.warning(f"{len(tables.conflicts)} field conflicts recorded across catalog versions")
