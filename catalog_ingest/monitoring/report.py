# catalog_ingest/monitoring/report.py
import json
from pathlib import Path
from typing import Dict

from .health import HealthReport


def render_markdown(report: HealthReport) -> str:
    """Human-readable summary of one health report."""
    snapshot = report.snapshot
    m = snapshot.metrics

    warnings = "\n".join(f"- {w}" for w in snapshot.warnings) or "None"
    trends = "\n".join(
        f"- {t.label}: {t.trend} ({t.change_percent:+.1f}% change)" for t in report.trends
    ) or "No history available"
    alerts = "\n".join(f"- [{a.severity}] {a.message}" for a in report.alerts) or "None"

    return f"""# Parser Health Report
Source: {snapshot.source_id} ({snapshot.source_file})
Captured: {snapshot.captured_at}
Parser: {snapshot.parser_version}
Status: {report.status}

## Metrics Summary
- Courses Found: {m.courses_found}
- Degree Plans Found: {m.degree_plans_found}
- Control Number Coverage: {m.control_number_coverage}%
- Competency Unit Coverage: {m.competency_unit_coverage}%
- Description Coverage: {m.description_coverage}%
- Avg Description Length: {m.avg_description_length} chars
- Short Descriptions: {m.short_descriptions}
- Missing Degree Plan Courses: {m.missing_from_degree_plans}
- Pages: {m.pdf_pages} ({m.courses_per_page} courses/page)
- Parse Time: {m.parse_time_ms / 1000:.1f}s

## Warnings ({len(snapshot.warnings)})
{warnings}

## Trends
{trends}

## Alerts ({len(report.alerts)})
{alerts}
"""


def save_report(report: HealthReport, directory: Path) -> Dict[str, Path]:
    """Write `<source_id>.json` and `<source_id>.md` for the latest report of a source."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    source_id = report.snapshot.source_id

    paths = {
        "json": directory / f"{source_id}.json",
        "markdown": directory / f"{source_id}.md",
    }
    paths["json"].write_text(json.dumps(report.model_dump(by_alias=True, mode="json"), indent=2), encoding="utf-8")
    paths["markdown"].write_text(render_markdown(report), encoding="utf-8")
    return paths
