# catalog_ingest/monitoring/health.py
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

import psutil

from ..models import CatalogRunResult, HealthMetrics, HealthSnapshot, Record
from .history import HealthHistory

logger = logging.getLogger(__name__)

SHORT_DESCRIPTION_CHARS = 50
STABLE_CHANGE_PCT = 1.0
DEGRADING_ALERT_PCT = 5.0
FORMAT_CHANGE_RATIO = 0.1
FORMAT_CHANGE_WINDOW = 3


class SystemStatus:
    """System status constants"""
    OK = "OK"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


STATUS_RANK = {SystemStatus.OK: 0, SystemStatus.WARNING: 1, SystemStatus.CRITICAL: 2}


@dataclass(frozen=True)
class TrendMetric:
    key: str
    label: str
    # Rising values are bad (counts of problems, elapsed time)
    inverted: bool = False
    alert_on_trend: bool = True


TREND_METRICS = [
    TrendMetric("courses_found", "Total Courses"),
    TrendMetric("control_number_coverage", "Control Number Coverage"),
    TrendMetric("competency_unit_coverage", "Competency Unit Coverage"),
    TrendMetric("description_coverage", "Description Coverage"),
    TrendMetric("avg_description_length", "Avg Description Length"),
    TrendMetric("short_descriptions", "Short Descriptions", inverted=True),
    TrendMetric("missing_from_degree_plans", "Missing Degree Plan Courses", inverted=True),
    TrendMetric("parse_time_ms", "Parse Time", inverted=True, alert_on_trend=False),
]


@dataclass(frozen=True)
class HealthThresholds:
    control_number_coverage: float = 85.0
    description_coverage: float = 90.0
    avg_description_length: float = 100.0
    parse_time_ms: float = 30000.0
    missing_plan_courses: int = 10

    @classmethod
    def from_settings(cls, settings) -> "HealthThresholds":
        return cls(
            control_number_coverage=settings.ALERT_CONTROL_NUMBER_COVERAGE,
            description_coverage=settings.ALERT_DESCRIPTION_COVERAGE,
            avg_description_length=settings.ALERT_AVG_DESCRIPTION_LENGTH,
            parse_time_ms=settings.ALERT_PARSE_TIME_MS,
            missing_plan_courses=settings.ALERT_MISSING_PLAN_COURSES,
        )


class Trend(Record):
    metric: str
    label: str
    trend: str
    current_value: float
    previous_value: float
    change_percent: float


class Alert(Record):
    severity: str
    kind: str
    message: str
    metric: Optional[str] = None


class HealthReport(Record):
    snapshot: HealthSnapshot
    trends: List[Trend]
    alerts: List[Alert]
    status: str


def _pct(part: int, whole: int) -> float:
    return round(100.0 * part / whole, 2) if whole else 0.0


def change_percent(current: float, previous: float) -> float:
    if previous == 0:
        if current == previous:
            return 0.0
        return 100.0 if current > previous else -100.0
    return round((current - previous) / abs(previous) * 100.0, 2)


class HealthAnalyzer:
    """Scores one parse run and compares it with earlier runs of the same source."""

    def __init__(self, thresholds: Optional[HealthThresholds] = None):
        self.thresholds = thresholds or HealthThresholds()

    def analyze(
        self,
        result: CatalogRunResult,
        elapsed_ms: float,
        source_id: Optional[str] = None,
        captured_at: Optional[str] = None,
    ) -> HealthSnapshot:
        courses = list(result.courses.values())
        total = len(courses)
        descriptions = [len(c.description) for c in courses if c.description]

        plan_codes = set()
        for plan in list(result.degree_plans.values()) + list(result.duplicate_degree_plans):
            plan_codes.update(plan.course_codes())
        missing = sorted(code for code in plan_codes if code not in result.courses)

        with_control = sum(1 for c in courses if c.control_number)
        with_units = sum(1 for c in courses if c.competency_units > 0)

        metrics = HealthMetrics(
            courses_found=total,
            degree_plans_found=len(result.degree_plans),
            courses_with_control_number=with_control,
            courses_with_description=len(descriptions),
            courses_with_competency_units=with_units,
            control_number_coverage=_pct(with_control, total),
            competency_unit_coverage=_pct(with_units, total),
            description_coverage=_pct(len(descriptions), total),
            avg_description_length=round(sum(descriptions) / len(descriptions), 2) if descriptions else 0.0,
            short_descriptions=sum(1 for length in descriptions if length < SHORT_DESCRIPTION_CHARS),
            missing_from_degree_plans=len(missing),
            parse_time_ms=round(float(elapsed_ms), 2),
            pdf_pages=result.page_count,
            courses_per_page=round(total / result.page_count, 2) if result.page_count else 0.0,
            memory_mb=round(psutil.Process().memory_info().rss / (1024 * 1024), 2),
        )

        warnings = [w.message for w in result.warnings]
        if missing:
            warnings.append(f"{len(missing)} degree plan courses missing from course map: {', '.join(missing[:10])}")

        return HealthSnapshot(
            source_id=source_id or Path(result.source_file).stem,
            source_file=result.source_file,
            captured_at=captured_at or datetime.now(timezone.utc).isoformat(),
            parser_version=result.parser_version,
            success=total > 0 and not result.failed,
            metrics=metrics,
            warnings=warnings,
            errors=[e.message for e in result.errors],
        )

    def detect_trends(self, current: HealthSnapshot, history: List[HealthSnapshot]) -> List[Trend]:
        """Compare against the most recent prior snapshot. No history, no trends."""
        if not history:
            return []
        previous = history[-1]

        trends = []
        for metric in TREND_METRICS:
            now = float(getattr(current.metrics, metric.key))
            before = float(getattr(previous.metrics, metric.key))
            change = change_percent(now, before)

            if abs(change) < STABLE_CHANGE_PCT:
                direction = "stable"
            elif (change > 0) != metric.inverted:
                direction = "improving"
            else:
                direction = "degrading"

            trends.append(Trend(
                metric=metric.key,
                label=metric.label,
                trend=direction,
                current_value=now,
                previous_value=before,
                change_percent=change,
            ))
        return trends

    def check_alerts(
        self,
        current: HealthSnapshot,
        history: List[HealthSnapshot],
        trends: Optional[List[Trend]] = None,
    ) -> List[Alert]:
        alerts = self._threshold_alerts(current)

        if trends is None:
            trends = self.detect_trends(current, history)
        alert_keys = {m.key for m in TREND_METRICS if m.alert_on_trend}
        for trend in trends:
            if trend.metric in alert_keys and trend.trend == "degrading" and abs(trend.change_percent) > DEGRADING_ALERT_PCT:
                alerts.append(Alert(
                    severity=SystemStatus.WARNING,
                    kind="trend",
                    metric=trend.metric,
                    message=f"{trend.label} degrading: {trend.change_percent:+.1f}% "
                            f"({trend.previous_value:g} -> {trend.current_value:g})",
                ))

        format_alert = self._format_change_alert(current, history)
        if format_alert:
            alerts.append(format_alert)
        return alerts

    def _threshold_alerts(self, current: HealthSnapshot) -> List[Alert]:
        m = current.metrics
        t = self.thresholds

        if m.courses_found == 0:
            return [Alert(
                severity=SystemStatus.CRITICAL,
                kind="threshold",
                metric="courses_found",
                message="No courses extracted from source",
            )]

        alerts = []
        checks = [
            ("control_number_coverage", m.control_number_coverage < t.control_number_coverage,
             f"Control number coverage low: {m.control_number_coverage}% (floor {t.control_number_coverage}%)"),
            ("description_coverage", m.description_coverage < t.description_coverage,
             f"Description coverage low: {m.description_coverage}% (floor {t.description_coverage}%)"),
            ("avg_description_length", m.avg_description_length < t.avg_description_length,
             f"Average description length low: {m.avg_description_length} chars"),
            ("parse_time_ms", m.parse_time_ms > t.parse_time_ms,
             f"Parsing took {m.parse_time_ms / 1000:.1f}s"),
            ("missing_from_degree_plans", m.missing_from_degree_plans > t.missing_plan_courses,
             f"{m.missing_from_degree_plans} degree plan courses missing from course map"),
        ]
        for metric, failed, message in checks:
            if failed:
                alerts.append(Alert(severity=SystemStatus.WARNING, kind="threshold", metric=metric, message=message))
        return alerts

    def _format_change_alert(self, current: HealthSnapshot, history: List[HealthSnapshot]) -> Optional[Alert]:
        if len(history) < FORMAT_CHANGE_WINDOW:
            return None
        recent = history[-FORMAT_CHANGE_WINDOW:]
        average = sum(s.metrics.courses_found for s in recent) / FORMAT_CHANGE_WINDOW
        found = current.metrics.courses_found

        if average == 0:
            deviated = found > 0
        else:
            deviated = abs(found - average) / average > FORMAT_CHANGE_RATIO
        if not deviated:
            return None
        return Alert(
            severity=SystemStatus.WARNING,
            kind="format_change",
            metric="courses_found",
            message=f"Course count {found} deviates from recent average {average:.1f}: possible format change",
        )


def overall_status(alerts: List[Alert]) -> str:
    status = SystemStatus.OK
    for alert in alerts:
        if STATUS_RANK[alert.severity] > STATUS_RANK[status]:
            status = alert.severity
    return status


Notifier = Callable[[HealthReport], None]


class HealthMonitor:
    """
    Observability sink for parse runs.

    Records a snapshot per run, computes trends and alerts against that
    source's history and hands alerting reports to an optional notifier.
    Failures are logged and never reach the pipeline.
    """

    def __init__(self, analyzer: HealthAnalyzer, history: HealthHistory, notifier: Optional[Notifier] = None):
        self.analyzer = analyzer
        self.history = history
        self.notifier = notifier

    def observe(
        self,
        result: CatalogRunResult,
        elapsed_ms: float,
        source_id: Optional[str] = None,
    ) -> Optional[HealthReport]:
        try:
            snapshot = self.analyzer.analyze(result, elapsed_ms, source_id=source_id)
            prior = self.history.record(snapshot)
            trends = self.analyzer.detect_trends(snapshot, prior)
            alerts = self.analyzer.check_alerts(snapshot, prior, trends)
            report = HealthReport(
                snapshot=snapshot,
                trends=trends,
                alerts=alerts,
                status=overall_status(alerts),
            )
        except Exception as e:
            logger.error(f"Health observation failed for {result.source_file}: {str(e)}", exc_info=True)
            return None

        logger.info({
            "event": "health_observation",
            "source_id": snapshot.source_id,
            "status": report.status,
            "courses_found": snapshot.metrics.courses_found,
            "alerts": [a.message for a in alerts],
        })

        if alerts and self.notifier:
            try:
                self.notifier(report)
            except Exception as e:
                logger.error(f"Alert notification failed for {snapshot.source_id}: {str(e)}", exc_info=True)
        return report

    def latest_report(self, source_id: str) -> Optional[HealthReport]:
        """Rebuild the report of the most recent snapshot from history alone."""
        snapshots = self.history.read(source_id)
        if not snapshots:
            return None
        current, prior = snapshots[-1], snapshots[:-1]
        trends = self.analyzer.detect_trends(current, prior)
        alerts = self.analyzer.check_alerts(current, prior, trends)
        return HealthReport(snapshot=current, trends=trends, alerts=alerts, status=overall_status(alerts))


def log_notifier(report: HealthReport) -> None:
    for alert in report.alerts:
        logger.warning(f"[{alert.severity}] {report.snapshot.source_id}: {alert.message}")
