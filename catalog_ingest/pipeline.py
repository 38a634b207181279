# catalog_ingest/pipeline.py
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from .config import Settings
from .extraction.aggregator import CanonicalTables, CatalogAggregator
from .extraction.catalog_parser import failed_result
from .extraction.overrides import OverrideTable, load_overrides
from .extraction.selector import select_for_source
from .extraction.sources import load_source_text, resolve_sources
from .models import CatalogRunResult, ParseIssue
from .monitoring.health import HealthAnalyzer, HealthMonitor, HealthReport, HealthThresholds, Notifier
from .monitoring.history import HealthHistory
from .monitoring.report import save_report
from .sync.documents import COURSES, DEGREE_PLANS, build_sync_documents
from .sync.reconciler import Reconciler, SyncReport
from .sync.storage import DocumentStore
from .utils.error_handler import ParseTimeoutError, SourceReadError, describe_error
from .utils.logger import setup_logger

logger = setup_logger("pipeline")

POLL_SECONDS = 1.0

# Collections whose records come only from successfully parsed sources
SWEPT_FROM_SOURCES = (COURSES, DEGREE_PLANS)

SourceList = Union[str, Path, Iterable[Union[str, Path]], None]


@dataclass
class BatchResult:
    runs: List[CatalogRunResult] = field(default_factory=list)
    reports: Dict[str, HealthReport] = field(default_factory=dict)
    tables: CanonicalTables = field(default_factory=CanonicalTables)
    sync_reports: Dict[str, SyncReport] = field(default_factory=dict)
    failures: List[Dict] = field(default_factory=list)

    def summary(self) -> Dict:
        return {
            "sources": len(self.runs),
            "succeeded": len(self.runs) - len(self.failures),
            "failed": len(self.failures),
            "courses": len(self.tables.courses),
            "degree_programs": len(self.tables.degree_programs),
            "conflicts": len(self.tables.conflicts),
            "alerts": sum(len(r.alerts) for r in self.reports.values()),
            "sync": {
                name: {
                    "updated": report.updated,
                    "skipped": report.skipped,
                    "deleted": report.deleted,
                    "failed": len(report.failed),
                    "deletes_suppressed": report.deletes_suppressed,
                }
                for name, report in self.sync_reports.items()
            },
            "failures": self.failures,
        }


def _issue(error: Exception, location: Optional[str] = None) -> ParseIssue:
    return ParseIssue(kind=error.__class__.__name__, message=str(error), location=location)


class CatalogPipeline:
    """
    Batch runner: discover sources, parse them in parallel, observe health,
    aggregate canonical tables and, when a store is configured, sync.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[DocumentStore] = None,
        notifier: Optional[Notifier] = None,
        monitor: Optional[HealthMonitor] = None,
    ):
        self.settings = settings or Settings()
        self.store = store
        self.monitor = monitor or HealthMonitor(
            HealthAnalyzer(HealthThresholds.from_settings(self.settings)),
            HealthHistory(self.settings.HEALTH_DIR / "history"),
            notifier=notifier,
        )

    def run(
        self,
        sources: SourceList = None,
        progress: Optional[Callable[[float], None]] = None,
    ) -> BatchResult:
        """
        Process one batch of catalog sources.

        Args:
            sources: A directory, a file, or an explicit list of files;
                SOURCE_DIR when None
            progress: Called with a percentage after each source is parsed

        Returns:
            BatchResult: Runs, health reports, canonical tables and sync reports

        Raises:
            ConfigurationError: Unusable override table
            StoreConnectionError: Configured store unreachable
        """
        # Fatal conditions are checked before any work starts
        overrides = load_overrides(self.settings.OVERRIDES_PATH)
        if self.store is not None:
            self.store.check_connection()

        paths = resolve_sources(sources if sources is not None else self.settings.SOURCE_DIR,
                                self.settings.SOURCE_EXTENSION)
        logger.info(f"Starting batch of {len(paths)} sources")

        parsed_at = datetime.now(timezone.utc).isoformat()
        batch = BatchResult()

        for index, (result, elapsed_ms, error) in enumerate(self._parse_all(paths, overrides, parsed_at), 1):
            batch.runs.append(result)
            if result.failed:
                failure = {
                    "source": result.source_file,
                    "errors": [e.model_dump(mode="json") for e in result.errors],
                }
                if error is not None:
                    failure["error"] = error
                batch.failures.append(failure)

            report = self.monitor.observe(result, elapsed_ms)
            if report is not None:
                batch.reports[result.source_file] = report
                save_report(report, self.settings.HEALTH_DIR / "reports")

            if progress:
                progress(index / len(paths) * 100)

        batch.tables = CatalogAggregator().aggregate(batch.runs)
        batch.tables.write(self.settings.OUTPUT_DIR)

        if self.store is not None:
            batch.sync_reports = self.sync(batch)

        logger.info({"event": "batch_completed", **{k: v for k, v in batch.summary().items() if k != "failures"}})
        return batch

    def sync(self, batch: BatchResult) -> Dict[str, SyncReport]:
        """
        Reconcile every collection with the store.

        A source that failed this batch contributes nothing to the canonical
        tables, so its courses and degree plans would look removed. While any
        source failed, those collections are written but not swept.
        """
        reconciler = Reconciler.from_settings(self.store, self.settings)
        collections = build_sync_documents(batch.tables, batch.runs, batch.reports)

        failed_sources = [run.source_file for run in batch.runs if run.failed]
        if failed_sources:
            logger.warning(f"Keeping stored records of failed sources: {', '.join(failed_sources)}")

        return {
            name: reconciler.reconcile(
                name, documents, delete_missing=not failed_sources or name not in SWEPT_FROM_SOURCES)
            for name, documents in collections.items()
        }

    def _parse_all(
        self,
        paths: List[Path],
        overrides: OverrideTable,
        parsed_at: str,
    ) -> Iterable[Tuple[CatalogRunResult, float, Optional[Dict]]]:
        """Yield (result, elapsed ms, error description or None) per path, in order."""
        started: Dict[str, float] = {}
        pool = ThreadPoolExecutor(max_workers=max(1, self.settings.MAX_PARSE_WORKERS))
        try:
            futures = [(path, pool.submit(self._parse_source, path, overrides, parsed_at, started)) for path in paths]
            for path, future in futures:
                error = None
                try:
                    result, elapsed_ms = self._wait_for(path, future, started)
                except ParseTimeoutError as e:
                    future.cancel()
                    error = describe_error(e)
                    result, elapsed_ms = self._failed(path, e, parsed_at), self.settings.PARSE_TIMEOUT_SECONDS * 1000
                except Exception as e:
                    error = describe_error(e)
                    result, elapsed_ms = self._failed(path, e, parsed_at), 0.0
                yield result, elapsed_ms, error
        finally:
            # A timed-out parse cannot be interrupted; do not wait for it
            pool.shutdown(wait=False, cancel_futures=True)

    def _wait_for(self, path: Path, future: Future, started: Dict[str, float]) -> Tuple[CatalogRunResult, float]:
        limit = self.settings.PARSE_TIMEOUT_SECONDS
        while True:
            began = started.get(str(path))
            remaining = limit if began is None else limit - (time.monotonic() - began)
            if remaining <= 0:
                raise ParseTimeoutError(f"Parsing {path.name} exceeded {limit:g}s")
            try:
                return future.result(timeout=min(remaining, POLL_SECONDS))
            except FuturesTimeoutError:
                continue

    def _parse_source(
        self,
        path: Path,
        overrides: OverrideTable,
        parsed_at: str,
        started: Dict[str, float],
    ) -> Tuple[CatalogRunResult, float]:
        started[str(path)] = time.monotonic()

        try:
            source = load_source_text(path)
        except SourceReadError as e:
            logger.error(f"Error reading {path}: {str(e)}")
            result = self._failed(path, e, parsed_at)
        else:
            # The file name proposes a format; the first pages confirm it
            period, parser = select_for_source(path, source.sample(self.settings.FORMAT_SAMPLE_PAGES))
            logger.info(f"Processing {path.name} (period {period or 'unknown'}) with {parser.parser_version}")
            result = parser.parse(
                source.text,
                source.page_count,
                path.name,
                overrides=overrides,
                parsed_at=parsed_at,
                source_period=period,
            )

        elapsed_ms = (time.monotonic() - started[str(path)]) * 1000
        return result, elapsed_ms

    def _failed(self, path: Path, error: Exception, parsed_at: str) -> CatalogRunResult:
        period, parser = select_for_source(path)
        return failed_result(path.name, _issue(error), parser.parser_version,
                             parser.descriptor.identifier, parsed_at, period)

    def process_batch(self, task_id: str, sources: SourceList, processing_tasks: dict) -> None:
        """
        Run a batch and record its status in `processing_tasks[task_id]`
        """
        try:
            processing_tasks[task_id] = {"status": "processing", "progress": 0}
            logger.info(f"Starting processing task {task_id}")

            def update(percent: float):
                processing_tasks[task_id]["progress"] = percent

            batch = self.run(sources, progress=update)

            processing_tasks[task_id].update({
                "status": "completed",
                "progress": 100,
                "result": batch.summary(),
            })
        except Exception as e:
            logger.error(f"Task {task_id} failed: {str(e)}")
            processing_tasks[task_id].update({
                "status": "failed",
                "error": describe_error(e),
            })
