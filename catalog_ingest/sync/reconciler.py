# catalog_ingest/sync/reconciler.py
import logging
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Tuple

from pydantic import Field

from ..models import Record, SyncableDocument
from .storage import DocumentStore

logger = logging.getLogger(__name__)

WRITE = "write"
DELETE = "delete"


class FailedItem(Record):
    document_id: str
    operation: str
    error: str
    attempts: int


class SyncReport(Record):
    collection: str
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    failed: List[FailedItem] = Field(default_factory=list)
    # Set when the delete sweep was skipped on purpose
    deletes_suppressed: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class StagedOperation:
    operation: str
    document_id: str
    document: Optional[SyncableDocument] = None


class RetryPolicy:
    """Bounded retries with exponential backoff: backoff, 2*backoff, 4*backoff, ..."""

    def __init__(self, max_retries: int = 3, backoff_seconds: float = 0.5, sleep: Callable[[float], None] = time.sleep):
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep

    def run(self, action: Callable[[], object]) -> Tuple[object, int]:
        """Run `action`; return (result, attempts). Re-raises the last error once retries are spent."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return action(), attempt
            except Exception as e:
                if attempt > self.max_retries:
                    e.attempts = attempt
                    raise
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.warning(f"Attempt {attempt} failed ({e}); retrying in {delay:.2f}s")
                self.sleep(delay)


class BatchWriter:
    """Executes staged writes and deletes in batches through a bounded pool."""

    def __init__(self, store: DocumentStore, pool: ThreadPoolExecutor, retry: RetryPolicy, batch_size: int = 100):
        self.store = store
        self.pool = pool
        self.retry = retry
        self.batch_size = max(1, batch_size)

    def execute(
        self,
        collection: str,
        operations: List[StagedOperation],
        synced_at: str,
    ) -> Tuple[List[StagedOperation], List[FailedItem]]:
        succeeded: List[StagedOperation] = []
        failed: List[FailedItem] = []

        for start in range(0, len(operations), self.batch_size):
            batch = operations[start:start + self.batch_size]
            outcomes = self.pool.map(lambda op: self._apply(collection, op, synced_at), batch)
            for op, failure in zip(batch, outcomes):
                if failure is None:
                    succeeded.append(op)
                else:
                    failed.append(failure)
            logger.debug(f"{collection}: batch of {len(batch)} operations applied")

        return succeeded, failed

    def _apply(self, collection: str, op: StagedOperation, synced_at: str) -> Optional[FailedItem]:
        if op.operation == WRITE:
            def action():
                return self.store.set(collection, op.document_id, op.document.payload, op.document.content_hash, synced_at)
        else:
            def action():
                return self.store.delete(collection, op.document_id)

        try:
            self.retry.run(action)
            return None
        except Exception as e:
            attempts = getattr(e, "attempts", self.retry.max_retries + 1)
            logger.error(f"{collection}/{op.document_id}: {op.operation} failed after {attempts} attempts: {str(e)}")
            return FailedItem(
                document_id=op.document_id,
                operation=op.operation,
                error=f"{e.__class__.__name__}: {e}",
                attempts=attempts,
            )


class Reconciler:
    """
    Make a store collection match a set of local documents.

    Documents whose content hash matches the stored hash are skipped, new or
    changed ones are written, and stored documents missing from the local set
    are deleted. The delete sweep starts only after every comparison has
    finished. A failing document never aborts the rest of the run.
    """

    def __init__(
        self,
        store: DocumentStore,
        max_workers: int = 8,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
        batch_size: int = 100,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.max_workers = max(1, max_workers)
        self.retry = RetryPolicy(max_retries, backoff_seconds, sleep)
        self.batch_size = batch_size

    @classmethod
    def from_settings(cls, store: DocumentStore, settings) -> "Reconciler":
        return cls(
            store,
            max_workers=settings.SYNC_MAX_WORKERS,
            max_retries=settings.SYNC_MAX_RETRIES,
            backoff_seconds=settings.SYNC_BACKOFF_SECONDS,
            batch_size=settings.SYNC_BATCH_SIZE,
        )

    def reconcile(
        self,
        collection: str,
        documents: Iterable[SyncableDocument],
        synced_at: Optional[str] = None,
        delete_missing: bool = True,
    ) -> SyncReport:
        """
        Bring one collection in the store in line with `documents`.

        Unchanged documents are skipped, changed or new ones written, and stored
        ids absent from `documents` deleted unless `delete_missing` is False.
        """
        documents = list(documents)
        duplicates = sorted(doc_id for doc_id, n in Counter(d.document_id for d in documents).items() if n > 1)
        if duplicates:
            raise ValueError(f"Duplicate document ids for '{collection}': {', '.join(duplicates)}")
        foreign = sorted({d.collection_name for d in documents} - {collection})
        if foreign:
            raise ValueError(f"Documents for {foreign} passed to reconcile('{collection}')")

        synced_at = synced_at or datetime.now(timezone.utc).isoformat()
        failed: List[FailedItem] = []

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            staged = list(pool.map(lambda d: self._compare(collection, d), documents))
            writes = [op for op in staged if op is not None]
            skipped = len(documents) - len(writes)

            deletes: List[StagedOperation] = []
            if delete_missing:
                deletes, list_failure = self._stage_deletes(collection, {d.document_id for d in documents})
                if list_failure:
                    failed.append(list_failure)
            else:
                logger.warning(f"{collection}: delete sweep suppressed for this sync")

            writer = BatchWriter(self.store, pool, self.retry, self.batch_size)
            done, write_failures = writer.execute(collection, writes + deletes, synced_at)
            failed.extend(write_failures)

        report = SyncReport(
            collection=collection,
            updated=sum(1 for op in done if op.operation == WRITE),
            skipped=skipped,
            deleted=sum(1 for op in done if op.operation == DELETE),
            failed=failed,
            deletes_suppressed=not delete_missing,
        )
        logger.info(f"Sync {collection}: {report.updated} updated, {report.skipped} skipped, "
                    f"{report.deleted} deleted, {len(report.failed)} failed")
        return report

    def _compare(self, collection: str, document: SyncableDocument) -> Optional[StagedOperation]:
        try:
            existing, _ = self.retry.run(lambda: self.store.get(collection, document.document_id))
        except Exception as e:
            logger.warning(f"{collection}/{document.document_id}: could not read stored copy ({e}); staging write")
            existing = None

        if existing is not None and existing.content_hash == document.content_hash:
            return None
        return StagedOperation(WRITE, document.document_id, document)

    def _stage_deletes(self, collection: str, manifest: set) -> Tuple[List[StagedOperation], Optional[FailedItem]]:
        try:
            remote_ids, _ = self.retry.run(lambda: self.store.list_ids(collection))
        except Exception as e:
            logger.error(f"{collection}: could not list stored documents, skipping delete sweep: {str(e)}")
            return [], FailedItem(
                document_id="*",
                operation="list",
                error=f"{e.__class__.__name__}: {e}",
                attempts=getattr(e, "attempts", self.retry.max_retries + 1),
            )
        return [StagedOperation(DELETE, doc_id) for doc_id in sorted(set(remote_ids) - manifest)], None
