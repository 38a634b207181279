# catalog_ingest/monitoring/history.py
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from pydantic import ValidationError

from ..models import HealthSnapshot

logger = logging.getLogger(__name__)


class HealthHistory:
    """
    Append-only snapshot history, one JSON-lines file per source id.

    Reads and appends for one source are serialised by that source's lock;
    different sources never wait on each other.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, source_id: str) -> threading.Lock:
        with self._registry_lock:
            if source_id not in self._locks:
                self._locks[source_id] = threading.Lock()
            return self._locks[source_id]

    def path_for(self, source_id: str) -> Path:
        return self.directory / f"{quote(source_id, safe='')}.jsonl"

    def _read(self, source_id: str) -> List[HealthSnapshot]:
        path = self.path_for(source_id)
        if not path.exists():
            return []

        snapshots = []
        with open(path, encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    snapshots.append(HealthSnapshot.model_validate_json(line))
                except ValidationError as e:
                    logger.warning(f"Skipping unreadable snapshot {path.name}:{line_no}: {e}")
        return snapshots

    def _append(self, snapshot: HealthSnapshot):
        with open(self.path_for(snapshot.source_id), "a", encoding="utf-8") as f:
            f.write(snapshot.model_dump_json(by_alias=True) + "\n")

    def read(self, source_id: str, limit: Optional[int] = None) -> List[HealthSnapshot]:
        with self._lock_for(source_id):
            snapshots = self._read(source_id)
        return snapshots[-limit:] if limit else snapshots

    def append(self, snapshot: HealthSnapshot):
        with self._lock_for(snapshot.source_id):
            self._append(snapshot)

    def record(self, snapshot: HealthSnapshot) -> List[HealthSnapshot]:
        """Append `snapshot` and return the history that preceded it."""
        with self._lock_for(snapshot.source_id):
            prior = self._read(snapshot.source_id)
            self._append(snapshot)
        logger.debug(f"Recorded snapshot #{len(prior) + 1} for {snapshot.source_id}")
        return prior

    def latest(self, source_id: str) -> Optional[HealthSnapshot]:
        snapshots = self.read(source_id)
        return snapshots[-1] if snapshots else None

    def source_ids(self) -> List[str]:
        return sorted(unquote(p.stem) for p in self.directory.glob("*.jsonl"))
