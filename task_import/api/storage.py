"""In-process storage for import jobs started through the API."""

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..models.config import ImportConfig
from ..models.job import ImportJob
from ..services.executor import ImportExecutor
from ..store import InMemoryTaskStore


@dataclass
class ImportEntry:
    job: ImportJob
    executor: ImportExecutor


class ImportStorage:
    """Keeps every job and the executor driving it, keyed by job id."""

    def __init__(self):
        self._entries: Dict[str, ImportEntry] = {}
        self._lock = threading.Lock()

    def create(self, job: ImportJob, executor: ImportExecutor) -> ImportEntry:
        entry = ImportEntry(job=job, executor=executor)
        with self._lock:
            self._entries[job.id] = entry
        return entry

    def get(self, job_id: str) -> Optional[ImportEntry]:
        with self._lock:
            return self._entries.get(job_id)

    def list_all(self) -> List[ImportJob]:
        with self._lock:
            return [entry.job for entry in self._entries.values()]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


import_storage = ImportStorage()
task_store = InMemoryTaskStore()
api_config = ImportConfig.from_env()
