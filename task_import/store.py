"""Task stores the import commits into."""

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import StoreError
from .models.task import TASK_PRIORITIES, TASK_STATUSES, Task

logger = logging.getLogger(__name__)


class BaseTaskStore(ABC):
    """
    Base class for task stores.

    Commits are idempotent upserts keyed by (source_id, external_id), so
    re-running an import never duplicates tasks.
    """

    def __init__(self, strict: bool = True):
        """
        Initialize the store.

        Args:
            strict: Reject tasks whose status or priority is outside the task vocabulary
        """
        self.strict = strict
        self._lock = threading.Lock()

    def check(self, task: Task) -> None:
        """Raise StoreError if the task violates the store's constraints."""
        if not task.title:
            raise StoreError(f"Task {task.external_id} has no title")
        if not self.strict:
            return
        if task.status not in TASK_STATUSES:
            raise StoreError(f"Task {task.external_id} has unknown status {task.status!r}")
        if task.priority is not None and task.priority not in TASK_PRIORITIES:
            raise StoreError(f"Task {task.external_id} has unknown priority {task.priority!r}")

    def commit(self, task: Task) -> bool:
        """
        Insert or update a task.

        Args:
            task: Task to store

        Returns:
            True if the task was new, False if it replaced an existing one

        Raises:
            StoreError: If the task is rejected
        """
        self.check(task)
        with self._lock:
            created = self._upsert(task)
        logger.debug(f"{'Created' if created else 'Updated'} task {task.source_id}/{task.external_id}")
        return created

    @abstractmethod
    def _upsert(self, task: Task) -> bool:
        pass

    @abstractmethod
    def get(self, source_id: str, external_id: str) -> Optional[Task]:
        pass

    @abstractmethod
    def all(self) -> List[Task]:
        pass

    def __len__(self) -> int:
        return len(self.all())


class InMemoryTaskStore(BaseTaskStore):
    """Task store held in a dict, in insertion order."""

    def __init__(self, strict: bool = True):
        super().__init__(strict)
        self._tasks: Dict[Tuple[str, str], Task] = {}
        self.commit_count = 0

    def _upsert(self, task: Task) -> bool:
        self.commit_count += 1
        created = task.identity not in self._tasks
        self._tasks[task.identity] = task
        return created

    def get(self, source_id: str, external_id: str) -> Optional[Task]:
        return self._tasks.get((source_id, external_id))

    def all(self) -> List[Task]:
        return list(self._tasks.values())

    def clear(self) -> None:
        with self._lock:
            self._tasks.clear()
            self.commit_count = 0


class JsonFileTaskStore(InMemoryTaskStore):
    """
    Task store persisted to a JSON file.

    The file is read on construction and rewritten after every commit.
    """

    def __init__(self, file_path: str, strict: bool = True):
        super().__init__(strict)
        self.file_path = Path(file_path)
        self._load()

    def _load(self) -> None:
        if not self.file_path.exists():
            return
        try:
            with open(self.file_path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Could not read task store {self.file_path}: {e}") from e

        for item in data.get("tasks", []):
            task = Task.from_dict(item)
            self._tasks[task.identity] = task
        logger.info(f"Loaded {len(self._tasks)} tasks from {self.file_path}")

    def _upsert(self, task: Task) -> bool:
        created = super()._upsert(task)
        self._save()
        return created

    def _save(self) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        try:
            with open(tmp_path, "w") as f:
                json.dump({"tasks": [t.to_dict() for t in self._tasks.values()]}, f, indent=2, default=str)
            tmp_path.replace(self.file_path)
        except OSError as e:
            raise StoreError(f"Could not write task store {self.file_path}: {e}") from e
