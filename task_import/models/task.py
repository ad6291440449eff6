"""Internal task schema and raw provider records."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class TaskField(str, Enum):
    """Fields of the internal task schema that a rule may target."""
    TITLE = "title"
    STATUS = "status"
    ASSIGNEE = "assignee"
    DUE_DATE = "dueDate"
    PRIORITY = "priority"
    DESCRIPTION = "description"
    TAGS = "tags"


TASK_STATUSES = ("todo", "in-progress", "review", "done", "archived")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")


@dataclass(frozen=True)
class TargetField:
    """Definition of a task schema field."""
    name: TaskField
    required: bool = False
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name.value,
            "required": self.required,
            "description": self.description,
        }


TargetSchema = Dict[TaskField, TargetField]

TARGET_SCHEMA: TargetSchema = {
    TaskField.TITLE: TargetField(TaskField.TITLE, required=True, description="Short task title"),
    TaskField.STATUS: TargetField(
        TaskField.STATUS, required=True,
        description=f"One of: {', '.join(TASK_STATUSES)}",
    ),
    TaskField.ASSIGNEE: TargetField(TaskField.ASSIGNEE, description="Display name or email of the assignee"),
    TaskField.DUE_DATE: TargetField(TaskField.DUE_DATE, description="ISO date (YYYY-MM-DD)"),
    TaskField.PRIORITY: TargetField(
        TaskField.PRIORITY,
        description=f"One of: {', '.join(TASK_PRIORITIES)}",
    ),
    TaskField.DESCRIPTION: TargetField(TaskField.DESCRIPTION, description="Long-form description"),
    TaskField.TAGS: TargetField(TaskField.TAGS, description="List of labels"),
}


def required_fields(schema: TargetSchema) -> List[TaskField]:
    """Return the required fields of a schema, in schema order."""
    return [name for name, definition in schema.items() if definition.required]


@dataclass
class Task:
    """A task produced by the import, ready to commit to the task store."""
    source_id: str
    external_id: str
    title: Optional[str] = None
    status: Optional[str] = None
    assignee: Optional[str] = None
    due_date: Optional[str] = None
    priority: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    imported_at: datetime = field(default_factory=datetime.utcnow)

    _ATTRIBUTES = {
        TaskField.TITLE: "title",
        TaskField.STATUS: "status",
        TaskField.ASSIGNEE: "assignee",
        TaskField.DUE_DATE: "due_date",
        TaskField.PRIORITY: "priority",
        TaskField.DESCRIPTION: "description",
        TaskField.TAGS: "tags",
    }

    @property
    def identity(self) -> Tuple[str, str]:
        """Idempotency key: (source id, external item id)."""
        return (self.source_id, self.external_id)

    def set_field(self, target: TaskField, value: Any) -> None:
        """Set a schema field by its TaskField name."""
        if target == TaskField.TAGS and value is not None and not isinstance(value, list):
            value = [value]
        setattr(self, self._ATTRIBUTES[target], value)

    def get_field(self, target: TaskField) -> Any:
        """Get a schema field by its TaskField name."""
        return getattr(self, self._ATTRIBUTES[target])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "source_id": self.source_id,
            "external_id": self.external_id,
            "imported_at": self.imported_at.isoformat(),
        }
        for target in TaskField:
            result[target.value] = self.get_field(target)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Create from dictionary representation."""
        task = cls(
            source_id=data.get("source_id", ""),
            external_id=data.get("external_id", ""),
        )
        for target in TaskField:
            if data.get(target.value) is not None:
                task.set_field(target, data[target.value])
        if data.get("imported_at"):
            task.imported_at = datetime.fromisoformat(data["imported_at"])
        return task


_INDEX_PATTERN = re.compile(r"^(\w+)\[(\d+)\]$")


@dataclass
class RawRecord:
    """A work item as returned by a provider, before mapping."""
    external_id: str
    data: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)

    def get_field(self, path: str, default: Any = None) -> Any:
        """Get a field value by dot-notation path (e.g., 'status.name', 'labels[0]')."""
        if path in self.data:
            value = self.data[path]
            return default if value is None else value

        value: Any = self.data
        for part in path.split("."):
            if value is None:
                return default
            match = _INDEX_PATTERN.match(part)
            if match:
                key, index = match.groups()
                if isinstance(value, dict):
                    value = value.get(key)
                if isinstance(value, list) and int(index) < len(value):
                    value = value[int(index)]
                else:
                    return default
            elif isinstance(value, dict):
                value = value.get(part)
            elif isinstance(value, list) and part.isdigit():
                idx = int(part)
                value = value[idx] if idx < len(value) else None
            else:
                return default
        return default if value is None else value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "external_id": self.external_id,
            "data": self.data,
            "metadata": self.metadata,
        }
