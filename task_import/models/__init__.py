"""Data models for the import engine."""

from .provider import (
    ProviderId,
    AuthMethod,
    Capability,
    ProviderDescriptor,
)
from .task import (
    TaskField,
    TargetField,
    TargetSchema,
    TARGET_SCHEMA,
    TASK_STATUSES,
    TASK_PRIORITIES,
    Task,
    RawRecord,
    required_fields,
)
from .mapping import (
    TransformType,
    TransformSpec,
    MappingRule,
    FieldMapping,
    mapping_to_dict,
    mapping_from_dict,
    load_mapping_file,
    save_mapping_file,
)
from .job import (
    JobStatus,
    JobError,
    ImportJob,
)
from .state import (
    WizardStep,
    ImportState,
)
from .config import ImportConfig

__all__ = [
    "ProviderId",
    "AuthMethod",
    "Capability",
    "ProviderDescriptor",
    "TaskField",
    "TargetField",
    "TargetSchema",
    "TARGET_SCHEMA",
    "TASK_STATUSES",
    "TASK_PRIORITIES",
    "Task",
    "RawRecord",
    "required_fields",
    "TransformType",
    "TransformSpec",
    "MappingRule",
    "FieldMapping",
    "mapping_to_dict",
    "mapping_from_dict",
    "load_mapping_file",
    "save_mapping_file",
    "JobStatus",
    "JobError",
    "ImportJob",
    "WizardStep",
    "ImportState",
    "ImportConfig",
]
