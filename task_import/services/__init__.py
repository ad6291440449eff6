"""Service layer of the import engine."""

from .source_registry import SourceRegistry
from .auth_validator import AuthValidator, ValidatedCredential
from .field_mapper import FieldMapper
from .executor import ImportExecutor, ReorderBuffer
from .wizard import WizardController, Transition

__all__ = [
    "SourceRegistry",
    "AuthValidator",
    "ValidatedCredential",
    "FieldMapper",
    "ImportExecutor",
    "ReorderBuffer",
    "WizardController",
    "Transition",
]
