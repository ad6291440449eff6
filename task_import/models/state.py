"""Wizard step and transient session state."""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional

from ..logging_utils import mask_credential
from .mapping import FieldMapping, mapping_to_dict
from .provider import ProviderDescriptor


class WizardStep(IntEnum):
    """Ordered steps of the import wizard."""
    SOURCE = 0
    AUTH = 1
    MAPPING = 2
    IMPORT = 3

    @property
    def label(self) -> str:
        return _STEP_LABELS[self]


_STEP_LABELS = {
    WizardStep.SOURCE: "Select Source",
    WizardStep.AUTH: "Authentication",
    WizardStep.MAPPING: "Map Fields",
    WizardStep.IMPORT: "Importing",
}


@dataclass
class ImportState:
    """Transient state of one wizard session."""
    source: Optional[ProviderDescriptor] = None
    credential: str = ""
    mappings: FieldMapping = field(default_factory=dict)
    current_step: WizardStep = WizardStep.SOURCE

    def __repr__(self) -> str:
        # The credential must never be rendered in full
        source = self.source.id.value if self.source else None
        return (
            f"ImportState(source={source!r}, credential={mask_credential(self.credential)!r}, "
            f"mappings={len(self.mappings)}, current_step={self.current_step.name})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (credential masked)."""
        return {
            "source": self.source.to_dict() if self.source else None,
            "credential": mask_credential(self.credential),
            "mappings": mapping_to_dict(self.mappings),
            "current_step": self.current_step.name,
            "current_step_label": self.current_step.label,
        }
