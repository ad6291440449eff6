"""Mapping models: rules from provider fields to task schema fields."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union


class TransformType(str, Enum):
    """Built-in value transforms."""
    DIRECT = "direct"
    ENUM_MAP = "enum_map"
    LOWERCASE = "lowercase"
    STRIP = "strip"
    DATE = "date"
    SPLIT = "split"
    PLUCK = "pluck"
    PRIORITY_SCALE = "priority_scale"


@dataclass
class TransformSpec:
    """Serializable description of a built-in transform."""
    type: TransformType = TransformType.DIRECT
    config: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {"type": self.type.value}
        if self.config:
            result["config"] = self.config
        return result

    @classmethod
    def from_dict(cls, data: Union[str, Dict[str, Any]]) -> "TransformSpec":
        """Create from dictionary (or bare type name)."""
        if isinstance(data, str):
            return cls(type=TransformType(data))
        return cls(
            type=TransformType(data.get("type", "direct")),
            config=data.get("config", {}),
        )

    @classmethod
    def enum_map(cls, mapping: Dict[str, str], default: Optional[str] = None, case_sensitive: bool = False) -> "TransformSpec":
        """Shortcut for a lookup-table transform."""
        config: Dict[str, Any] = {"mapping": mapping, "case_sensitive": case_sensitive}
        if default is not None:
            config["default"] = default
        return cls(type=TransformType.ENUM_MAP, config=config)


Transform = Union[TransformSpec, Callable[[Any], Any]]


@dataclass
class MappingRule:
    """Correspondence from a provider field to a task field."""
    source_field: str
    target_field: str
    required: bool = False
    transform: Optional[Transform] = None
    notes: str = ""

    @property
    def is_serializable(self) -> bool:
        """Whether the rule can be written to JSON."""
        return self.transform is None or isinstance(self.transform, TransformSpec)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "source_field": self.source_field,
            "target_field": self.target_field,
        }
        if self.required:
            result["required"] = True
        if isinstance(self.transform, TransformSpec):
            result["transform"] = self.transform.to_dict()
        elif self.transform is not None:
            result["transform"] = {"type": "custom", "function": getattr(self.transform, "__name__", "callable")}
        if self.notes:
            result["notes"] = self.notes
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MappingRule":
        """Create from dictionary representation."""
        transform = None
        if data.get("transform"):
            transform = TransformSpec.from_dict(data["transform"])
        return cls(
            source_field=data.get("source_field", ""),
            target_field=data.get("target_field", ""),
            required=data.get("required", False),
            transform=transform,
            notes=data.get("notes", ""),
        )


# Keyed by source field name
FieldMapping = Dict[str, MappingRule]


def mapping_to_dict(mapping: FieldMapping) -> Dict[str, Any]:
    """Convert a mapping to a JSON-friendly dictionary."""
    return {source: rule.to_dict() for source, rule in mapping.items()}


def mapping_from_dict(data: Dict[str, Any]) -> FieldMapping:
    """
    Build a mapping from its dictionary form.

    Accepts either the full form ({source: {rule...}}) or the shorthand
    form ({source: target}).
    """
    mapping: FieldMapping = {}
    for source_field, value in data.items():
        if isinstance(value, str):
            rule = MappingRule(source_field=source_field, target_field=value)
        else:
            rule = MappingRule.from_dict({**value, "source_field": value.get("source_field", source_field)})
        mapping[rule.source_field] = rule
    return mapping


def load_mapping_file(file_path: str) -> FieldMapping:
    """Load a mapping from a JSON file."""
    with open(file_path, "r") as f:
        data = json.load(f)
    return mapping_from_dict(data.get("mappings", data))


def save_mapping_file(mapping: FieldMapping, file_path: str) -> None:
    """Save a mapping to a JSON file."""
    with open(file_path, "w") as f:
        json.dump({"mappings": mapping_to_dict(mapping)}, f, indent=2)
