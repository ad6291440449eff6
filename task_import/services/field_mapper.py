"""Field mapping between provider records and the internal task schema."""

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from dateutil import parser as date_parser

from ..adapters import get_adapter
from ..errors import (
    MappingError,
    MissingRequiredError,
    MissingRequiredFieldError,
    TransformFailureError,
    UnknownTargetError,
)
from ..models.mapping import FieldMapping, MappingRule, TransformSpec, TransformType
from ..models.provider import ProviderDescriptor, ProviderId
from ..models.task import TARGET_SCHEMA, RawRecord, Task, TargetSchema, TaskField

logger = logging.getLogger(__name__)


def _is_missing(value: Any) -> bool:
    return value is None or value == "" or value == []


class FieldMapper:
    """
    Builds, validates and applies field mappings.

    Supports:
    - Default mappings seeded from each provider adapter
    - Validation against a target schema
    - Built-in and custom value transforms
    - Nested source fields (e.g. "status.name", "members[0].fullName")
    """

    def __init__(self):
        """Initialize the field mapper."""
        self._custom_transforms: Dict[str, Callable] = {}
        self._builtin_transforms = self._register_builtin_transforms()

    def _register_builtin_transforms(self) -> Dict[str, Callable]:
        """Register all built-in transformation functions."""
        return {
            TransformType.DIRECT.value: self._transform_direct,
            TransformType.ENUM_MAP.value: self._transform_enum_map,
            TransformType.LOWERCASE.value: self._transform_lowercase,
            TransformType.STRIP.value: self._transform_strip,
            TransformType.DATE.value: self._transform_date,
            TransformType.SPLIT.value: self._transform_split,
            TransformType.PLUCK.value: self._transform_pluck,
            TransformType.PRIORITY_SCALE.value: self._transform_priority_scale,
        }

    def register_transform(self, name: str, func: Callable[[Any, Dict[str, Any]], Any]) -> None:
        """Register a custom transformation function, callable as func(value, config)."""
        self._custom_transforms[name] = func

    def build_default_mapping(self, provider: Union[ProviderDescriptor, ProviderId, str]) -> FieldMapping:
        """
        Seed a mapping from the provider's well-known field names.

        Args:
            provider: Provider descriptor or id

        Returns:
            A fresh mapping, safe to edit
        """
        provider_id = provider.id if isinstance(provider, ProviderDescriptor) else provider
        mapping = get_adapter(provider_id).default_mapping()
        logger.debug(f"Default mapping for {provider_id}: {sorted(mapping)}")
        return mapping

    def validate(self, mapping: FieldMapping, target_schema: Optional[TargetSchema] = None) -> List[MappingError]:
        """
        Check a mapping against a target schema.

        Args:
            mapping: Mapping to validate
            target_schema: Schema to validate against (defaults to the task schema)

        Returns:
            Every problem found; an empty list means the mapping is valid
        """
        schema = TARGET_SCHEMA if target_schema is None else target_schema
        errors: List[MappingError] = []
        mapped_targets = set()

        for source_field, rule in mapping.items():
            if not rule.target_field:
                # Unmapped source fields are simply dropped
                continue
            try:
                target = TaskField(rule.target_field)
            except ValueError:
                target = None
            if target is None or target not in schema:
                errors.append(UnknownTargetError(
                    f"Rule for '{source_field}' targets unknown field '{rule.target_field}'",
                    target_field=rule.target_field,
                    source_field=source_field,
                ))
                continue
            if not self._resolve_transform(rule):
                errors.append(MappingError(
                    f"Rule for '{source_field}' uses an unknown transform",
                    target_field=rule.target_field,
                    source_field=source_field,
                ))
            mapped_targets.add(target)

        for target, definition in schema.items():
            if definition.required and target not in mapped_targets:
                errors.append(MissingRequiredError(
                    f"Required field '{target.value}' is not mapped",
                    target_field=target.value,
                ))

        return errors

    def apply(
        self,
        mapping: FieldMapping,
        raw_record: RawRecord,
        source_id: str = "",
        target_schema: Optional[TargetSchema] = None
    ) -> Task:
        """
        Transform one raw record into a task.

        Args:
            mapping: Validated mapping to apply
            raw_record: Record as returned by the provider
            source_id: Provider id stamped on the task
            target_schema: Schema giving required fields (defaults to the task schema)

        Returns:
            The normalized task

        Raises:
            MissingRequiredFieldError: A required source value is absent
            TransformFailureError: A transform raised
        """
        schema = TARGET_SCHEMA if target_schema is None else target_schema
        task = Task(source_id=source_id, external_id=raw_record.external_id)

        for source_field, rule in mapping.items():
            if not rule.target_field:
                continue
            target = TaskField(rule.target_field)
            definition = schema.get(target)
            required = rule.required or bool(definition and definition.required)

            value = raw_record.get_field(rule.source_field or source_field)
            if _is_missing(value):
                if required:
                    raise MissingRequiredFieldError(
                        f"Missing required value '{rule.source_field}' for '{target.value}'",
                        item_id=raw_record.external_id,
                        field=target.value,
                    )
                continue

            try:
                value = self._apply_transform(rule, value)
            except Exception as e:
                raise TransformFailureError(
                    f"Transform failed for '{rule.source_field}' -> '{target.value}': {e}",
                    item_id=raw_record.external_id,
                    field=target.value,
                ) from e

            if _is_missing(value):
                if required:
                    raise MissingRequiredFieldError(
                        f"Value '{rule.source_field}' normalized to nothing for '{target.value}'",
                        item_id=raw_record.external_id,
                        field=target.value,
                    )
                continue

            task.set_field(target, value)

        return task

    def _resolve_transform(self, rule: MappingRule) -> Optional[Callable[[Any, Dict[str, Any]], Any]]:
        """Find the function implementing a rule's transform."""
        transform = rule.transform
        if transform is None:
            return self._transform_direct
        if isinstance(transform, TransformSpec):
            name = transform.type.value
            return self._custom_transforms.get(name) or self._builtin_transforms.get(name)
        if isinstance(transform, str):
            return self._custom_transforms.get(transform) or self._builtin_transforms.get(transform)
        if callable(transform):
            return lambda value, config: transform(value)
        return None

    def _apply_transform(self, rule: MappingRule, value: Any) -> Any:
        func = self._resolve_transform(rule)
        if func is None:
            raise ValueError(f"unknown transform {rule.transform!r}")
        config = rule.transform.config if isinstance(rule.transform, TransformSpec) else {}
        return func(value, config)

    # Built-in transform functions

    def _transform_direct(self, value: Any, config: Dict) -> Any:
        """Direct copy without transformation."""
        return value

    def _transform_enum_map(self, value: Any, config: Dict) -> Any:
        """Map value using a lookup table."""
        mapping = config.get("mapping", {})
        if isinstance(value, bool):
            key = "true" if value else "false"
        else:
            key = str(value).strip()

        if config.get("case_sensitive", False):
            return mapping.get(key, config.get("default"))

        lowered = {str(k).lower(): v for k, v in mapping.items()}
        return lowered.get(key.lower(), config.get("default"))

    def _transform_lowercase(self, value: Any, config: Dict) -> Any:
        """Convert to lowercase."""
        return str(value).lower()

    def _transform_strip(self, value: Any, config: Dict) -> Any:
        """Strip surrounding whitespace (or the configured characters)."""
        return str(value).strip(config.get("chars"))

    def _transform_date(self, value: Any, config: Dict) -> Any:
        """Normalize a date or datetime to ISO YYYY-MM-DD."""
        if isinstance(value, (int, float)):
            raise ValueError(f"not a date: {value!r}")
        parsed = date_parser.parse(str(value), dayfirst=config.get("dayfirst", False))
        return parsed.date().isoformat()

    def _transform_split(self, value: Any, config: Dict) -> Any:
        """Split a delimited string into a list of tags."""
        if isinstance(value, list):
            return [str(v).strip() for v in value if str(v).strip()]
        separator = config.get("separator", ",")
        return [part.strip() for part in str(value).split(separator) if part.strip()]

    def _transform_pluck(self, value: Any, config: Dict) -> Any:
        """Take one key from each object in a list."""
        key = config.get("key", "name")
        items = value if isinstance(value, list) else [value]
        result = []
        for item in items:
            plucked = item.get(key) if isinstance(item, dict) else item
            if plucked not in (None, ""):
                result.append(plucked)
        return result

    def _transform_priority_scale(self, value: Any, config: Dict) -> Any:
        """Map a numeric priority onto low/medium/high/urgent."""
        number = float(value)
        if number <= 0:
            # 0 means "no priority" for most providers
            return config.get("none")
        # Thresholds are upper bounds, checked in order
        scale = config.get("scale") or [[1, "urgent"], [2, "high"], [3, "medium"]]
        for bound, priority in scale:
            if number <= bound:
                return priority
        return config.get("default", "low")
