"""Import engine configuration."""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..errors import ConfigError


@dataclass
class ImportConfig:
    """Configuration for provider access and import execution."""

    # Paging and concurrency
    page_size: int = 50
    fetch_ahead: int = 3  # Max page requests in flight

    # Retry envelope for rate limits / network failures
    max_attempts: int = 5
    backoff_base: float = 1.0
    backoff_cap: float = 30.0

    # HTTP
    request_timeout: float = 10.0

    # Per-provider connection options, e.g. {"jira": {"base_url": "..."}}
    provider_options: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError for out-of-range values."""
        if self.page_size < 1:
            raise ConfigError(f"page_size must be positive, got {self.page_size}")
        if self.fetch_ahead < 1:
            raise ConfigError(f"fetch_ahead must be at least 1, got {self.fetch_ahead}")
        if self.max_attempts < 1:
            raise ConfigError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.backoff_base < 0 or self.backoff_cap < 0:
            raise ConfigError("backoff values must not be negative")
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got {self.request_timeout}")

    def options_for(self, provider_id: str) -> Dict[str, Any]:
        """Get connection options for a provider."""
        return dict(self.provider_options.get(provider_id, {}))

    def with_options(self, provider_id: str, **options: Any) -> "ImportConfig":
        """Return a copy with extra options merged in for a provider."""
        merged = {k: dict(v) for k, v in self.provider_options.items()}
        merged.setdefault(provider_id, {}).update(options)
        data = self.to_dict()
        data["provider_options"] = merged
        return ImportConfig.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "page_size": self.page_size,
            "fetch_ahead": self.fetch_ahead,
            "max_attempts": self.max_attempts,
            "backoff_base": self.backoff_base,
            "backoff_cap": self.backoff_cap,
            "request_timeout": self.request_timeout,
            "provider_options": self.provider_options,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportConfig":
        """Create from dictionary representation."""
        try:
            return cls(
                page_size=int(data.get("page_size", 50)),
                fetch_ahead=int(data.get("fetch_ahead", 3)),
                max_attempts=int(data.get("max_attempts", 5)),
                backoff_base=float(data.get("backoff_base", 1.0)),
                backoff_cap=float(data.get("backoff_cap", 30.0)),
                request_timeout=float(data.get("request_timeout", 10.0)),
                provider_options=data.get("provider_options", {}),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_json_file(cls, file_path: str) -> "ImportConfig":
        """Load configuration from a JSON file."""
        try:
            with open(file_path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Could not read config {file_path}: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, base: Optional["ImportConfig"] = None) -> "ImportConfig":
        """Overlay TASK_IMPORT_* environment variables on a base config."""
        data = (base or cls()).to_dict()
        env_map = {
            "TASK_IMPORT_PAGE_SIZE": "page_size",
            "TASK_IMPORT_FETCH_AHEAD": "fetch_ahead",
            "TASK_IMPORT_MAX_ATTEMPTS": "max_attempts",
            "TASK_IMPORT_TIMEOUT": "request_timeout",
        }
        for env_var, key in env_map.items():
            value = os.environ.get(env_var)
            if value:
                data[key] = value
        return cls.from_dict(data)
