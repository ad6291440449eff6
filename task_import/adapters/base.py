"""Adapter interface shared by all providers.

A provider adapter is a plain record of three operations selected by
provider id: ``authenticate``, ``fetch_page`` and ``default_mapping``.
Adapters for providers whose pages can be addressed directly by offset
also supply ``page_cursor`` so the executor can request several pages at
once.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests

from ..errors import ConfigError
from ..models.mapping import FieldMapping
from ..models.provider import ProviderId
from ..models.task import RawRecord

logger = logging.getLogger(__name__)


# Common provider status names -> task statuses
DEFAULT_STATUS_MAP: Dict[str, str] = {
    "to do": "todo",
    "todo": "todo",
    "open": "todo",
    "new": "todo",
    "backlog": "todo",
    "not started": "todo",
    "in progress": "in-progress",
    "in-progress": "in-progress",
    "doing": "in-progress",
    "working on it": "in-progress",
    "blocked": "in-progress",
    "stuck": "in-progress",
    "in review": "review",
    "review": "review",
    "code review": "review",
    "qa": "review",
    "done": "done",
    "closed": "done",
    "resolved": "done",
    "complete": "done",
    "completed": "done",
    "archived": "archived",
    "cancelled": "archived",
    "canceled": "archived",
}

DEFAULT_PRIORITY_MAP: Dict[str, str] = {
    "highest": "urgent",
    "urgent": "urgent",
    "critical": "urgent",
    "blocker": "urgent",
    "high": "high",
    "medium": "medium",
    "normal": "medium",
    "low": "low",
    "lowest": "low",
    "minor": "low",
}


@dataclass
class AccountInfo:
    """Best-effort identity of the authenticated account."""
    account_id: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.account_id or "unknown account"

    def to_dict(self) -> Dict[str, Any]:
        return {"account_id": self.account_id, "display_name": self.display_name}


@dataclass
class Page:
    """One page of raw records from a provider."""
    records: List[RawRecord] = field(default_factory=list)
    next_cursor: Optional[Any] = None
    has_more: bool = False
    total: Optional[int] = None
    index: int = 0  # Position in the page sequence, set by the executor


@dataclass
class AdapterContext:
    """Everything an adapter operation needs for one provider connection."""
    credential: str
    options: Dict[str, Any] = field(default_factory=dict)
    page_size: int = 50
    timeout: float = 10.0
    session: requests.Session = field(default_factory=requests.Session)
    cache: Dict[str, Any] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def require_option(self, name: str) -> Any:
        """Get a connection option, failing if it is not configured."""
        value = self.options.get(name)
        if value in (None, ""):
            raise ConfigError(f"Missing provider option: {name}")
        return value

    def __repr__(self) -> str:
        return f"AdapterContext(options={self.options!r}, page_size={self.page_size})"


@dataclass(frozen=True)
class ProviderAdapter:
    """Provider-specific operations, selected by provider id."""
    provider_id: ProviderId
    authenticate: Callable[[AdapterContext], AccountInfo]
    fetch_page: Callable[[AdapterContext, Optional[Any]], Page]
    default_mapping: Callable[[], FieldMapping]
    page_cursor: Optional[Callable[[int, int], Any]] = None

    @property
    def addressable(self) -> bool:
        """Whether page N can be requested without first reading page N-1."""
        return self.page_cursor is not None

    def cursor_for(self, index: int, page_size: int) -> Optional[Any]:
        """Cursor for page `index` of an addressable provider."""
        if self.page_cursor is None:
            raise ValueError(f"{self.provider_id.value} pages are not addressable")
        return self.page_cursor(index, page_size)


def offset_cursor(index: int, page_size: int) -> int:
    """Offset pagination: page N starts at N * page_size."""
    return index * page_size
