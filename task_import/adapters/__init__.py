"""Provider adapters, selected by provider id."""

from typing import Dict, Union

from ..errors import UnknownProviderError
from ..models.provider import ProviderId
from .base import (
    DEFAULT_PRIORITY_MAP,
    DEFAULT_STATUS_MAP,
    AccountInfo,
    AdapterContext,
    Page,
    ProviderAdapter,
    offset_cursor,
)
from .http import ProviderClient
from . import asana, csv_file, jira, linear, monday, trello

ADAPTERS: Dict[ProviderId, ProviderAdapter] = {
    ProviderId.JIRA: jira.ADAPTER,
    ProviderId.ASANA: asana.ADAPTER,
    ProviderId.TRELLO: trello.ADAPTER,
    ProviderId.MONDAY: monday.ADAPTER,
    ProviderId.LINEAR: linear.ADAPTER,
    ProviderId.CSV: csv_file.ADAPTER,
}


def get_adapter(provider_id: Union[ProviderId, str]) -> ProviderAdapter:
    """Get the adapter for a provider id."""
    try:
        if not isinstance(provider_id, ProviderId):
            provider_id = ProviderId(str(provider_id).strip().lower())
        return ADAPTERS[provider_id]
    except (KeyError, ValueError):
        raise UnknownProviderError(provider_id) from None


__all__ = [
    "ADAPTERS",
    "get_adapter",
    "AccountInfo",
    "AdapterContext",
    "Page",
    "ProviderAdapter",
    "ProviderClient",
    "offset_cursor",
    "DEFAULT_STATUS_MAP",
    "DEFAULT_PRIORITY_MAP",
]
