"""Static catalog of supported import providers."""

import logging
from typing import Dict, List, Optional, Union

from ..errors import UnknownProviderError
from ..models.provider import AuthMethod, Capability, ProviderDescriptor, ProviderId

logger = logging.getLogger(__name__)

_NETWORK = frozenset({Capability.PAGINATED, Capability.RATE_LIMITED, Capability.SUPPORTS_MAPPING})

# Catalog order is the order providers are offered to the user
BUILTIN_PROVIDERS = (
    ProviderDescriptor(
        id=ProviderId.JIRA,
        display_name="Jira",
        auth_method=AuthMethod.API_KEY,
        capabilities=_NETWORK,
        doc_url="https://id.atlassian.com/manage-profile/security/api-tokens",
    ),
    ProviderDescriptor(
        id=ProviderId.TRELLO,
        display_name="Trello",
        auth_method=AuthMethod.API_KEY,
        capabilities=_NETWORK,
        doc_url="https://trello.com/app-key",
    ),
    ProviderDescriptor(
        id=ProviderId.ASANA,
        display_name="Asana",
        auth_method=AuthMethod.API_KEY,
        capabilities=_NETWORK,
        doc_url="https://app.asana.com/0/my-apps",
    ),
    ProviderDescriptor(
        id=ProviderId.LINEAR,
        display_name="Linear",
        auth_method=AuthMethod.API_KEY,
        capabilities=_NETWORK,
        doc_url="https://linear.app/settings/api",
    ),
    ProviderDescriptor(
        id=ProviderId.MONDAY,
        display_name="Monday.com",
        auth_method=AuthMethod.API_KEY,
        capabilities=_NETWORK,
        doc_url="https://developer.monday.com/api-reference/docs/authentication",
    ),
    ProviderDescriptor(
        id=ProviderId.CSV,
        display_name="CSV File",
        auth_method=AuthMethod.NONE,
        capabilities=frozenset({Capability.PAGINATED, Capability.SUPPORTS_MAPPING}),
        doc_url="",
    ),
)


class SourceRegistry:
    """
    Read-only lookup of provider descriptors.

    Supports:
    - Listing providers in catalog order
    - Lookup by enum member or case-insensitive id string
    """

    def __init__(self, providers: Optional[List[ProviderDescriptor]] = None):
        """
        Initialize the registry.

        Args:
            providers: Descriptors to serve (defaults to the built-in catalog)
        """
        catalog = BUILTIN_PROVIDERS if providers is None else providers
        self._providers: Dict[ProviderId, ProviderDescriptor] = {p.id: p for p in catalog}

    def describe(self, provider_id: Union[ProviderId, str]) -> ProviderDescriptor:
        """
        Get the descriptor of a provider.

        Args:
            provider_id: Provider id as enum member or string (e.g. "Jira")

        Returns:
            The provider's descriptor

        Raises:
            UnknownProviderError: If the provider is not registered
        """
        key = provider_id
        if not isinstance(key, ProviderId):
            try:
                key = ProviderId(str(provider_id).strip().lower())
            except ValueError:
                raise UnknownProviderError(provider_id) from None

        descriptor = self._providers.get(key)
        if descriptor is None:
            raise UnknownProviderError(provider_id)
        return descriptor

    def list(self) -> List[ProviderDescriptor]:
        """List all providers in catalog order."""
        return list(self._providers.values())

    def __contains__(self, provider_id: object) -> bool:
        try:
            self.describe(provider_id)  # type: ignore[arg-type]
        except UnknownProviderError:
            return False
        return True
