"""Provider descriptor models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet


class ProviderId(str, Enum):
    """Supported import sources."""
    JIRA = "jira"
    ASANA = "asana"
    TRELLO = "trello"
    MONDAY = "monday"
    LINEAR = "linear"
    CSV = "csv"


class AuthMethod(str, Enum):
    """How a provider authenticates."""
    API_KEY = "api-key"
    OAUTH = "oauth"
    NONE = "none"


class Capability(str, Enum):
    """Optional provider capabilities."""
    PAGINATED = "paginated"
    RATE_LIMITED = "rate-limited"
    SUPPORTS_MAPPING = "supports-mapping"


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of an import provider."""
    id: ProviderId
    display_name: str
    auth_method: AuthMethod
    capabilities: FrozenSet[Capability] = field(default_factory=frozenset)
    doc_url: str = ""

    @property
    def requires_network(self) -> bool:
        """Whether the provider is reached over the network."""
        return self.auth_method != AuthMethod.NONE

    def supports(self, capability: Capability) -> bool:
        """Check if the provider has a capability."""
        return capability in self.capabilities

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id.value,
            "display_name": self.display_name,
            "auth_method": self.auth_method.value,
            "capabilities": sorted(c.value for c in self.capabilities),
            "doc_url": self.doc_url,
        }
