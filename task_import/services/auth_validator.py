"""Credential validation against a provider's "who am I" endpoint."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from ..adapters import AccountInfo, AdapterContext, get_adapter
from ..errors import (
    AuthError,
    ConfigError,
    EmptyCredentialError,
    MalformedResponseError,
    ProviderError,
    ProviderUnreachableError,
)
from ..logging_utils import forget_secret, mask_credential, register_secret
from ..models.provider import ProviderDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidatedCredential:
    """A credential that passed validation for one provider."""
    provider: ProviderDescriptor
    secret: str = field(repr=False)
    account: AccountInfo = field(default_factory=AccountInfo)

    @property
    def masked(self) -> str:
        return mask_credential(self.secret)

    def matches(self, provider: ProviderDescriptor, credential: str) -> bool:
        """Whether this result is still valid for the given source and credential."""
        return self.provider.id == provider.id and self.secret == credential

    def __repr__(self) -> str:
        return (
            f"ValidatedCredential(provider={self.provider.id.value!r}, "
            f"credential={self.masked!r}, account={self.account.label!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (secret masked)."""
        return {
            "provider": self.provider.id.value,
            "credential": self.masked,
            "account": self.account.to_dict(),
        }


class AuthValidator:
    """
    Verifies that a credential is well-formed and accepted by a provider.

    Network providers get one lightweight authenticated request through
    their adapter. Status handling:
    - 2xx -> ValidatedCredential
    - 401/403 -> CredentialRejectedError
    - 5xx, 429, timeouts, connection errors -> ProviderUnreachableError
    """

    def __init__(
        self,
        timeout: float = 10.0,
        provider_options: Optional[Dict[str, Dict[str, Any]]] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the validator.

        Args:
            timeout: Timeout for the validation request in seconds
            provider_options: Connection options per provider id
            session: requests session to use (a new one per call if omitted)
        """
        self.timeout = timeout
        self.provider_options = provider_options or {}
        self._session = session

    async def validate(
        self,
        provider: ProviderDescriptor,
        credential: str,
        options: Optional[Dict[str, Any]] = None
    ) -> ValidatedCredential:
        """
        Validate a credential for a provider.

        Args:
            provider: Provider to validate against
            credential: Raw secret as entered by the user
            options: Connection options overriding the configured ones

        Returns:
            ValidatedCredential wrapping the secret and account info

        Raises:
            AuthError: EmptyCredentialError, CredentialRejectedError or
                ProviderUnreachableError
        """
        if not provider.requires_network:
            logger.info(f"{provider.display_name} needs no credential, skipping validation")
            return ValidatedCredential(provider=provider, secret=credential or "")

        if not credential or not credential.strip():
            raise EmptyCredentialError()

        register_secret(credential)
        merged = {**self.provider_options.get(provider.id.value, {}), **(options or {})}
        ctx = AdapterContext(
            credential=credential,
            options=merged,
            timeout=self.timeout,
            session=self._session or requests.Session(),
        )
        adapter = get_adapter(provider.id)

        logger.info(f"Validating {provider.display_name} credential {mask_credential(credential)}")
        loop = asyncio.get_running_loop()
        try:
            account = await loop.run_in_executor(None, adapter.authenticate, ctx)
        except AuthError:
            raise
        except MalformedResponseError as e:
            # The provider accepted the credential but answered oddly
            logger.warning(f"{provider.display_name} identity response unreadable: {e}")
            account = AccountInfo()
        except ProviderError as e:
            raise ProviderUnreachableError(
                f"{provider.display_name} is unreachable: {e}",
                status_code=e.status_code,
            ) from e
        except ConfigError as e:
            raise ProviderUnreachableError(f"{provider.display_name} is not configured: {e}") from e
        finally:
            forget_secret(credential)
            if self._session is None:
                ctx.session.close()

        logger.info(f"{provider.display_name} credential accepted for {account.label}")
        return ValidatedCredential(provider=provider, secret=credential, account=account)
