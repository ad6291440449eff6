"""Error taxonomy for the import engine."""

from typing import Any, Dict, List, Optional


class ImportEngineError(Exception):
    """Base class for all import engine errors."""

    code: str = "error"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "type": self.__class__.__name__,
            "code": self.code,
            "message": str(self),
        }


class UnknownProviderError(ImportEngineError):
    """Raised when a provider id is not in the registry."""

    code = "unknown_provider"

    def __init__(self, provider_id: Any):
        self.provider_id = provider_id
        super().__init__(f"Unknown provider: {provider_id}")


class ConfigError(ImportEngineError):
    """Invalid import configuration."""

    code = "config"


# Authentication (step-gating, recoverable)

class AuthError(ImportEngineError):
    """Credential could not be validated for a provider."""

    code = "auth"


class EmptyCredentialError(AuthError):
    """Credential is empty or whitespace only."""

    code = "empty"

    def __init__(self, message: str = "Credential is empty"):
        super().__init__(message)


class CredentialRejectedError(AuthError):
    """Provider answered 401/403 for the credential."""

    code = "rejected"

    def __init__(self, message: str = "Credential was rejected by the provider", status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ProviderUnreachableError(AuthError):
    """Provider could not be reached (5xx, 429 or network failure). Retryable."""

    code = "unreachable"
    retryable = True

    def __init__(self, message: str = "Provider is unreachable", status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


# Mapping (step-gating, recoverable)

class MappingError(ImportEngineError):
    """A problem with a single mapping rule or target field."""

    code = "mapping"

    def __init__(self, message: str, target_field: Optional[str] = None, source_field: Optional[str] = None):
        self.target_field = target_field
        self.source_field = source_field
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["target_field"] = self.target_field
        result["source_field"] = self.source_field
        return result


class UnknownTargetError(MappingError):
    """Rule targets a field that is not part of the task schema."""

    code = "unknown_target"


class MissingRequiredError(MappingError):
    """A required task field has no mapping rule."""

    code = "missing_required"


class MappingValidationError(ImportEngineError):
    """Mapping failed validation; carries every individual error."""

    code = "invalid_mapping"

    def __init__(self, errors: List[MappingError]):
        self.errors = list(errors)
        details = "; ".join(str(e) for e in self.errors)
        super().__init__(f"Mapping is invalid: {details}")

    @property
    def missing_fields(self) -> List[str]:
        """Target fields reported as missing."""
        return [e.target_field for e in self.errors if isinstance(e, MissingRequiredError)]

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["errors"] = [e.to_dict() for e in self.errors]
        return result


# Per-record (recovered locally by the executor)

class RecordError(ImportEngineError):
    """A single record could not be imported. The record is skipped."""

    code = "record"

    def __init__(self, message: str, item_id: Optional[str] = None, field: Optional[str] = None):
        self.item_id = item_id
        self.field = field
        super().__init__(message)


class MissingRequiredFieldError(RecordError):
    """Required source value is absent from the raw record."""

    code = "missing_required_field"


class TransformFailureError(RecordError):
    """A rule transform raised while normalizing a value."""

    code = "transform_failure"


class StoreRejectedError(RecordError):
    """The task store refused the record."""

    code = "store_rejected"


class StoreError(ImportEngineError):
    """Raised by a task store when a commit is refused (e.g. constraint violation)."""

    code = "store"


# Provider / run level

class ProviderError(ImportEngineError):
    """Error talking to a provider while fetching records."""

    code = "provider"
    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RateLimitedError(ProviderError):
    """HTTP 429 from the provider."""

    code = "rate_limited"
    retryable = True

    def __init__(self, message: str = "Rate limited by provider", retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(message, status_code=429)


class MalformedResponseError(ProviderError):
    """Response body could not be parsed or violated the expected schema."""

    code = "malformed"


class ProviderNetworkError(ProviderError):
    """Network failure or 5xx from the provider."""

    code = "network"
    retryable = True


class RetriesExhaustedError(ProviderError):
    """A retryable error persisted past the attempt cap."""

    code = "retries_exhausted"

    def __init__(self, attempts: int, last_error: ImportEngineError):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Gave up after {attempts} attempts: {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )


class IncompleteStreamError(ProviderError):
    """The provider stopped paging before the total it reported."""

    code = "incomplete"

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(f"Provider reported {expected} items but paging ended after {received}")


# Wizard

class WizardError(ImportEngineError):
    """Illegal wizard transition or operation."""

    code = "wizard"
