"""Provider catalog, default mapping and credential validation endpoints."""

from fastapi import APIRouter, HTTPException

from ...errors import AuthError, EmptyCredentialError, CredentialRejectedError, UnknownProviderError
from ...models.mapping import TransformSpec
from ...services.auth_validator import AuthValidator
from ...services.field_mapper import FieldMapper
from ...services.source_registry import SourceRegistry
from ..models import (
    AccountResponse,
    MappingResponse,
    MappingRuleModel,
    ProviderListResponse,
    ProviderResponse,
    TransformModel,
    ValidateRequest,
    ValidateResponse,
)
from ..storage import api_config

router = APIRouter()
registry = SourceRegistry()


def auth_error_status(error: AuthError) -> int:
    """HTTP status for an authentication failure."""
    if isinstance(error, EmptyCredentialError):
        return 400
    if isinstance(error, CredentialRejectedError):
        return 401
    return 503


def _describe(provider_id: str):
    try:
        return registry.describe(provider_id)
    except UnknownProviderError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("", response_model=ProviderListResponse)
async def list_providers():
    """List supported providers."""
    providers = [ProviderResponse(**p.to_dict()) for p in registry.list()]
    return ProviderListResponse(providers=providers, total=len(providers))


@router.get("/{provider_id}", response_model=ProviderResponse)
async def get_provider(provider_id: str):
    """Get a provider descriptor."""
    return ProviderResponse(**_describe(provider_id).to_dict())


@router.get("/{provider_id}/mapping", response_model=MappingResponse)
async def get_default_mapping(provider_id: str):
    """Get the default field mapping for a provider."""
    provider = _describe(provider_id)
    mapping = FieldMapper().build_default_mapping(provider)

    rules = []
    for rule in mapping.values():
        transform = None
        if isinstance(rule.transform, TransformSpec):
            transform = TransformModel(type=rule.transform.type.value, config=rule.transform.config)
        rules.append(MappingRuleModel(
            source_field=rule.source_field,
            target_field=rule.target_field,
            required=rule.required,
            transform=transform,
            notes=rule.notes,
        ))
    return MappingResponse(provider=provider.id.value, rules=rules)


@router.post("/{provider_id}/validate", response_model=ValidateResponse)
async def validate_credential(provider_id: str, data: ValidateRequest):
    """Validate a credential against the provider."""
    provider = _describe(provider_id)
    validator = AuthValidator(
        timeout=api_config.request_timeout,
        provider_options=api_config.provider_options,
    )
    try:
        validated = await validator.validate(provider, data.credential, data.options)
    except AuthError as e:
        raise HTTPException(status_code=auth_error_status(e), detail=e.to_dict())

    return ValidateResponse(
        provider=provider.id.value,
        valid=True,
        credential=validated.masked,
        account=AccountResponse(**validated.account.to_dict()),
    )
