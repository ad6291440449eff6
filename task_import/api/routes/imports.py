"""Import job endpoints."""

import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException

from ...errors import AuthError, UnknownProviderError
from ...models.job import ImportJob
from ...models.mapping import MappingRule, TransformSpec
from ...services.auth_validator import AuthValidator, ValidatedCredential
from ...services.executor import ImportExecutor
from ...services.field_mapper import FieldMapper
from ..models import ImportCreate, ImportJobResponse, JobErrorResponse
from ..storage import api_config, import_storage, task_store
from .providers import auth_error_status, registry

logger = logging.getLogger(__name__)

router = APIRouter()


def job_response(job: ImportJob) -> ImportJobResponse:
    """Convert a job to its API representation."""
    data = job.to_dict()
    return ImportJobResponse(
        id=job.id,
        source_id=job.source_id,
        status=job.status.value,
        started_at=job.started_at,
        finished_at=job.finished_at,
        total=job.total,
        processed=job.processed,
        committed=job.committed,
        errors=[JobErrorResponse(**e.to_dict()) for e in job.errors],
        terminal_error=JobErrorResponse(**job.terminal_error.to_dict()) if job.terminal_error else None,
        cancelled=job.cancelled,
        summary=data["summary"],
    )


async def run_import_task(
    executor: ImportExecutor,
    job: ImportJob,
    credential: ValidatedCredential,
    mapping,
    options
):
    """Background task to run the import."""
    await executor.run(credential.provider, credential, mapping, task_store, options=options, job=job)
    logger.info(f"API import {job.id} finished with status {job.status.value}")


@router.post("", response_model=ImportJobResponse, status_code=202)
async def start_import(data: ImportCreate, background_tasks: BackgroundTasks):
    """Validate the request and start an import in the background."""
    try:
        provider = registry.describe(data.provider)
    except UnknownProviderError as e:
        raise HTTPException(status_code=404, detail=str(e))

    mapper = FieldMapper()
    if data.mapping is None:
        mapping = mapper.build_default_mapping(provider)
    else:
        mapping = {}
        for rule in data.mapping:
            transform = None
            if rule.transform:
                try:
                    transform = TransformSpec.from_dict({"type": rule.transform.type, "config": rule.transform.config})
                except ValueError:
                    raise HTTPException(status_code=422, detail=f"Unknown transform: {rule.transform.type}")
            mapping[rule.source_field] = MappingRule(
                source_field=rule.source_field,
                target_field=rule.target_field,
                required=rule.required,
                transform=transform,
                notes=rule.notes,
            )

    errors = mapper.validate(mapping)
    if errors:
        raise HTTPException(status_code=422, detail=[e.to_dict() for e in errors])

    validator = AuthValidator(
        timeout=api_config.request_timeout,
        provider_options=api_config.provider_options,
    )
    try:
        credential = await validator.validate(provider, data.credential, data.options)
    except AuthError as e:
        raise HTTPException(status_code=auth_error_status(e), detail=e.to_dict())

    executor = ImportExecutor(api_config, field_mapper=mapper)
    job = ImportJob(source_id=provider.id.value)
    import_storage.create(job, executor)

    background_tasks.add_task(run_import_task, executor, job, credential, mapping, data.options)
    return job_response(job)


@router.get("/{job_id}", response_model=ImportJobResponse)
async def get_import(job_id: str):
    """Get the progress of an import."""
    entry = import_storage.get(job_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Import not found")
    return job_response(entry.job)


@router.post("/{job_id}/cancel", response_model=ImportJobResponse)
async def cancel_import(job_id: str):
    """Request cancellation of a running import."""
    entry = import_storage.get(job_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Import not found")
    if entry.job.is_terminal:
        raise HTTPException(status_code=400, detail=f"Cannot cancel import in status: {entry.job.status.value}")

    entry.executor.cancel()
    return job_response(entry.job)

