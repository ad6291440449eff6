"""Read access to tasks committed by API imports."""

from typing import Optional

from fastapi import APIRouter, HTTPException

from ..models import TaskListResponse, TaskResponse
from ..storage import task_store

router = APIRouter()


def _task_response(task) -> TaskResponse:
    return TaskResponse(
        source_id=task.source_id,
        external_id=task.external_id,
        title=task.title,
        status=task.status,
        assignee=task.assignee,
        due_date=task.due_date,
        priority=task.priority,
        description=task.description,
        tags=list(task.tags),
    )


@router.get("", response_model=TaskListResponse)
async def list_tasks(source_id: Optional[str] = None):
    """List imported tasks, optionally for one source."""
    tasks = [t for t in task_store.all() if source_id is None or t.source_id == source_id]
    return TaskListResponse(tasks=[_task_response(t) for t in tasks], total=len(tasks))


@router.get("/{source_id}/{external_id}", response_model=TaskResponse)
async def get_task(source_id: str, external_id: str):
    """Get one imported task by its identity."""
    task = task_store.get(source_id, external_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return _task_response(task)
