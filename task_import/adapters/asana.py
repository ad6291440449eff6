"""Asana adapter (REST API 1.0, personal access token)."""

import logging
from typing import Any, List, Optional

from ..errors import MalformedResponseError
from ..models.mapping import FieldMapping, MappingRule, TransformSpec, TransformType
from ..models.provider import ProviderId
from ..models.task import RawRecord
from .base import AccountInfo, AdapterContext, Page, ProviderAdapter
from .http import ProviderClient

logger = logging.getLogger(__name__)

BASE_URL = "https://app.asana.com/api/1.0"
TASK_FIELDS = "name,completed,assignee.name,due_on,notes,tags.name,memberships.section.name"

COMPLETED_STATUS = {"true": "done", "false": "todo"}


def _client(ctx: AdapterContext) -> ProviderClient:
    return ProviderClient(
        "asana",
        base_url=ctx.options.get("base_url", BASE_URL),
        session=ctx.session,
        headers={"Authorization": f"Bearer {ctx.credential.strip()}"},
        timeout=ctx.timeout,
    )


def authenticate(ctx: AdapterContext) -> AccountInfo:
    body = _client(ctx).get("/users/me")
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict):
        raise MalformedResponseError("asana /users/me response has no data")
    return AccountInfo(account_id=data.get("gid"), display_name=data.get("name") or data.get("email"))


def fetch_page(ctx: AdapterContext, cursor: Optional[Any]) -> Page:
    params = {
        "project": ctx.require_option("project"),
        "limit": min(ctx.page_size, 100),
        "opt_fields": TASK_FIELDS,
    }
    if cursor:
        params["offset"] = cursor

    body = _client(ctx).get("/tasks", params=params)
    items = body.get("data") if isinstance(body, dict) else None
    if not isinstance(items, list):
        raise MalformedResponseError("asana tasks response has no data list")

    records: List[RawRecord] = []
    for item in items:
        if not isinstance(item, dict) or not item.get("gid"):
            raise MalformedResponseError("asana task without gid")
        records.append(RawRecord(external_id=str(item["gid"]), data=item))

    next_page = body.get("next_page") or {}
    next_cursor = next_page.get("offset") if isinstance(next_page, dict) else None

    return Page(records=records, next_cursor=next_cursor, has_more=bool(next_cursor))


def default_mapping() -> FieldMapping:
    rules = [
        MappingRule("name", "title", required=True),
        MappingRule("completed", "status", required=True,
                    transform=TransformSpec.enum_map(COMPLETED_STATUS, default="todo")),
        MappingRule("assignee.name", "assignee"),
        MappingRule("due_on", "dueDate", transform=TransformSpec(TransformType.DATE)),
        MappingRule("notes", "description"),
        MappingRule("tags", "tags", transform=TransformSpec(TransformType.PLUCK, {"key": "name"})),
    ]
    return {rule.source_field: rule for rule in rules}


ADAPTER = ProviderAdapter(
    provider_id=ProviderId.ASANA,
    authenticate=authenticate,
    fetch_page=fetch_page,
    default_mapping=default_mapping,
)
