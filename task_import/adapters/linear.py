"""Linear adapter (GraphQL API)."""

import logging
from typing import Any, List, Optional

from ..errors import MalformedResponseError
from ..models.mapping import FieldMapping, MappingRule, TransformSpec, TransformType
from ..models.provider import ProviderId
from ..models.task import RawRecord
from .base import DEFAULT_PRIORITY_MAP, AccountInfo, AdapterContext, Page, ProviderAdapter
from .http import ProviderClient

logger = logging.getLogger(__name__)

API_URL = "https://api.linear.app/graphql"

VIEWER_QUERY = "query { viewer { id name email } }"

ISSUES_QUERY = """
query Issues($first: Int!, $after: String) {
  issues(first: $first, after: $after) {
    nodes {
      id
      identifier
      title
      description
      dueDate
      priorityLabel
      state { name type }
      assignee { name email }
      labels { nodes { name } }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

# Linear workflow state types -> task statuses
STATE_TYPE_STATUS = {
    "triage": "todo",
    "backlog": "todo",
    "unstarted": "todo",
    "started": "in-progress",
    "completed": "done",
    "canceled": "archived",
}


def _client(ctx: AdapterContext) -> ProviderClient:
    credential = ctx.credential.strip()
    # Personal API keys are sent as-is; OAuth access tokens use Bearer
    auth = credential if credential.startswith("lin_api_") else f"Bearer {credential}"
    return ProviderClient(
        "linear",
        base_url=ctx.options.get("base_url", API_URL),
        session=ctx.session,
        headers={"Authorization": auth, "Content-Type": "application/json"},
        timeout=ctx.timeout,
    )


def authenticate(ctx: AdapterContext) -> AccountInfo:
    data = _client(ctx).graphql(VIEWER_QUERY)
    viewer = data.get("viewer") or {}
    return AccountInfo(account_id=viewer.get("id"), display_name=viewer.get("name") or viewer.get("email"))


def fetch_page(ctx: AdapterContext, cursor: Optional[Any]) -> Page:
    variables = {"first": min(ctx.page_size, 250), "after": cursor}
    data = _client(ctx).graphql(ISSUES_QUERY, variables)

    issues = data.get("issues")
    if not isinstance(issues, dict) or not isinstance(issues.get("nodes"), list):
        raise MalformedResponseError("linear issues response has no nodes")

    records: List[RawRecord] = []
    for node in issues["nodes"]:
        if not isinstance(node, dict) or not node.get("id"):
            raise MalformedResponseError("linear issue without id")
        records.append(RawRecord(
            external_id=str(node["id"]),
            data=node,
            metadata={"identifier": node.get("identifier")},
        ))

    page_info = issues.get("pageInfo") or {}
    has_more = bool(page_info.get("hasNextPage"))
    return Page(
        records=records,
        next_cursor=page_info.get("endCursor") if has_more else None,
        has_more=has_more,
    )


def default_mapping() -> FieldMapping:
    rules = [
        MappingRule("title", "title", required=True),
        MappingRule("state.type", "status", required=True,
                    transform=TransformSpec.enum_map(STATE_TYPE_STATUS, default="todo")),
        MappingRule("assignee.name", "assignee"),
        MappingRule("dueDate", "dueDate", transform=TransformSpec(TransformType.DATE)),
        MappingRule("priorityLabel", "priority",
                    transform=TransformSpec.enum_map(DEFAULT_PRIORITY_MAP, default="medium")),
        MappingRule("description", "description"),
        MappingRule("labels.nodes", "tags", transform=TransformSpec(TransformType.PLUCK, {"key": "name"})),
    ]
    return {rule.source_field: rule for rule in rules}


ADAPTER = ProviderAdapter(
    provider_id=ProviderId.LINEAR,
    authenticate=authenticate,
    fetch_page=fetch_page,
    default_mapping=default_mapping,
)
