"""Jira adapter.

Credentials are either ``email:api_token`` (HTTP Basic, Jira Cloud) or a
bare personal access token (Bearer, Jira Data Center). The site URL is
taken from the ``base_url`` provider option.

Jira Cloud searches through ``/rest/api/3/search/jql``, which pages with
an opaque ``nextPageToken`` and reports no total. Data Center still serves
the v2 offset search (``startAt``/``total``). Both are read page by page.
"""

import base64
import logging
from typing import Any, Dict, List, Optional

from ..errors import MalformedResponseError
from ..models.mapping import FieldMapping, MappingRule, TransformSpec, TransformType
from ..models.provider import ProviderId
from ..models.task import RawRecord
from .base import (
    DEFAULT_PRIORITY_MAP,
    DEFAULT_STATUS_MAP,
    AccountInfo,
    AdapterContext,
    Page,
    ProviderAdapter,
)
from .http import ProviderClient

logger = logging.getLogger(__name__)

SEARCH_FIELDS = "summary,status,assignee,duedate,priority,description,labels"
DEFAULT_JQL = "order by created ASC"
MAX_RESULTS = 100  # Jira caps search pages that return fields


def _is_cloud(ctx: AdapterContext) -> bool:
    return ":" in ctx.credential.strip()


def _client(ctx: AdapterContext) -> ProviderClient:
    credential = ctx.credential.strip()
    if _is_cloud(ctx):
        token = base64.b64encode(credential.encode()).decode()
        auth = f"Basic {token}"
    else:
        auth = f"Bearer {credential}"

    return ProviderClient(
        "jira",
        base_url=ctx.require_option("base_url"),
        session=ctx.session,
        headers={"Authorization": auth},
        timeout=ctx.timeout,
    )


def _api_root(ctx: AdapterContext) -> str:
    return "/rest/api/3" if _is_cloud(ctx) else "/rest/api/2"


def _adf_text(node: Any) -> str:
    """Flatten an Atlassian Document Format node to plain text."""
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if isinstance(node, list):
        return "".join(_adf_text(n) for n in node)
    if isinstance(node, dict):
        if node.get("type") == "text":
            return node.get("text", "")
        text = _adf_text(node.get("content", []))
        if node.get("type") in ("paragraph", "heading", "listItem", "codeBlock"):
            text += "\n"
        return text
    return str(node)


def _parse_issues(data: Any) -> List[RawRecord]:
    issues = data.get("issues") if isinstance(data, dict) else None
    if not isinstance(issues, list):
        raise MalformedResponseError("jira search response has no issues list")

    records: List[RawRecord] = []
    for issue in issues:
        if not isinstance(issue, dict) or not (issue.get("key") or issue.get("id")):
            raise MalformedResponseError("jira issue without key")
        fields: Dict[str, Any] = dict(issue.get("fields") or {})
        if isinstance(fields.get("description"), (dict, list)):
            fields["description"] = _adf_text(fields["description"]).strip()
        records.append(RawRecord(
            external_id=str(issue.get("key") or issue.get("id")),
            data={"id": issue.get("id"), "key": issue.get("key"), **fields},
        ))
    return records


def authenticate(ctx: AdapterContext) -> AccountInfo:
    data = _client(ctx).get(f"{_api_root(ctx)}/myself")
    return AccountInfo(
        account_id=data.get("accountId") or data.get("name"),
        display_name=data.get("displayName") or data.get("emailAddress"),
    )


def _fetch_cloud_page(ctx: AdapterContext, cursor: Optional[Any]) -> Page:
    params = {
        "jql": ctx.options.get("jql", DEFAULT_JQL),
        "maxResults": min(ctx.page_size, MAX_RESULTS),
        "fields": SEARCH_FIELDS,
    }
    if cursor:
        params["nextPageToken"] = cursor
    data = _client(ctx).get("/rest/api/3/search/jql", params=params)
    records = _parse_issues(data)

    token = data.get("nextPageToken")
    has_more = bool(token) and not data.get("isLast", False)
    return Page(
        records=records,
        next_cursor=token if has_more else None,
        has_more=has_more,
    )


def _fetch_server_page(ctx: AdapterContext, cursor: Optional[Any]) -> Page:
    start_at = int(cursor or 0)
    max_results = min(ctx.page_size, MAX_RESULTS)
    params = {
        "jql": ctx.options.get("jql", DEFAULT_JQL),
        "startAt": start_at,
        "maxResults": max_results,
        "fields": SEARCH_FIELDS,
    }
    data = _client(ctx).get("/rest/api/2/search", params=params)
    records = _parse_issues(data)

    total = data.get("total")
    if isinstance(total, int):
        has_more = bool(records) and start_at + len(records) < total
    else:
        total = None
        has_more = len(records) >= max_results

    # The next offset follows what the server returned, not what was asked for
    return Page(
        records=records,
        next_cursor=start_at + len(records) if has_more else None,
        has_more=has_more,
        total=total,
    )


def fetch_page(ctx: AdapterContext, cursor: Optional[Any]) -> Page:
    if _is_cloud(ctx):
        return _fetch_cloud_page(ctx, cursor)
    return _fetch_server_page(ctx, cursor)


def default_mapping() -> FieldMapping:
    rules = [
        MappingRule("summary", "title", required=True),
        MappingRule("status.name", "status", required=True,
                    transform=TransformSpec.enum_map(DEFAULT_STATUS_MAP, default="todo")),
        MappingRule("assignee.displayName", "assignee"),
        MappingRule("duedate", "dueDate", transform=TransformSpec(TransformType.DATE)),
        MappingRule("priority.name", "priority",
                    transform=TransformSpec.enum_map(DEFAULT_PRIORITY_MAP, default="medium")),
        MappingRule("description", "description"),
        MappingRule("labels", "tags"),
    ]
    return {rule.source_field: rule for rule in rules}


ADAPTER = ProviderAdapter(
    provider_id=ProviderId.JIRA,
    authenticate=authenticate,
    fetch_page=fetch_page,
    default_mapping=default_mapping,
)
