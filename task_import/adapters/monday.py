"""monday.com adapter (GraphQL API v2)."""

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

API_URL = "https://api.monday.com/v2"
API_VERSION = "2024-01"

ME_QUERY = "query { me { id name email } }"

ITEM_FIELDS = "id name column_values { id text }"

FIRST_PAGE_QUERY = """
query Items($board: [ID!], $limit: Int!) {
  boards(ids: $board) {
    items_page(limit: $limit) { cursor items { %s } }
  }
}
""" % ITEM_FIELDS

NEXT_PAGE_QUERY = """
query NextItems($cursor: String!, $limit: Int!) {
  next_items_page(cursor: $cursor, limit: $limit) { cursor items { %s } }
}
""" % ITEM_FIELDS


def _client(ctx: AdapterContext) -> ProviderClient:
    return ProviderClient(
        "monday",
        base_url=ctx.options.get("base_url", API_URL),
        session=ctx.session,
        headers={
            "Authorization": ctx.credential.strip(),
            "API-Version": API_VERSION,
            "Content-Type": "application/json",
        },
        timeout=ctx.timeout,
    )


def _flatten_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Lift column values to top-level keys by column id."""
    data = {"id": item.get("id"), "name": item.get("name")}
    for column in item.get("column_values") or []:
        if isinstance(column, dict) and column.get("id"):
            data[column["id"]] = column.get("text") or None
    return data


def authenticate(ctx: AdapterContext) -> AccountInfo:
    data = _client(ctx).graphql(ME_QUERY)
    me = data.get("me") or {}
    return AccountInfo(account_id=str(me.get("id")) if me.get("id") else None,
                       display_name=me.get("name") or me.get("email"))


def fetch_page(ctx: AdapterContext, cursor: Optional[Any]) -> Page:
    client = _client(ctx)
    limit = min(ctx.page_size, 500)

    if cursor:
        data = client.graphql(NEXT_PAGE_QUERY, {"cursor": cursor, "limit": limit})
        items_page = data.get("next_items_page")
    else:
        data = client.graphql(FIRST_PAGE_QUERY, {"board": [ctx.require_option("board")], "limit": limit})
        boards = data.get("boards") or []
        if not boards:
            raise MalformedResponseError("monday board not found")
        items_page = boards[0].get("items_page")

    if not isinstance(items_page, dict) or not isinstance(items_page.get("items"), list):
        raise MalformedResponseError("monday items_page response has no items")

    records: List[RawRecord] = []
    for item in items_page["items"]:
        if not isinstance(item, dict) or not item.get("id"):
            raise MalformedResponseError("monday item without id")
        records.append(RawRecord(external_id=str(item["id"]), data=_flatten_item(item)))

    next_cursor = items_page.get("cursor")
    return Page(records=records, next_cursor=next_cursor, has_more=bool(next_cursor))


def default_mapping() -> FieldMapping:
    rules = [
        MappingRule("name", "title", required=True),
        MappingRule("status", "status", required=True,
                    transform=TransformSpec.enum_map(DEFAULT_STATUS_MAP, default="todo")),
        MappingRule("person", "assignee"),
        MappingRule("date", "dueDate", transform=TransformSpec(TransformType.DATE)),
        MappingRule("priority", "priority",
                    transform=TransformSpec.enum_map(DEFAULT_PRIORITY_MAP, default="medium")),
        MappingRule("tags", "tags", transform=TransformSpec(TransformType.SPLIT, {"separator": ","})),
    ]
    return {rule.source_field: rule for rule in rules}


ADAPTER = ProviderAdapter(
    provider_id=ProviderId.MONDAY,
    authenticate=authenticate,
    fetch_page=fetch_page,
    default_mapping=default_mapping,
)
