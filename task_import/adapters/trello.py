"""Trello adapter.

Trello authenticates with an API key and a user token sent as query
parameters, so the credential is entered as ``api_key:token``. Cards of
one board (``board`` option) are paged backwards with ``before``.
"""

import logging
from typing import Any, Dict, List, Optional

from ..errors import EmptyCredentialError, MalformedResponseError
from ..models.mapping import FieldMapping, MappingRule, TransformSpec, TransformType
from ..models.provider import ProviderId
from ..models.task import RawRecord
from .base import DEFAULT_STATUS_MAP, AccountInfo, AdapterContext, Page, ProviderAdapter
from .http import ProviderClient

logger = logging.getLogger(__name__)

BASE_URL = "https://api.trello.com"
CARD_FIELDS = "name,desc,due,idList,labels,closed"


def _client(ctx: AdapterContext) -> ProviderClient:
    key, sep, token = ctx.credential.strip().partition(":")
    if not sep or not key or not token:
        raise EmptyCredentialError("Trello credential must be given as api_key:token")

    return ProviderClient(
        "trello",
        base_url=ctx.options.get("base_url", BASE_URL),
        session=ctx.session,
        params={"key": key, "token": token},
        timeout=ctx.timeout,
    )


def _board_lists(ctx: AdapterContext, client: ProviderClient, board: str) -> Dict[str, str]:
    """List id -> list name for the board, fetched once per connection."""
    with ctx.lock:
        cached = ctx.cache.get("lists")
    if cached is not None:
        return cached

    lists = client.get(f"/1/boards/{board}/lists", params={"fields": "name"})
    if not isinstance(lists, list):
        raise MalformedResponseError("trello lists response is not a list")
    names = {item.get("id"): item.get("name") for item in lists if isinstance(item, dict)}

    with ctx.lock:
        ctx.cache["lists"] = names
    return names


def authenticate(ctx: AdapterContext) -> AccountInfo:
    data = _client(ctx).get("/1/members/me", params={"fields": "id,fullName,username"})
    if not isinstance(data, dict):
        raise MalformedResponseError("trello member response is not an object")
    return AccountInfo(account_id=data.get("id"), display_name=data.get("fullName") or data.get("username"))


def fetch_page(ctx: AdapterContext, cursor: Optional[Any]) -> Page:
    board = ctx.require_option("board")
    client = _client(ctx)
    lists = _board_lists(ctx, client, board)

    params = {
        "limit": ctx.page_size,
        "fields": CARD_FIELDS,
        "members": "true",
        "member_fields": "fullName,username",
    }
    if cursor:
        params["before"] = cursor

    cards = client.get(f"/1/boards/{board}/cards", params=params)
    if not isinstance(cards, list):
        raise MalformedResponseError("trello cards response is not a list")

    records: List[RawRecord] = []
    for card in cards:
        if not isinstance(card, dict) or not card.get("id"):
            raise MalformedResponseError("trello card without id")
        data = dict(card)
        data["list"] = {"id": card.get("idList"), "name": lists.get(card.get("idList"))}
        records.append(RawRecord(external_id=str(card["id"]), data=data))

    has_more = len(cards) >= ctx.page_size
    return Page(
        records=records,
        next_cursor=records[-1].external_id if has_more else None,
        has_more=has_more,
    )


def default_mapping() -> FieldMapping:
    rules = [
        MappingRule("name", "title", required=True),
        MappingRule("list.name", "status", required=True,
                    transform=TransformSpec.enum_map(DEFAULT_STATUS_MAP, default="todo")),
        MappingRule("members[0].fullName", "assignee"),
        MappingRule("due", "dueDate", transform=TransformSpec(TransformType.DATE)),
        MappingRule("desc", "description"),
        MappingRule("labels", "tags", transform=TransformSpec(TransformType.PLUCK, {"key": "name"})),
    ]
    return {rule.source_field: rule for rule in rules}


ADAPTER = ProviderAdapter(
    provider_id=ProviderId.TRELLO,
    authenticate=authenticate,
    fetch_page=fetch_page,
    default_mapping=default_mapping,
)
