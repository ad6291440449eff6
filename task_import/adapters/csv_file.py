"""CSV file adapter.

Reads a local CSV export (``path`` option). Rows are parsed once per
connection and served in offset pages so the executor can address them
directly. The record id comes from the ``id_column`` option (default
``id``), falling back to the 1-based row number.
"""

import csv
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import ProviderError
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
    offset_cursor,
)

logger = logging.getLogger(__name__)


def _read_rows(file_path: Path, encoding: str) -> List[Dict[str, Any]]:
    with open(file_path, "r", encoding=encoding, newline="") as f:
        sample = f.read(8192)
        f.seek(0)

        try:
            delimiter = csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            delimiter = ","

        reader = csv.DictReader(f, delimiter=delimiter)
        rows = []
        for row in reader:
            cleaned = {}
            for key, value in row.items():
                if key is None:
                    continue
                value = value.strip() if isinstance(value, str) else value
                cleaned[key.strip()] = value if value != "" else None
            rows.append(cleaned)
        return rows


def _load(ctx: AdapterContext) -> List[RawRecord]:
    """Parse the file once and cache the records on the context."""
    with ctx.lock:
        if "records" in ctx.cache:
            return ctx.cache["records"]

        file_path = Path(ctx.require_option("path"))
        if not file_path.is_file():
            raise ProviderError(f"CSV file not found: {file_path}")

        try:
            try:
                rows = _read_rows(file_path, ctx.options.get("encoding", "utf-8"))
            except UnicodeDecodeError:
                logger.warning(f"UTF-8 decode failed, trying latin-1 for {file_path}")
                rows = _read_rows(file_path, "latin-1")
        except (OSError, csv.Error) as e:
            raise ProviderError(f"Failed to read CSV file {file_path}: {e}") from e

        id_column = ctx.options.get("id_column", "id")
        records = []
        for row_num, row in enumerate(rows, start=1):
            external_id = row.get(id_column) or str(row_num)
            records.append(RawRecord(
                external_id=str(external_id),
                data=row,
                metadata={"row": row_num, "file": str(file_path)},
            ))

        logger.info(f"Read {len(records)} rows from {file_path}")
        ctx.cache["records"] = records
        return records


def authenticate(ctx: AdapterContext) -> AccountInfo:
    # Local files need no credential
    return AccountInfo(display_name="local file")


def fetch_page(ctx: AdapterContext, cursor: Optional[Any]) -> Page:
    records = _load(ctx)
    start = int(cursor or 0)
    end = start + ctx.page_size
    has_more = end < len(records)
    return Page(
        records=records[start:end],
        next_cursor=end if has_more else None,
        has_more=has_more,
        total=len(records),
    )


def default_mapping() -> FieldMapping:
    rules = [
        MappingRule("title", "title", required=True),
        MappingRule("status", "status", required=True,
                    transform=TransformSpec.enum_map(DEFAULT_STATUS_MAP, default="todo")),
        MappingRule("assignee", "assignee"),
        MappingRule("due_date", "dueDate", transform=TransformSpec(TransformType.DATE)),
        MappingRule("priority", "priority",
                    transform=TransformSpec.enum_map(DEFAULT_PRIORITY_MAP, default="medium")),
        MappingRule("description", "description"),
        MappingRule("tags", "tags", transform=TransformSpec(TransformType.SPLIT, {"separator": ","})),
    ]
    return {rule.source_field: rule for rule in rules}


ADAPTER = ProviderAdapter(
    provider_id=ProviderId.CSV,
    authenticate=authenticate,
    fetch_page=fetch_page,
    default_mapping=default_mapping,
    page_cursor=offset_cursor,
)
