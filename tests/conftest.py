"""
Pytest configuration and shared fixtures.

Usage:
    # Run all tests
    pytest tests/ -v

    # Run one test class
    pytest tests/test_executor.py::TestRetries -v
"""

import threading
import time
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from task_import.adapters import AccountInfo, Page, ProviderAdapter, offset_cursor
from task_import.adapters import jira
from task_import.models import ImportConfig, ProviderId, RawRecord
from task_import.services.executor import ImportExecutor
from task_import.store import InMemoryTaskStore


def make_record(index: int, **data) -> RawRecord:
    """Build a Jira-shaped raw record."""
    fields = {"summary": f"Task {index}", "status": {"name": "To Do"}}
    fields.update(data)
    return RawRecord(external_id=f"ITEM-{index}", data=fields)


def make_pages(page_count: int, page_size: int = 5) -> List[List[RawRecord]]:
    """Build consecutive pages of records numbered from 1."""
    return [
        [make_record(p * page_size + i + 1) for i in range(page_size)]
        for p in range(page_count)
    ]


class ScriptedSource:
    """
    Provider double serving scripted pages.

    Cursor mode uses the page index as cursor; addressable mode uses
    offsets like Jira. `failures` maps a page index to exceptions raised
    (one per request) before the page is served.
    """

    def __init__(
        self,
        pages: List[List[RawRecord]],
        addressable: bool = False,
        total: Optional[int] = None,
        failures: Optional[Dict[int, List[Exception]]] = None,
        delays: Optional[Dict[int, float]] = None
    ):
        self.pages = pages
        self.addressable = addressable
        self.total = total
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.delays = delays or {}
        self.calls: List[int] = []
        self.max_concurrent = 0
        self._active = 0
        self._lock = threading.Lock()

    def fetch_page(self, ctx, cursor) -> Page:
        index = int(cursor or 0)
        if self.addressable:
            index //= ctx.page_size

        with self._lock:
            self.calls.append(index)
            self._active += 1
            self.max_concurrent = max(self.max_concurrent, self._active)
            pending = self.failures.get(index)
            error = pending.pop(0) if pending else None

        try:
            if index in self.delays:
                time.sleep(self.delays[index])
            if error is not None:
                raise error
            if index >= len(self.pages):
                return Page(records=[], has_more=False, total=self.total)
            has_more = index + 1 < len(self.pages)
            return Page(
                records=list(self.pages[index]),
                next_cursor=index + 1 if has_more else None,
                has_more=has_more,
                total=self.total,
            )
        finally:
            with self._lock:
                self._active -= 1

    def adapter(self) -> ProviderAdapter:
        return ProviderAdapter(
            provider_id=ProviderId.JIRA,
            authenticate=lambda ctx: AccountInfo(account_id="u-1", display_name="Test User"),
            fetch_page=self.fetch_page,
            default_mapping=jira.default_mapping,
            page_cursor=offset_cursor if self.addressable else None,
        )


@pytest.fixture
def config() -> ImportConfig:
    """Small pages so tests span several of them."""
    return ImportConfig(page_size=5, fetch_ahead=3, max_attempts=5)


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Backoff sleep that returns immediately and records delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def mapping():
    """Jira default mapping (summary -> title, status.name -> status, ...)."""
    return jira.default_mapping()


@pytest.fixture
def executor(config, no_sleep) -> ImportExecutor:
    return ImportExecutor(config, sleep=no_sleep)


@pytest.fixture
def mock_session() -> MagicMock:
    """requests session double; set session.request.return_value per test."""
    return MagicMock()


def make_response(status_code: int = 200, json_data=None, headers=None) -> MagicMock:
    """Build a requests.Response double."""
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data if json_data is not None else {}
    return response
