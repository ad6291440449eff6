"""Tests for ImportExecutor.

Covers the run lifecycle, per-record failures, retry with backoff,
in-order commits under fetch-ahead, idempotent re-runs and cancellation.
"""

import asyncio
import random
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import ScriptedSource, make_pages, make_record
from task_import.adapters import AccountInfo, Page, ProviderAdapter, jira, offset_cursor
from task_import.errors import (
    MalformedResponseError,
    ProviderNetworkError,
    RateLimitedError,
    StoreError,
)
from task_import.logging_utils import registered_secret_count
from task_import.models import ImportConfig, JobStatus, MappingRule, ProviderId
from task_import.services.executor import ImportExecutor, PageOutcome, ReorderBuffer
from task_import.store import InMemoryTaskStore


class CappedOffsetSource:
    """Offset-paged provider that silently serves at most `cap` records per request."""

    def __init__(self, count: int, cap: int):
        self.records = [make_record(i) for i in range(1, count + 1)]
        self.cap = cap
        self.offsets = []

    def fetch_page(self, ctx, cursor) -> Page:
        offset = int(cursor or 0)
        self.offsets.append(offset)
        chunk = self.records[offset:offset + min(ctx.page_size, self.cap)]
        end = offset + len(chunk)
        has_more = end < len(self.records)
        return Page(
            records=chunk,
            next_cursor=end if has_more else None,
            has_more=has_more,
            total=len(self.records),
        )

    def adapter(self) -> ProviderAdapter:
        return ProviderAdapter(
            provider_id=ProviderId.JIRA,
            authenticate=lambda ctx: AccountInfo(account_id="u-1"),
            fetch_page=self.fetch_page,
            default_mapping=jira.default_mapping,
            page_cursor=offset_cursor,
        )


async def run(executor, source, mapping, store, **kwargs):
    return await executor.run(
        ProviderId.JIRA,
        "token-abcdef123456",
        mapping,
        store,
        adapter=source.adapter(),
        **kwargs,
    )


class TestReorderBuffer:
    """Test in-order release of page outcomes."""

    def test_releases_in_index_order(self) -> None:
        """Outcomes arriving out of order are released by index."""
        buffer = ReorderBuffer()
        buffer.put(PageOutcome(2))
        buffer.put(PageOutcome(1))
        assert list(buffer.pop_ready()) == []

        buffer.put(PageOutcome(0))
        assert [o.index for o in buffer.pop_ready()] == [0, 1, 2]
        assert buffer.next_index == 3
        assert len(buffer) == 0

    def test_holds_back_after_gap(self) -> None:
        """A missing index blocks later outcomes."""
        buffer = ReorderBuffer()
        buffer.put(PageOutcome(0))
        buffer.put(PageOutcome(2))
        assert [o.index for o in buffer.pop_ready()] == [0]
        assert len(buffer) == 1

    def test_discard_after(self) -> None:
        buffer = ReorderBuffer()
        for index in (1, 2, 3):
            buffer.put(PageOutcome(index))

        buffer.discard_after(1)

        assert len(buffer) == 1
        buffer.put(PageOutcome(0))
        assert [o.index for o in buffer.pop_ready()] == [0, 1]


class TestRunLifecycle:
    """Test successful and partial runs."""

    @pytest.mark.asyncio
    async def test_finite_stream_completes(self, executor, mapping, store) -> None:
        """All records imported: completed, processed == total, no errors."""
        source = ScriptedSource(make_pages(3))

        job = await run(executor, source, mapping, store)

        assert job.status == JobStatus.COMPLETED
        assert job.processed == 15
        assert job.total == 15
        assert job.committed == 15
        assert job.errors == []
        assert job.finished_at is not None
        assert len(store) == 15

    @pytest.mark.asyncio
    async def test_tasks_are_mapped(self, executor, mapping, store) -> None:
        """Committed tasks carry the mapped fields and identity."""
        record = make_record(
            1,
            summary="Fix login",
            status={"name": "In Progress"},
            assignee={"displayName": "Ada"},
            duedate="2024-05-01",
            priority={"name": "Highest"},
            labels=["auth", "bug"],
        )
        source = ScriptedSource([[record]])

        await run(executor, source, mapping, store)

        task = store.get("jira", "ITEM-1")
        assert task.title == "Fix login"
        assert task.status == "in-progress"
        assert task.assignee == "Ada"
        assert task.due_date == "2024-05-01"
        assert task.priority == "urgent"
        assert task.tags == ["auth", "bug"]

    @pytest.mark.asyncio
    async def test_missing_required_value_is_skipped(self, executor, mapping, store) -> None:
        """A record without a title is recorded as an error and later records continue."""
        pages = make_pages(2)
        pages[0][2] = make_record(3, summary=None)
        source = ScriptedSource(pages)

        job = await run(executor, source, mapping, store)

        assert job.status == JobStatus.PARTIAL
        assert job.processed == 10
        assert job.committed == 9
        assert len(job.errors) == 1
        assert job.errors[0].item_id == "ITEM-3"
        assert job.errors[0].code == "missing_required_field"
        assert store.get("jira", "ITEM-4") is not None

    @pytest.mark.asyncio
    async def test_store_rejection_is_record_error(self, executor, mapping) -> None:
        """StoreError from the sink is recorded as store_rejected."""
        sink = MagicMock()
        sink.commit.side_effect = [None, StoreError("duplicate key"), None]
        source = ScriptedSource([[make_record(1), make_record(2), make_record(3)]])

        job = await run(executor, source, mapping, sink)

        assert job.status == JobStatus.PARTIAL
        assert job.committed == 2
        assert job.errors[0].code == "store_rejected"
        assert job.errors[0].item_id == "ITEM-2"

    @pytest.mark.asyncio
    async def test_async_sink(self, executor, mapping) -> None:
        """A sink whose commit is a coroutine is awaited."""
        sink = MagicMock()
        sink.commit = AsyncMock(return_value=None)
        source = ScriptedSource(make_pages(1))

        job = await run(executor, source, mapping, sink)

        assert job.status == JobStatus.COMPLETED
        assert sink.commit.await_count == 5

    @pytest.mark.asyncio
    async def test_invalid_mapping_fails_job(self, executor, store) -> None:
        """A mapping missing a required field fails before fetching."""
        source = ScriptedSource(make_pages(1))
        mapping = {"summary": MappingRule("summary", "title")}

        job = await run(executor, source, mapping, store)

        assert job.status == JobStatus.FAILED
        assert job.terminal_error.code == "invalid_mapping"
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_empty_source_completes(self, executor, mapping, store) -> None:
        """A provider with no items completes with zero totals."""
        source = ScriptedSource([[]])

        job = await run(executor, source, mapping, store)

        assert job.status == JobStatus.COMPLETED
        assert job.processed == 0
        assert job.total == 0

    @pytest.mark.asyncio
    async def test_stream_ending_short_of_total(self, executor, mapping, store) -> None:
        """Paging that stops before the reported total is not a completed import."""
        source = ScriptedSource(make_pages(2), total=20)

        job = await run(executor, source, mapping, store)

        assert job.status == JobStatus.PARTIAL
        assert job.processed == 10
        assert job.total == 20
        assert job.terminal_error.code == "incomplete"
        assert len(store) == 10

    @pytest.mark.asyncio
    async def test_credential_released_after_run(self, executor, mapping, store) -> None:
        """The run stops redacting its credential once it is over."""
        before = registered_secret_count()

        await executor.run(
            ProviderId.JIRA, "credential-for-one-run", mapping, store,
            adapter=ScriptedSource(make_pages(1)).adapter(),
        )

        assert registered_secret_count() == before


class TestProgress:
    """Test progress reporting."""

    @pytest.mark.asyncio
    async def test_progress_after_every_record(self, executor, mapping, store) -> None:
        """on_progress receives (processed, total, latest_error) per record."""
        pages = make_pages(2)
        pages[1][0] = make_record(6, summary="")
        calls = []

        await run(executor, ScriptedSource(pages, total=10), mapping, store,
                  on_progress=lambda p, t, e: calls.append((p, t, e)))

        assert [c[0] for c in calls] == list(range(1, 11))
        assert all(c[1] == 10 for c in calls)
        assert calls[4][2] is None
        assert calls[5][2].item_id == "ITEM-6"

    @pytest.mark.asyncio
    async def test_async_progress_callback(self, executor, mapping, store) -> None:
        """Coroutine callbacks are awaited."""
        callback = AsyncMock(return_value=None)

        await run(executor, ScriptedSource(make_pages(1)), mapping, store, on_progress=callback)

        assert callback.await_count == 5

    @pytest.mark.asyncio
    async def test_failing_callback_is_ignored(self, executor, mapping, store) -> None:
        """A callback that raises does not stop the import."""
        callback = MagicMock(side_effect=RuntimeError("ui went away"))

        job = await run(executor, ScriptedSource(make_pages(2)), mapping, store, on_progress=callback)

        assert job.status == JobStatus.COMPLETED
        assert callback.call_count == 10

    @pytest.mark.asyncio
    async def test_processed_never_exceeds_total(self, executor, mapping, store) -> None:
        """An under-reported total is raised as records arrive."""
        calls = []

        job = await run(executor, ScriptedSource(make_pages(2), total=3), mapping, store,
                        on_progress=lambda p, t, e: calls.append((p, t)))

        assert all(t is None or p <= t for p, t in calls)
        assert job.total == job.processed == 10


class TestRetries:
    """Test backoff and retry of retryable provider errors."""

    @pytest.mark.asyncio
    async def test_rate_limit_then_success(self, executor, mapping, store, no_sleep) -> None:
        """429 on the first two requests, then success: completed."""
        source = ScriptedSource(
            make_pages(2),
            failures={0: [RateLimitedError(), RateLimitedError()]},
        )

        job = await run(executor, source, mapping, store)

        assert job.status == JobStatus.COMPLETED
        assert job.processed == 10
        assert source.calls[:3] == [0, 0, 0]
        assert no_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_past_cap_fails(self, executor, mapping, store, no_sleep) -> None:
        """429 beyond five attempts fails the job; earlier commits stay."""
        source = ScriptedSource(
            make_pages(3),
            failures={1: [RateLimitedError() for _ in range(5)]},
        )

        job = await run(executor, source, mapping, store)

        assert job.status == JobStatus.FAILED
        assert job.terminal_error.code == "retries_exhausted"
        assert "Rate limited" in job.terminal_error.reason
        assert source.calls.count(1) == 5
        assert no_sleep.await_count == 4
        assert job.committed == 5
        assert len(store) == 5

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self, executor, mapping, store) -> None:
        """Network failures are retried like rate limits."""
        source = ScriptedSource(make_pages(1), failures={0: [ProviderNetworkError("reset")]})

        job = await run(executor, source, mapping, store)

        assert job.status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_malformed_response_is_not_retried(self, executor, mapping, store, no_sleep) -> None:
        """Errors outside the retry envelope fail immediately."""
        source = ScriptedSource(make_pages(2), failures={0: [MalformedResponseError("bad body")]})

        job = await run(executor, source, mapping, store)

        assert job.status == JobStatus.FAILED
        assert job.terminal_error.code == "malformed"
        assert source.calls == [0]
        assert no_sleep.await_count == 0
        assert job.processed == 0

    @pytest.mark.asyncio
    async def test_retry_after_is_honoured(self, config, mapping, store, no_sleep) -> None:
        """Retry-After sets a floor on the backoff delay."""
        executor = ImportExecutor(config, sleep=no_sleep, rng=random.Random(1))
        source = ScriptedSource(make_pages(1), failures={0: [RateLimitedError(retry_after=7)]})

        await run(executor, source, mapping, store)

        assert no_sleep.await_args_list[0].args[0] == 7

    def test_backoff_is_capped(self, config) -> None:
        """Delays never exceed the cap, even for large Retry-After values."""
        executor = ImportExecutor(config, rng=random.Random(0))
        for attempt in range(1, 10):
            assert 0 <= executor._backoff_delay(attempt) <= config.backoff_cap
        assert executor._backoff_delay(1, retry_after=120) == config.backoff_cap


class TestFetchAhead:
    """Test bounded concurrency and in-order commits."""

    @pytest.mark.asyncio
    async def test_addressable_pages_commit_in_order(self, executor, mapping, store) -> None:
        """A slow first page does not let later pages commit ahead of it."""
        source = ScriptedSource(make_pages(4), addressable=True, total=20, delays={0: 0.1})

        job = await run(executor, source, mapping, store)

        assert job.status == JobStatus.COMPLETED
        assert [t.external_id for t in store.all()] == [f"ITEM-{i}" for i in range(1, 21)]
        assert source.max_concurrent <= 3
        assert sorted(source.calls) == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_cursor_pages_commit_in_order(self, executor, mapping, store) -> None:
        """Cursor providers fetch one page ahead and commit in order."""
        source = ScriptedSource(make_pages(3))

        await run(executor, source, mapping, store)

        assert source.calls == [0, 1, 2]
        assert source.max_concurrent == 1
        assert [t.external_id for t in store.all()] == [f"ITEM-{i}" for i in range(1, 16)]

    @pytest.mark.asyncio
    async def test_error_on_later_page_after_earlier_commits(self, executor, mapping, store) -> None:
        """A failed page is surfaced only after preceding pages are committed."""
        source = ScriptedSource(
            make_pages(3),
            addressable=True,
            total=15,
            failures={2: [MalformedResponseError("bad body")]},
        )

        job = await run(executor, source, mapping, store)

        assert job.status == JobStatus.FAILED
        assert job.committed == 10

    @pytest.mark.asyncio
    async def test_capped_pages_lose_nothing(self, mapping, store, no_sleep) -> None:
        """A provider serving fewer records than asked is followed by cursor."""
        executor = ImportExecutor(ImportConfig(page_size=10, fetch_ahead=3), sleep=no_sleep)
        source = CappedOffsetSource(count=25, cap=4)

        job = await run(executor, source, mapping, store)

        assert job.status == JobStatus.COMPLETED
        assert job.processed == job.total == 25
        assert [t.external_id for t in store.all()] == [f"ITEM-{i}" for i in range(1, 26)]
        assert 4 in source.offsets


class TestIdempotency:
    """Test that re-running an import does not duplicate tasks."""

    @pytest.mark.asyncio
    async def test_rerun_does_not_duplicate(self, config, mapping, no_sleep) -> None:
        """Items 1-5 committed, item 6 failed; the re-run leaves six tasks."""
        store = InMemoryTaskStore()
        pages = [[make_record(i) for i in range(1, 7)]]
        pages[0][5] = make_record(6, summary=None)

        first = await run(ImportExecutor(config, sleep=no_sleep), ScriptedSource(pages), mapping, store)
        assert first.status == JobStatus.PARTIAL
        assert len(store) == 5

        pages[0][5] = make_record(6)
        second = await run(ImportExecutor(config, sleep=no_sleep), ScriptedSource(pages), mapping, store)

        assert second.status == JobStatus.COMPLETED
        assert len(store) == 6
        assert [t.external_id for t in store.all()] == [f"ITEM-{i}" for i in range(1, 7)]


class TestCancellation:
    """Test cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_between_records(self, executor, mapping, store) -> None:
        """Cancelling mid-run ends the job as partial with what was committed."""
        def on_progress(processed, total, latest_error):
            if processed == 3:
                executor.cancel()

        job = await run(executor, ScriptedSource(make_pages(3)), mapping, store, on_progress=on_progress)

        assert job.status == JobStatus.PARTIAL
        assert job.cancelled is True
        assert job.processed == 3
        assert len(store) == 3

    @pytest.mark.asyncio
    async def test_cancel_before_start_fails(self, executor, mapping, store) -> None:
        """Nothing committed: a cancelled job is failed."""
        source = ScriptedSource(make_pages(2))
        executor.cancel()

        job = await run(executor, source, mapping, store)

        assert job.status == JobStatus.FAILED
        assert job.cancelled is True
        assert job.terminal_error.code == "cancelled"
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_cancel_while_page_in_flight(self, executor, mapping, store) -> None:
        """Cancelling during a slow fetch stops the run without waiting for the page."""
        source = ScriptedSource(make_pages(3), delays={1: 0.5})

        async def cancel_once_page_one_requested():
            while 1 not in source.calls:
                await asyncio.sleep(0.01)
            executor.cancel()

        canceller = asyncio.ensure_future(cancel_once_page_one_requested())
        started = time.monotonic()
        job = await run(executor, source, mapping, store)
        elapsed = time.monotonic() - started
        await canceller

        assert job.status == JobStatus.PARTIAL
        assert job.cancelled is True
        assert job.committed == 5
        assert [t.external_id for t in store.all()] == [f"ITEM-{i}" for i in range(1, 6)]
        assert 2 not in source.calls
        assert elapsed < 0.45
