"""Import executor - fetches, maps and commits provider records."""

import asyncio
import inspect
import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, Optional, Union

from ..adapters import AdapterContext, Page, ProviderAdapter, get_adapter
from ..errors import (
    ImportEngineError,
    IncompleteStreamError,
    MappingValidationError,
    RecordError,
    RetriesExhaustedError,
    StoreError,
    StoreRejectedError,
)
from ..logging_utils import forget_secret, register_secret
from ..models.config import ImportConfig
from ..models.job import ImportJob, JobError, JobStatus
from ..models.mapping import FieldMapping
from ..models.provider import ProviderDescriptor, ProviderId
from .auth_validator import ValidatedCredential
from .field_mapper import FieldMapper

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, Optional[int], Optional[JobError]], Any]


@dataclass
class PageOutcome:
    """Result of fetching one page: the page or the error that ended its retries."""
    index: int
    page: Optional[Page] = None
    error: Optional[BaseException] = None


class ReorderBuffer:
    """
    Holds page outcomes that completed ahead of their turn.

    Pages may finish in any order; outcomes are released strictly by
    page index so records are committed in provider order.
    """

    def __init__(self):
        self._outcomes: Dict[int, PageOutcome] = {}
        self.next_index = 0

    def put(self, outcome: PageOutcome) -> None:
        self._outcomes[outcome.index] = outcome

    def pop_ready(self) -> Iterator[PageOutcome]:
        """Yield buffered outcomes while the next expected index is present."""
        while self.next_index in self._outcomes:
            outcome = self._outcomes.pop(self.next_index)
            self.next_index += 1
            yield outcome

    def discard_after(self, index: int) -> None:
        """Drop buffered outcomes past `index`."""
        for stale in [i for i in self._outcomes if i > index]:
            del self._outcomes[stale]

    def __len__(self) -> int:
        return len(self._outcomes)


class _Cancelled(Exception):
    """Internal signal: cancellation was requested."""


class ImportExecutor:
    """
    Runs one import job.

    Handles:
    - Bounded fetch-ahead (offset providers fetch several pages at once,
      cursor providers prefetch the next page while committing)
    - In-order commit through a reorder buffer keyed by page index
    - Per-record error capture without stopping the run
    - Exponential backoff with full jitter for rate limits and network failures
    - Cooperative cancellation between records and before page fetches
    """

    def __init__(
        self,
        config: Optional[ImportConfig] = None,
        field_mapper: Optional[FieldMapper] = None,
        sleep: Optional[Callable[[float], Any]] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the executor.

        Args:
            config: Paging, concurrency and retry settings
            field_mapper: Mapper used to turn raw records into tasks
            sleep: Coroutine function used for backoff waits (asyncio.sleep by default)
            rng: Random source for backoff jitter
        """
        self.config = config or ImportConfig()
        self.field_mapper = field_mapper or FieldMapper()
        self._sleep = sleep or asyncio.sleep
        self._random = rng or random.Random()
        self._cancel_requested = False
        self._cancel_event: Optional[asyncio.Event] = None
        self.job: Optional[ImportJob] = None

    def cancel(self) -> None:
        """Request cancellation; the job stops at the next record or page boundary."""
        if not self._cancel_requested:
            logger.info("Import cancellation requested")
        self._cancel_requested = True
        if self._cancel_event is not None:
            self._cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    async def run(
        self,
        provider: Union[ProviderDescriptor, ProviderId, str],
        credential: Union[ValidatedCredential, str],
        mapping: FieldMapping,
        sink: Any,
        on_progress: Optional[ProgressCallback] = None,
        options: Optional[Dict[str, Any]] = None,
        adapter: Optional[ProviderAdapter] = None,
        job: Optional[ImportJob] = None
    ) -> ImportJob:
        """
        Run the import until the job is terminal.

        Args:
            provider: Provider to import from
            credential: Validated credential or raw secret
            mapping: Field mapping to apply to each record
            sink: Task store exposing commit(task); may be sync or async
            on_progress: Called as on_progress(processed, total, latest_error) after every record
            options: Connection options overriding the configured ones
            adapter: Adapter override (defaults to the provider's registered adapter)
            job: Pending job to drive, so callers can publish its id before the run starts

        Returns:
            The terminal ImportJob
        """
        if isinstance(provider, ProviderDescriptor):
            provider = provider.id
        adapter = adapter or get_adapter(provider)
        provider_id = adapter.provider_id
        secret = credential.secret if isinstance(credential, ValidatedCredential) else credential
        register_secret(secret)

        job = job or ImportJob(source_id=provider_id.value)
        job.status = JobStatus.RUNNING
        job.started_at = datetime.utcnow()
        self.job = job
        self._cancel_event = asyncio.Event()
        if self._cancel_requested:
            self._cancel_event.set()

        logger.info(f"Starting import job {job.id} from {provider_id.value}")

        mapping_errors = self.field_mapper.validate(mapping)
        if mapping_errors:
            self._fail(job, MappingValidationError(mapping_errors))
            job.finished_at = datetime.utcnow()
            forget_secret(secret)
            return job

        ctx = AdapterContext(
            credential=secret or "",
            options={**self.config.options_for(provider_id.value), **(options or {})},
            page_size=self.config.page_size,
            timeout=self.config.request_timeout,
        )

        try:
            await self._consume(job, adapter, ctx, mapping, sink, on_progress)
        except _Cancelled:
            job.cancelled = True
            if job.committed:
                job.status = JobStatus.PARTIAL
            else:
                job.status = JobStatus.FAILED
                job.terminal_error = JobError(None, "Import cancelled before any record was committed", "cancelled")
            logger.info(f"Import job {job.id} cancelled after {job.processed} records")
        except ImportEngineError as e:
            self._fail(job, e)
        except Exception as e:
            logger.exception(f"Import job {job.id} crashed")
            self._fail(job, e)
        else:
            if job.total is not None and job.processed < job.total:
                # Keep the reported total so the shortfall stays visible
                shortfall = IncompleteStreamError(job.total, job.processed)
                job.terminal_error = JobError(item_id=None, reason=str(shortfall), code=shortfall.code)
                job.status = JobStatus.PARTIAL if job.committed else JobStatus.FAILED
                logger.error(f"Import job {job.id}: {shortfall}")
            else:
                job.total = job.processed
                job.status = JobStatus.PARTIAL if job.errors else JobStatus.COMPLETED
        finally:
            job.finished_at = datetime.utcnow()
            ctx.session.close()
            forget_secret(secret)

        logger.info(f"Import job {job.id} finished: {job.summary()}")
        return job

    async def _consume(
        self,
        job: ImportJob,
        adapter: ProviderAdapter,
        ctx: AdapterContext,
        mapping: FieldMapping,
        sink: Any,
        on_progress: Optional[ProgressCallback]
    ) -> None:
        """Drive page fetches and commit records in page order."""
        window = self.config.fetch_ahead if adapter.addressable else 1
        by_offset = adapter.addressable
        buffer = ReorderBuffer()
        in_flight: Dict[asyncio.Future, int] = {}
        next_to_schedule = 0
        last_index: Optional[int] = None
        cancel_waiter = asyncio.ensure_future(self._cancel_event.wait())

        def schedule(index: int, cursor: Any) -> None:
            if self._cancel_requested:
                raise _Cancelled()
            task = asyncio.ensure_future(self._fetch_with_retry(adapter, ctx, cursor, index))
            in_flight[task] = index

        def top_up() -> None:
            # Offset providers: keep up to `window` pages outstanding
            nonlocal next_to_schedule
            while (
                len(in_flight) < window
                and next_to_schedule < buffer.next_index + window
                and (last_index is None or next_to_schedule <= last_index)
            ):
                schedule(next_to_schedule, adapter.cursor_for(next_to_schedule, ctx.page_size))
                next_to_schedule += 1

        try:
            if adapter.addressable:
                top_up()
            else:
                schedule(0, None)

            while True:
                if not in_flight:
                    # Nothing outstanding and nothing ready: the source ran dry
                    return

                done, _ = await asyncio.wait(
                    [*in_flight, cancel_waiter],
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if self._cancel_requested:
                    raise _Cancelled()

                for task in done:
                    index = in_flight.pop(task)
                    if task.exception() is not None:
                        buffer.put(PageOutcome(index, error=task.exception()))
                    else:
                        buffer.put(PageOutcome(index, page=task.result()))

                for outcome in buffer.pop_ready():
                    if outcome.error is not None:
                        raise outcome.error

                    page = outcome.page
                    page.index = outcome.index
                    job.pages_fetched += 1

                    if page.total is not None:
                        job.total = max(page.total, job.total or 0, job.processed)
                        if by_offset:
                            last_index = max(0, math.ceil(page.total / ctx.page_size) - 1)

                    exhausted = not page.has_more
                    if by_offset and not exhausted and len(page.records) < ctx.page_size:
                        # The provider capped the page; offsets computed from
                        # page_size would skip records, so follow its cursor.
                        logger.warning(
                            f"Page {page.index} returned {len(page.records)} of {ctx.page_size} "
                            f"records, continuing page by page"
                        )
                        by_offset = False
                        for task in in_flight:
                            task.cancel()
                        in_flight.clear()
                        buffer.discard_after(outcome.index)

                    if not exhausted:
                        if by_offset:
                            top_up()
                        else:
                            schedule(outcome.index + 1, page.next_cursor)

                    logger.debug(f"Committing page {page.index} ({len(page.records)} records)")
                    await self._process_page(job, page, mapping, sink, on_progress)

                    if exhausted:
                        return
        finally:
            cancel_waiter.cancel()
            for task in in_flight:
                task.cancel()

    async def _process_page(
        self,
        job: ImportJob,
        page: Page,
        mapping: FieldMapping,
        sink: Any,
        on_progress: Optional[ProgressCallback]
    ) -> None:
        for record in page.records:
            if self._cancel_requested:
                raise _Cancelled()

            try:
                task = self.field_mapper.apply(mapping, record, source_id=job.source_id)
                try:
                    await self._commit(sink, task)
                except StoreError as e:
                    raise StoreRejectedError(str(e), item_id=record.external_id) from e
                job.committed += 1
            except RecordError as e:
                item_id = e.item_id or record.external_id
                job.errors.append(JobError(item_id=item_id, reason=str(e), code=e.code))
                logger.warning(f"Skipped record {item_id}: {e}")

            job.processed += 1
            if job.total is not None and job.processed > job.total:
                job.total = job.processed

            await self._notify(on_progress, job)

    async def _fetch_with_retry(
        self,
        adapter: ProviderAdapter,
        ctx: AdapterContext,
        cursor: Any,
        index: int
    ) -> Page:
        """Fetch one page, retrying retryable provider errors with backoff."""
        loop = asyncio.get_running_loop()
        attempt = 0

        while True:
            attempt += 1
            try:
                return await loop.run_in_executor(None, adapter.fetch_page, ctx, cursor)
            except ImportEngineError as e:
                if not getattr(e, "retryable", False):
                    raise
                if attempt >= self.config.max_attempts:
                    logger.error(f"Page {index}: giving up after {attempt} attempts: {e}")
                    raise RetriesExhaustedError(attempt, e) from e

                delay = self._backoff_delay(attempt, getattr(e, "retry_after", None))
                logger.warning(
                    f"Page {index}: {e} (attempt {attempt}/{self.config.max_attempts}), "
                    f"retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

    def _backoff_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Full-jitter exponential backoff; Retry-After is honoured up to the cap."""
        cap = self.config.backoff_cap
        ceiling = min(cap, self.config.backoff_base * (2 ** (attempt - 1)))
        delay = self._random.uniform(0, ceiling)
        if retry_after is not None:
            delay = max(delay, min(retry_after, cap))
        return delay

    async def _commit(self, sink: Any, task: Any) -> None:
        result = sink.commit(task)
        if inspect.isawaitable(result):
            await result

    async def _notify(self, on_progress: Optional[ProgressCallback], job: ImportJob) -> None:
        if on_progress is None:
            return
        try:
            result = on_progress(job.processed, job.total, job.latest_error)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    def _fail(self, job: ImportJob, error: BaseException) -> None:
        code = getattr(error, "code", "internal")
        job.status = JobStatus.FAILED
        job.terminal_error = JobError(item_id=None, reason=str(error), code=code)
        logger.error(f"Import job {job.id} failed: {error}")
