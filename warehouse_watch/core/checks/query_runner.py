"""
Query Runner

Runs one check query as an asynchronous BigQuery job:
submit, poll with doubling backoff, then read every result page.
"""

import asyncio
import functools
from typing import Awaitable, Callable, List, Optional, TYPE_CHECKING

from warehouse_watch.app.config import settings
from warehouse_watch.core.checks.models import JobHandle, JobState, QueryResult, ResultPage
from warehouse_watch.core.exceptions import QueryExecutionError, QueryTimeoutError
from warehouse_watch.core.utils.logging import get_logger

if TYPE_CHECKING:
    from warehouse_watch.core.engine.bq_client import QueryService

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class QueryRunner:
    """
    Drives a query job through SUBMITTED -> POLLING -> COMPLETED | FAILED.

    The backoff starts at poll_backoff_base_ms and doubles after every wait.
    Without poll_max_wait_seconds / poll_max_attempts the loop waits as long
    as the job keeps running.
    """

    def __init__(
        self,
        query_service: "QueryService",
        poll_backoff_base_ms: Optional[int] = None,
        poll_max_wait_seconds: Optional[float] = None,
        poll_max_attempts: Optional[int] = None,
        sleep: Optional[SleepFunc] = None
    ):
        """
        Initialize query runner.

        Args:
            query_service: Remote query execution service
            poll_backoff_base_ms: First backoff interval (defaults to settings)
            poll_max_wait_seconds: Optional wall-clock budget per job (defaults to settings)
            poll_max_attempts: Optional cap on status refreshes per job (defaults to settings)
            sleep: Awaitable sleep used between polls (defaults to asyncio.sleep)
        """
        self.query_service = query_service
        self.poll_backoff_base_ms = poll_backoff_base_ms or settings.poll_backoff_base_ms
        self.poll_max_wait_seconds = (
            poll_max_wait_seconds if poll_max_wait_seconds is not None else settings.poll_max_wait_seconds
        )
        self.poll_max_attempts = (
            poll_max_attempts if poll_max_attempts is not None else settings.poll_max_attempts
        )
        self._sleep = sleep or asyncio.sleep

        self.state: Optional[JobState] = None
        self.backoff_history_ms: List[int] = []

    async def execute(self, sql: str) -> QueryResult:
        """
        Run a query to completion and return all of its rows.

        Args:
            sql: Standard SQL text

        Returns:
            QueryResult with headers, rows in warehouse order, and total_rows

        Raises:
            QueryExecutionError: Submission, polling or page read failed
            QueryTimeoutError: The optional wait budget or attempt cap was exceeded
        """
        self.state = None
        self.backoff_history_ms = []

        try:
            handle = await self._call(None, self.query_service.submit_query, sql)
        except QueryExecutionError:
            self.state = JobState.FAILED
            raise

        self.state = JobState.SUBMITTED
        logger.info(f"Submitted query job {handle.job_id}", extra={"job_id": handle.job_id})

        try:
            first_page = await self._await_completion(handle)
            result = await self._collect_pages(handle, first_page)
        except QueryExecutionError:
            self.state = JobState.FAILED
            raise
        except Exception as e:
            self.state = JobState.FAILED
            raise QueryExecutionError(handle.job_id, e) from e

        self.state = JobState.COMPLETED
        logger.info(
            f"Query job {handle.job_id} completed with {len(result.rows)} rows",
            extra={
                "job_id": handle.job_id,
                "row_count": len(result.rows),
                "total_rows": result.total_rows,
                "polls": len(self.backoff_history_ms)
            }
        )
        return result

    async def _await_completion(self, handle: JobHandle) -> ResultPage:
        """Poll to completion, under the wall-clock budget when one is set."""
        if self.poll_max_wait_seconds is None:
            return await self._poll_until_complete(handle)

        # Service calls raise QueryExecutionError, so a bare TimeoutError here is the budget
        try:
            return await asyncio.wait_for(
                self._poll_until_complete(handle),
                timeout=self.poll_max_wait_seconds
            )
        except asyncio.TimeoutError as e:
            raise QueryTimeoutError(
                handle.job_id,
                waited_seconds=sum(self.backoff_history_ms) / 1000,
                attempts=len(self.backoff_history_ms)
            ) from e

    async def _poll_until_complete(self, handle: JobHandle) -> ResultPage:
        """Refresh the job until it reports complete; returns the first page."""
        page = await self._call(handle.job_id, self.query_service.get_job_results, handle)
        self.state = JobState.POLLING

        backoff_ms = self.poll_backoff_base_ms
        while not page.complete:
            if self.poll_max_attempts is not None and len(self.backoff_history_ms) >= self.poll_max_attempts:
                raise QueryTimeoutError(
                    handle.job_id,
                    waited_seconds=sum(self.backoff_history_ms) / 1000,
                    attempts=len(self.backoff_history_ms)
                )

            logger.debug(
                f"Job {handle.job_id} still running, waiting {backoff_ms}ms",
                extra={"job_id": handle.job_id, "backoff_ms": backoff_ms}
            )
            await self._sleep(backoff_ms / 1000)
            self.backoff_history_ms.append(backoff_ms)
            backoff_ms *= 2

            page = await self._call(handle.job_id, self.query_service.get_job_results, handle)

        handle.complete = True
        handle.page_token = page.page_token
        return page

    async def _collect_pages(self, handle: JobHandle, first_page: ResultPage) -> QueryResult:
        """Append every continuation page to the first one, keeping row order."""
        result = QueryResult(
            headers=list(first_page.headers),
            rows=list(first_page.rows),
            total_rows=first_page.total_rows
        )

        while handle.page_token:
            page = await self._call(handle.job_id, self.query_service.get_job_results, handle, handle.page_token)
            result.rows.extend(page.rows)
            handle.page_token = page.page_token

        if len(result.rows) != result.total_rows:
            logger.warning(
                f"Job {handle.job_id} returned {len(result.rows)} rows but reported {result.total_rows}",
                extra={"job_id": handle.job_id}
            )

        return result

    async def _call(self, job_id: Optional[str], func, *args):
        """
        Run a blocking query service call in the default executor.

        Any error it raises, timeouts from the client included, is wrapped as
        QueryExecutionError with the job id and the original cause.
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(func, *args))
        except Exception as e:
            raise QueryExecutionError(job_id, e) from e
