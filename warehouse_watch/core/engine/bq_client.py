"""
BigQuery Query Service
Submits check queries as asynchronous jobs and reads their results page by page.
"""

from typing import Any, List, Optional, Protocol, runtime_checkable

from google.cloud import bigquery
from google.cloud.bigquery import QueryJobConfig

from warehouse_watch.app.config import settings
from warehouse_watch.core.checks.models import JobHandle, ResultPage
from warehouse_watch.core.exceptions import JobFailedError
from warehouse_watch.core.utils.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class QueryService(Protocol):
    """
    Interface of the remote query execution service.

    Both methods are blocking; QueryRunner moves them off the event loop.
    """

    def submit_query(self, sql: str) -> JobHandle:
        """Start a standard-SQL job and return its handle."""
        ...

    def get_job_results(self, handle: JobHandle, page_token: Optional[str] = None) -> ResultPage:
        """
        Read job status and, once complete, one page of rows.

        Returns a page with complete=False while the job is still running.
        Raises if the job finished with an error.
        """
        ...


def _cell_to_str(value: Any) -> str:
    """Render a BigQuery cell the way the report prints it (NULL as empty)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class BigQueryQueryService:
    """
    QueryService backed by google-cloud-bigquery.

    Jobs are polled with get_job rather than QueryJob.result() so the caller
    owns the wait between polls.
    """

    def __init__(
        self,
        project_id: Optional[str] = None,
        location: Optional[str] = None,
        default_dataset: Optional[str] = None,
        page_size: Optional[int] = None,
        client: Optional[bigquery.Client] = None
    ):
        """
        Initialize query service.

        Args:
            project_id: GCP project ID (defaults to settings)
            location: BigQuery location (defaults to settings)
            default_dataset: Dataset for unqualified table names (defaults to settings)
            page_size: Rows per result page (defaults to settings)
            client: Pre-built BigQuery client (mainly for tests)
        """
        self.project_id = project_id or settings.gcp_project_id
        self.location = location or settings.bigquery_location
        self.default_dataset = default_dataset or settings.bigquery_default_dataset
        self.page_size = page_size or settings.bq_results_page_size
        self._client = client

    @property
    def client(self) -> bigquery.Client:
        """Lazy-load BigQuery client."""
        if self._client is None:
            self._client = bigquery.Client(
                project=self.project_id,
                location=self.location
            )
            logger.info(
                "Initialized BigQuery client",
                extra={
                    "project_id": self.project_id,
                    "location": self.location
                }
            )
        return self._client

    def submit_query(self, sql: str) -> JobHandle:
        job_config = QueryJobConfig(use_legacy_sql=False)
        if self.default_dataset:
            job_config.default_dataset = f"{self.project_id}.{self.default_dataset}"

        job = self.client.query(
            sql,
            job_config=job_config,
            project=self.project_id,
            location=self.location
        )

        logger.debug(
            f"Submitted query job {job.job_id}",
            extra={"job_id": job.job_id, "query_preview": sql[:100]}
        )
        return JobHandle(job_id=job.job_id, complete=False, location=job.location)

    def get_job_results(self, handle: JobHandle, page_token: Optional[str] = None) -> ResultPage:
        job = self.client.get_job(
            handle.job_id,
            project=self.project_id,
            location=handle.location or self.location
        )

        if job.state != "DONE":
            return ResultPage(complete=False)

        if job.error_result:
            raise JobFailedError(
                job.job_id,
                job.error_result.get("reason"),
                job.error_result.get("message", "query job failed")
            )

        # Statements without a result set (DDL, scripts) have no destination table
        if job.destination is None:
            return ResultPage(complete=True)

        row_iterator = self.client.list_rows(
            job.destination,
            page_token=page_token,
            page_size=self.page_size
        )
        page = next(iter(row_iterator.pages), None)

        rows: List[List[str]] = []
        if page is not None:
            rows = [[_cell_to_str(value) for value in row.values()] for row in page]

        logger.debug(
            f"Fetched {len(rows)} rows for job {job.job_id}",
            extra={
                "job_id": job.job_id,
                "total_rows": row_iterator.total_rows,
                "total_bytes_processed": job.total_bytes_processed,
                "cache_hit": job.cache_hit
            }
        )

        return ResultPage(
            complete=True,
            headers=[field.name for field in row_iterator.schema],
            rows=rows,
            total_rows=row_iterator.total_rows or 0,
            page_token=row_iterator.next_page_token
        )
