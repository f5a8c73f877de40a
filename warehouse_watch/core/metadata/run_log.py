"""
Check Run Log
Append-only record of every executed check: one (timestamp, message) row per check.

Stores:
- BigQueryLogStore: streaming inserts into <project>.<dataset>.<table>
- CsvLogStore: rows appended to a local CSV file

Logging is a side channel. A store failure is reported through the
application logger and never interrupts the run.
"""

import asyncio
import csv
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from google.cloud import bigquery
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from warehouse_watch.app.config import Settings, settings
from warehouse_watch.core.checks.models import LogEntry
from warehouse_watch.core.utils.logging import get_logger, safe_error_log

logger = get_logger(__name__)

LOG_COLUMNS = ("timestamp", "message")

RUN_LOG_SCHEMA = [
    bigquery.SchemaField("timestamp", "TIMESTAMP", mode="REQUIRED"),
    bigquery.SchemaField("message", "STRING", mode="REQUIRED"),
]


@runtime_checkable
class LogStore(Protocol):
    """Interface of the append-only log store."""

    def append(self, timestamp: datetime, message: str) -> None:
        ...

    def last_row_index(self) -> int:
        ...


class BigQueryLogStore:
    """Run log kept in a BigQuery table, created on first write if missing."""

    def __init__(
        self,
        project_id: Optional[str] = None,
        dataset: Optional[str] = None,
        table: Optional[str] = None,
        client: Optional[bigquery.Client] = None,
        max_retry_attempts: Optional[int] = None
    ):
        self.project_id = project_id or settings.gcp_project_id
        self.dataset = dataset or settings.run_log_dataset
        self.table = table or settings.run_log_table
        self.max_retry_attempts = max_retry_attempts or settings.run_log_max_retry_attempts
        self.retry_wait = wait_exponential(multiplier=1, min=2, max=30)
        self._client = client
        self._table_ready = False

    @property
    def table_id(self) -> str:
        return f"{self.project_id}.{self.dataset}.{self.table}"

    @property
    def client(self) -> bigquery.Client:
        if self._client is None:
            self._client = bigquery.Client(project=self.project_id, location=settings.bigquery_location)
        return self._client

    def ensure_table(self) -> None:
        """Create the log table (idempotent)."""
        if self._table_ready:
            return
        table = bigquery.Table(self.table_id, schema=RUN_LOG_SCHEMA)
        table.time_partitioning = bigquery.TimePartitioning(
            type_=bigquery.TimePartitioningType.DAY,
            field="timestamp"
        )
        self.client.create_table(table, exists_ok=True)
        self._table_ready = True
        logger.info(f"Created/verified run log table: {self.table_id}")

    def append(self, timestamp: datetime, message: str) -> None:
        """
        Stream one row, retrying failed inserts.

        The insert id is fixed before the first attempt, so BigQuery drops the
        duplicate when an attempt that already landed is retried.
        """
        self.ensure_table()

        row = {"timestamp": timestamp.isoformat(), "message": message}
        row_id = str(uuid.uuid4())

        retrying = Retrying(
            stop=stop_after_attempt(self.max_retry_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(Exception),
            reraise=True
        )
        retrying(self._insert_row, row, row_id)

    def _insert_row(self, row: dict, row_id: str) -> None:
        errors = self.client.insert_rows_json(self.table_id, [row], row_ids=[row_id])
        if errors:
            raise ValueError(f"Failed to insert run log row into {self.table_id}: {errors}")

    def last_row_index(self) -> int:
        self.ensure_table()
        rows = self.client.query(f"SELECT COUNT(*) AS n FROM `{self.table_id}`").result()
        return next(iter(rows))["n"]


class CsvLogStore:
    """Run log kept in a local CSV file with a (timestamp, message) header."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.run_log_csv_path)

    def append(self, timestamp: datetime, message: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        write_header = not self.path.exists() or self.path.stat().st_size == 0

        with open(self.path, "a", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            if write_header:
                writer.writerow(LOG_COLUMNS)
            writer.writerow([timestamp.isoformat(), message])

    def last_row_index(self) -> int:
        if not self.path.exists():
            return 0
        with open(self.path, "r", encoding="utf-8", newline="") as f:
            return max(sum(1 for _ in csv.reader(f)) - 1, 0)


def create_log_store(config: Optional[Settings] = None) -> LogStore:
    """Build the store selected by run_log_backend."""
    config = config or settings
    if config.run_log_backend == "csv":
        return CsvLogStore(config.run_log_csv_path)
    return BigQueryLogStore(
        project_id=config.gcp_project_id,
        dataset=config.run_log_dataset,
        table=config.run_log_table,
        max_retry_attempts=config.run_log_max_retry_attempts
    )


class RunLog:
    """Best-effort appender in front of a LogStore."""

    def __init__(self, store: LogStore):
        self.store = store

    async def log(self, message: str) -> LogEntry:
        """
        Append one timestamped entry.

        Args:
            message: Log line, e.g. "Dup check 3 rows returned."

        Returns:
            The entry that was (or was attempted to be) written
        """
        entry = LogEntry(timestamp=datetime.now(timezone.utc), message=message)

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.store.append, entry.timestamp, entry.message)
        except Exception as e:
            safe_error_log(logger, "Failed to write run log entry", e, log_message=message)
            return entry

        logger.info(f"Run log: {message}")
        return entry

    def last_row_index(self) -> int:
        return self.store.last_row_index()
