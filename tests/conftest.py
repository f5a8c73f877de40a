"""
Root conftest.py - Sets environment variables before any module imports.

This file is loaded by pytest before any test modules, ensuring environment
variables are set before the settings module is imported.

Also provides in-memory stand-ins for the external collaborators:
query service, mail transport and run log store.
"""

import os

# Set environment variables BEFORE any imports that might load settings
os.environ["GCP_PROJECT_ID"] = "warehouse-watch-test"
os.environ["ENVIRONMENT"] = "development"
os.environ["RUN_LOG_BACKEND"] = "csv"
os.environ["POLL_BACKOFF_BASE_MS"] = "500"
os.environ.pop("POLL_MAX_WAIT_SECONDS", None)
os.environ.pop("POLL_MAX_ATTEMPTS", None)
os.environ.pop("EMAIL_TO_ADDRESSES", None)

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import pytest

from warehouse_watch.core.checks.models import JobHandle, ResultPage
from warehouse_watch.core.notifications.transport import NotificationProviderError


# ============================================
# Query Service
# ============================================

@dataclass
class FakeJob:
    """Scripted behaviour of one query job."""
    headers: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)
    pending_polls: int = 0
    page_size: Optional[int] = None
    submit_error: Optional[Exception] = None
    results_error: Optional[Exception] = None
    never_completes: bool = False

    def pages(self) -> List[ResultPage]:
        size = self.page_size or max(len(self.rows), 1)
        chunks = [self.rows[i:i + size] for i in range(0, len(self.rows), size)] or [[]]
        return [
            ResultPage(
                complete=True,
                headers=list(self.headers),
                rows=chunk,
                total_rows=len(self.rows),
                page_token=f"page-{i + 1}" if i + 1 < len(chunks) else None
            )
            for i, chunk in enumerate(chunks)
        ]


class FakeQueryService:
    """QueryService keyed by SQL text."""

    def __init__(self, jobs: Dict[str, FakeJob]):
        self.jobs = jobs
        self.submitted: List[str] = []
        self.calls: List[Tuple[str, Optional[str]]] = []
        self._job_sql: Dict[str, str] = {}
        self._polls: Dict[str, int] = {}

    def submit_query(self, sql: str) -> JobHandle:
        job = self.jobs[sql]
        if job.submit_error:
            raise job.submit_error
        job_id = f"job-{len(self.submitted) + 1}"
        self.submitted.append(sql)
        self._job_sql[job_id] = sql
        self._polls[job_id] = 0
        return JobHandle(job_id=job_id, location="US")

    def get_job_results(self, handle: JobHandle, page_token: Optional[str] = None) -> ResultPage:
        self.calls.append((handle.job_id, page_token))
        job = self.jobs[self._job_sql[handle.job_id]]

        if page_token is None:
            if job.never_completes or self._polls[handle.job_id] < job.pending_polls:
                self._polls[handle.job_id] += 1
                return ResultPage(complete=False)

        if job.results_error:
            raise job.results_error

        pages = job.pages()
        index = 0 if page_token is None else int(page_token.split("-")[1])
        return pages[index]

    def status_polls(self, job_id: str) -> int:
        return sum(1 for jid, token in self.calls if jid == job_id and token is None)


class RecordingSleep:
    """Awaitable sleep that records requested delays instead of waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# ============================================
# Mail Transport
# ============================================

@dataclass
class SentMessage:
    to: List[str]
    subject: str
    body: str


class FakeMailTransport:
    """MailTransport with a fixed remaining quota."""

    def __init__(self, remaining_quota: int = 100, fail: bool = False):
        self.remaining_quota = remaining_quota
        self.fail = fail
        self.sent: List[SentMessage] = []
        self.quota_reads = 0

    def send(self, to: List[str], subject: str, body: str) -> None:
        if self.fail:
            raise NotificationProviderError("SMTP error: connection refused")
        self.sent.append(SentMessage(list(to), subject, body))

    def remaining_daily_quota(self) -> int:
        self.quota_reads += 1
        return self.remaining_quota


# ============================================
# Log Store
# ============================================

class FakeLogStore:
    """Append-only in-memory log store."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.rows: List[Tuple[datetime, str]] = []

    def append(self, timestamp: datetime, message: str) -> None:
        if self.fail:
            raise RuntimeError("log storage unavailable")
        self.rows.append((timestamp, message))

    def last_row_index(self) -> int:
        return len(self.rows)

    @property
    def messages(self) -> List[str]:
        return [message for _, message in self.rows]


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def fake_job():
    """Factory for scripted query jobs."""
    return FakeJob


@pytest.fixture
def query_service_factory():
    """Build a FakeQueryService from {sql: FakeJob}."""
    return FakeQueryService


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def mail_transport():
    return FakeMailTransport()


@pytest.fixture
def exhausted_mail_transport():
    return FakeMailTransport(remaining_quota=0)


@pytest.fixture
def log_store():
    return FakeLogStore()


@pytest.fixture
def failing_log_store():
    return FakeLogStore(fail=True)
