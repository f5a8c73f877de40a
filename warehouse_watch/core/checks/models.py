"""
Check Framework Models

Pydantic models for check definitions, query jobs, results and run summaries.
"""

from enum import Enum
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field


class JobState(str, Enum):
    """Lifecycle of a single query job, as driven by QueryRunner."""
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"


class CheckStatus(str, Enum):
    """Outcome of one executed check."""
    ALERTED = "alerted"
    NO_ROWS = "no_rows"
    FAILED = "failed"


class NotifyOutcome(str, Enum):
    """Result of a notification attempt."""
    SENT = "sent"
    SKIPPED_QUOTA_EXHAUSTED = "skipped_quota_exhausted"
    SKIPPED_NO_RECIPIENTS = "skipped_no_recipients"
    SKIPPED_DRY_RUN = "skipped_dry_run"
    SEND_FAILED = "send_failed"


# ============================================
# Configuration Models
# ============================================

class CheckDefinition(BaseModel):
    """One row of the check definitions table."""
    model_config = ConfigDict(frozen=True)

    title: str = Field(default="", description="Check name, used in alert subjects and log lines")
    sql: str = Field(default="", description="Standard SQL; any returned row is an anomaly")
    recipients: List[str] = Field(default_factory=list, description="Overrides the default recipients")
    row_number: Optional[int] = Field(default=None, description="Source row the definition was read from")

    @property
    def is_blank(self) -> bool:
        """A blank title or query marks the end of the active check list."""
        return not self.title.strip() or not self.sql.strip()


class CheckRunConfig(BaseModel):
    """Everything one orchestrated run needs, passed in explicitly."""
    checks: List[CheckDefinition] = Field(default_factory=list)
    project_id: str = Field(..., description="Project the query jobs run in")
    default_dataset: Optional[str] = Field(default=None, description="Dataset for unqualified tables")
    default_recipients: List[str] = Field(default_factory=list)
    config_source: str = Field(default="", description="Where the checks were loaded from")
    halt_on_check_failure: bool = Field(default=False)
    dry_run: bool = Field(default=False)


# ============================================
# Query Models
# ============================================

class JobHandle(BaseModel):
    """Reference to a submitted query job."""
    job_id: str
    complete: bool = False
    page_token: Optional[str] = None
    location: Optional[str] = None


class ResultPage(BaseModel):
    """One page of job results as returned by the query service."""
    complete: bool
    headers: List[str] = Field(default_factory=list)
    rows: List[List[str]] = Field(default_factory=list)
    total_rows: int = 0
    page_token: Optional[str] = None


class QueryResult(BaseModel):
    """All pages of a completed job, in warehouse order."""
    headers: List[str] = Field(default_factory=list)
    rows: List[List[str]] = Field(default_factory=list)
    total_rows: int = 0


# ============================================
# Result Models
# ============================================

class LogEntry(BaseModel):
    """A single run log record."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    message: str


class CheckResult(BaseModel):
    """Result of executing a single check."""
    title: str
    row_number: Optional[int] = None
    status: CheckStatus
    row_count: int = 0
    notify_outcome: Optional[NotifyOutcome] = None
    job_id: Optional[str] = None
    error: Optional[str] = None
    log_message: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump(mode="json", exclude_none=True)


class RunSummary(BaseModel):
    """Summary of one orchestrated run."""
    run_id: Optional[str] = Field(default=None, description="Shared by every log record of the run")
    executed: int = 0
    alerted: int = 0
    no_rows: int = 0
    failed: int = 0
    notifications_sent: int = 0
    notifications_skipped: int = 0
    truncated_at_row: Optional[int] = None
    duration_ms: float = 0
    details: List[CheckResult] = Field(default_factory=list)
