"""
Check Framework

Scheduled SQL checks against BigQuery: any returned row is an anomaly.

Components:
- CheckOrchestrator: Main driver (orchestrator.py)
- QueryRunner: Job submission, backoff polling and pagination (query_runner.py)
- ResultFormatter: Plain-text report rendering (formatter.py)
- load_checks: YAML/CSV check table loading (config_loader.py)
"""

from .models import (
    CheckDefinition,
    CheckResult,
    CheckRunConfig,
    CheckStatus,
    JobHandle,
    JobState,
    LogEntry,
    NotifyOutcome,
    QueryResult,
    ResultPage,
    RunSummary,
)

__all__ = [
    "CheckDefinition",
    "CheckResult",
    "CheckRunConfig",
    "CheckStatus",
    "JobHandle",
    "JobState",
    "LogEntry",
    "NotifyOutcome",
    "QueryResult",
    "ResultPage",
    "RunSummary",
]
