"""
Check Orchestrator

Main driver for a scheduled check run.

Flow, per check in table order:
1. Stop at the first row with a blank title or query
2. Execute the query job (QueryRunner)
3. No rows -> log only
4. Rows -> format report, notify recipients, log row count
5. Query failure -> log the failure, then continue (or halt when configured)
"""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

from warehouse_watch.core.checks.formatter import ResultFormatter
from warehouse_watch.core.checks.models import (
    CheckDefinition,
    CheckResult,
    CheckRunConfig,
    CheckStatus,
    NotifyOutcome,
    RunSummary,
)
from warehouse_watch.core.checks.query_runner import QueryRunner
from warehouse_watch.core.exceptions import QueryExecutionError
from warehouse_watch.core.metadata.run_log import RunLog
from warehouse_watch.core.notifications.notifier import Notifier
from warehouse_watch.core.utils.logging import CheckLogger, get_logger, new_run_id

logger = get_logger(__name__)


class CheckOrchestrator:
    """
    Runs checks one at a time and routes each result to the notifier and run log.

    Every executed check writes exactly one run log entry, whatever its outcome.
    """

    def __init__(
        self,
        config: CheckRunConfig,
        query_runner: QueryRunner,
        notifier: Notifier,
        run_log: RunLog,
        formatter: Optional[ResultFormatter] = None
    ):
        self.config = config
        self.query_runner = query_runner
        self.notifier = notifier
        self.run_log = run_log
        self.formatter = formatter or ResultFormatter()
        self.run_id: Optional[str] = None

    async def run(self) -> RunSummary:
        """
        Execute the configured checks in order.

        Returns:
            RunSummary with per-status counts and per-check details

        Raises:
            QueryExecutionError: Only when halt_on_check_failure is set
        """
        start_time = datetime.now(timezone.utc)
        self.run_id = new_run_id()
        summary = RunSummary(run_id=self.run_id)

        for check in self.config.checks:
            if check.is_blank:
                summary.truncated_at_row = check.row_number
                logger.info(
                    f"Blank check at row {check.row_number}, skipping remaining rows",
                    extra={"run_id": self.run_id, "row_number": check.row_number}
                )
                break

            result = await self.run_check(check)

            summary.executed += 1
            if result.status == CheckStatus.ALERTED:
                summary.alerted += 1
                if result.notify_outcome == NotifyOutcome.SENT:
                    summary.notifications_sent += 1
                else:
                    summary.notifications_skipped += 1
            elif result.status == CheckStatus.NO_ROWS:
                summary.no_rows += 1
            elif result.status == CheckStatus.FAILED:
                summary.failed += 1

            summary.details.append(result)

        summary.duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
        logger.info(
            f"Check run finished: {summary.executed} executed, {summary.alerted} alerted, "
            f"{summary.failed} failed",
            extra={
                "run_id": self.run_id,
                "executed": summary.executed,
                "alerted": summary.alerted,
                "no_rows": summary.no_rows,
                "failed": summary.failed,
                "duration_ms": summary.duration_ms
            }
        )
        return summary

    async def run_check(self, check: CheckDefinition) -> CheckResult:
        """Execute a single check and write its run log entry."""
        log = CheckLogger(logger, run_id=self.run_id, check=check.title, row_number=check.row_number)

        try:
            result = await self.query_runner.execute(check.sql)
        except QueryExecutionError as e:
            message = f"{check.title} Query failed: {e.cause}"
            await self.run_log.log(message)
            log.bind(job_id=e.job_id).error(
                f"Check '{check.title}' failed",
                error=e,
                error_code=e.error_code.value,
                category=e.category.value
            )
            if self.config.halt_on_check_failure:
                raise
            return CheckResult(
                title=check.title,
                row_number=check.row_number,
                status=CheckStatus.FAILED,
                job_id=e.job_id,
                error=str(e),
                log_message=message
            )

        row_count = len(result.rows)

        if row_count == 0:
            message = f"{check.title} No rows returned."
            await self.run_log.log(message)
            return CheckResult(
                title=check.title,
                row_number=check.row_number,
                status=CheckStatus.NO_ROWS,
                log_message=message
            )

        report = self.formatter.format(result)
        loop = asyncio.get_running_loop()
        outcome = await loop.run_in_executor(
            None,
            self.notifier.notify,
            check.title,
            report,
            self._recipients_for(check)
        )

        log.info(
            f"Check '{check.title}' returned {row_count} rows, alert {outcome.value}",
            row_count=row_count,
            notify_outcome=outcome.value
        )

        message = f"{check.title} {row_count} rows returned."
        await self.run_log.log(message)
        return CheckResult(
            title=check.title,
            row_number=check.row_number,
            status=CheckStatus.ALERTED,
            row_count=row_count,
            notify_outcome=outcome,
            log_message=message
        )

    def _recipients_for(self, check: CheckDefinition) -> List[str]:
        return list(check.recipients) or list(self.config.default_recipients)
