#!/usr/bin/env python3
"""
Daily Checks Job
================
Runs every configured warehouse check once.

For each row of the check table:
1. Runs the SQL as a BigQuery job
2. Emails the result to the check's recipients when it returned rows
3. Appends one line to the run log

Run once a day from Cloud Scheduler / cron.

Usage:
    warehouse-watch-daily                                  # Checks from CHECKS_CONFIG_PATH
    warehouse-watch-daily --config configs/checks/checks.yml
    warehouse-watch-daily --dry-run                        # Run queries, send nothing
    warehouse-watch-daily --halt-on-failure                # Stop at the first failing check

Environment:
    GCP_PROJECT_ID: GCP Project ID
    CHECKS_CONFIG_PATH: Check table (.yml or .csv)
    EMAIL_SMTP_HOST / EMAIL_FROM_ADDRESS / EMAIL_TO_ADDRESSES: Alert delivery
"""

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from typing import Optional

from warehouse_watch.app.config import Settings, get_settings
from warehouse_watch.core.checks.config_loader import load_checks
from warehouse_watch.core.checks.models import CheckRunConfig, RunSummary
from warehouse_watch.core.checks.orchestrator import CheckOrchestrator
from warehouse_watch.core.checks.query_runner import QueryRunner
from warehouse_watch.core.engine.bq_client import BigQueryQueryService
from warehouse_watch.core.exceptions import WarehouseWatchException
from warehouse_watch.core.metadata.run_log import RunLog, create_log_store
from warehouse_watch.core.notifications.notifier import Notifier
from warehouse_watch.core.notifications.transport import SmtpMailTransport
from warehouse_watch.core.utils.logging import setup_logging


def build_run_config(
    config: Settings,
    config_path: Optional[str] = None,
    dry_run: bool = False,
    halt_on_failure: Optional[bool] = None
) -> CheckRunConfig:
    """Load the check table and bundle it with the run settings."""
    path = config_path or config.checks_config_path
    return CheckRunConfig(
        checks=load_checks(path),
        project_id=config.gcp_project_id,
        default_dataset=config.bigquery_default_dataset,
        default_recipients=config.get_default_recipients(),
        config_source=str(path),
        halt_on_check_failure=(
            config.halt_on_check_failure if halt_on_failure is None else halt_on_failure
        ),
        dry_run=dry_run
    )


def build_orchestrator(run_config: CheckRunConfig, config: Settings) -> CheckOrchestrator:
    """Wire the production collaborators for a run."""
    query_service = BigQueryQueryService(
        project_id=run_config.project_id,
        location=config.bigquery_location,
        default_dataset=run_config.default_dataset,
        page_size=config.bq_results_page_size
    )
    query_runner = QueryRunner(
        query_service,
        poll_backoff_base_ms=config.poll_backoff_base_ms,
        poll_max_wait_seconds=config.poll_max_wait_seconds,
        poll_max_attempts=config.poll_max_attempts
    )
    notifier = Notifier(
        SmtpMailTransport.from_settings(config),
        config_source=run_config.config_source,
        subject_prefix=config.email_subject_prefix,
        app_name=config.app_name,
        dry_run=run_config.dry_run
    )
    return CheckOrchestrator(
        run_config,
        query_runner=query_runner,
        notifier=notifier,
        run_log=RunLog(create_log_store(config))
    )


def run_daily_checks(
    config_path: Optional[str] = None,
    dry_run: bool = False,
    halt_on_failure: Optional[bool] = None
) -> RunSummary:
    """
    Scheduler entry point: run every check once and return the summary.

    Callable with no arguments; everything then comes from settings.
    """
    config = get_settings()
    run_config = build_run_config(config, config_path, dry_run, halt_on_failure)
    orchestrator = build_orchestrator(run_config, config)
    return asyncio.run(orchestrator.run())


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Warehouse Watch Daily Checks Job")
    parser.add_argument("--config", type=str, default=None,
                        help="Check table to run (default: CHECKS_CONFIG_PATH)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Run the checks without sending notifications")
    parser.add_argument("--halt-on-failure", action="store_true", default=None,
                        help="Stop the run at the first failing check")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging()

    print("=" * 60)
    print("Warehouse Watch Daily Checks Job")
    print(f"Started at: {datetime.now(timezone.utc).isoformat()}")
    if args.dry_run:
        print("Dry run: YES (no notifications will be sent)")
    print("=" * 60)

    try:
        summary = run_daily_checks(
            config_path=args.config,
            dry_run=args.dry_run,
            halt_on_failure=args.halt_on_failure
        )
    except WarehouseWatchException as e:
        print(f"\n❌ Check run aborted: {e.message}")
        return 1

    print(f"\n✅ Check run completed")
    print(f"  - Checks executed: {summary.executed}")
    print(f"  - Alerts raised: {summary.alerted}")
    print(f"  - Notifications sent: {summary.notifications_sent}")
    print(f"  - Notifications skipped: {summary.notifications_skipped}")
    print(f"  - Failed checks: {summary.failed}")
    if summary.truncated_at_row is not None:
        print(f"  - Stopped at blank row: {summary.truncated_at_row}")

    for detail in summary.details:
        if detail.error:
            print(f"  ⚠️ {detail.title}: {detail.error}")

    print("-" * 60)
    print(f"Completed at: {datetime.now(timezone.utc).isoformat()}")
    print("=" * 60)
    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())
