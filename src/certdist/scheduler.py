"""
Scheduler: periodic execution of the client sync cycle.

Uses APScheduler (3.x) with an IntervalTrigger. `max_instances=1` and
`coalesce=True` keep cycles from ever overlapping: a cycle that outlasts the
interval delays the next one instead of running beside it.

Graceful shutdown: SIGINT/SIGTERM stop the scheduler between cycles.
"""

from __future__ import annotations

import signal
import sys
from collections.abc import Callable

import structlog
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from certdist.domain.models import CycleSummary
from certdist.result import Result

log = structlog.get_logger()

JOB_ID = "certdist_sync"


def run_cycle_logged(cycle_fn: Callable[[], Result[CycleSummary]]) -> Result[CycleSummary]:
    """Run one cycle and log its tally."""
    return (
        cycle_fn()
        .peek(lambda summary: log.info(
            "scheduler.cycle_completed",
            installed=summary.installed,
            up_to_date=summary.up_to_date,
            failed=summary.failed,
        ))
        .peek_failure(lambda error: log.error("scheduler.cycle_failed", error=error.detail()))
    )


def create_scheduler(
    cycle_fn: Callable[[], Result[CycleSummary]],
    interval_hours: float,
    run_on_startup: bool = True,
) -> BlockingScheduler:
    """
    Create a BlockingScheduler that runs the sync cycle every interval_hours.

    Args:
        cycle_fn: Zero-argument callable returning Result[CycleSummary].
        interval_hours: Hours between cycle starts; must be positive.
        run_on_startup: If True, run one cycle immediately before the loop starts.

    Returns:
        A configured BlockingScheduler (call .start() to begin).
    """
    if interval_hours <= 0:
        raise ValueError("interval_hours must be positive for a scheduled client")

    scheduler = BlockingScheduler()

    def _job() -> None:
        run_cycle_logged(cycle_fn)

    scheduler.add_job(
        _job,
        trigger=IntervalTrigger(hours=interval_hours),
        id=JOB_ID,
        name="Certificate sync",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    if run_on_startup:
        log.info("scheduler.startup_run")
        _job()

    _register_shutdown_signals(scheduler)

    return scheduler


def _register_shutdown_signals(scheduler: BlockingScheduler) -> None:
    """Register SIGINT and SIGTERM handlers for graceful shutdown."""

    def _shutdown(signum: int, frame: object) -> None:
        log.info("scheduler.shutdown_requested", signal=signal.Signals(signum).name)
        scheduler.shutdown(wait=False)
        sys.exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
