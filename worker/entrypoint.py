"""
Worker entrypoint for the scheduled timeout sweep.

Run on a schedule (EventBridge -> ECS RunTask, or cron locally) in place of
calling ``POST /api/meetings/check-pending-timeouts``.

The worker:
    1. Builds the meeting store from settings.
    2. Runs TimeoutSweeper.sweep().
    3. Exits 0 on success, 1 on failure.

All logging is JSON (structlog) and ships to CloudWatch via the awslogs driver.
"""

from __future__ import annotations

import sys

from shared_utils.constants import LogScope
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.di_container import get_di_container

logger = get_scoped_logger(LogScope.WORKER)


def main() -> int:
    """Worker main — build deps, run one sweep."""
    logger.info("worker_started", job="timeout_sweep")

    try:
        sweeper = get_di_container().get_timeout_sweeper()
        report = sweeper.sweep()

        logger.info(
            "worker_completed",
            scanned=report.scanned,
            timed_out=len(report.timed_out),
            skipped=len(report.skipped),
            duration_ms=round(report.duration_ms, 1),
        )
        return 0

    except Exception as exc:
        logger.error("worker_failed", error=str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
