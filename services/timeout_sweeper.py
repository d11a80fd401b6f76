"""
Timeout sweeper — demotes stale pending meetings to ``timeout``.

Runs on demand (API) or from the scheduled worker job. Each demotion is a
conditional pending -> timeout transition, so a meeting claimed or superseded
mid-sweep is skipped rather than overwritten.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Callable, Optional

from domain.lifecycle import is_pending_expired, utcnow
from domain.models import MeetingStatus, SweepReport
from ports.meeting_store import MeetingStorePort
from shared_utils.constants import Defaults, LogScope
from shared_utils.logging_utils import get_scoped_logger, log_execution

logger = get_scoped_logger(LogScope.SWEEPER)


class TimeoutSweeper:
    """Batch pass over pending meetings."""

    def __init__(
        self,
        meeting_store: MeetingStorePort,
        pending_timeout_seconds: int = Defaults.PENDING_TIMEOUT_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = meeting_store
        self._timeout_seconds = pending_timeout_seconds
        self._clock = clock or utcnow

    @log_execution(scope=LogScope.SWEEPER)
    def sweep(self) -> SweepReport:
        started = time.time()
        now = self._clock()
        report = SweepReport(started_at=now.isoformat())

        pending = self._store.list_pending()
        report.scanned = len(pending)

        for meeting in pending:
            if not is_pending_expired(meeting, now, self._timeout_seconds):
                continue
            if self._store.conditional_transition(
                meeting.meeting_id, MeetingStatus.PENDING, MeetingStatus.TIMEOUT
            ):
                report.timed_out.append(meeting.meeting_id)
                logger.info("meeting_timed_out", meeting_id=meeting.meeting_id, trigger="sweep")
            else:
                report.skipped.append(meeting.meeting_id)
                logger.info("sweep_candidate_moved", meeting_id=meeting.meeting_id)

        report.completed_at = self._clock().isoformat()
        report.duration_ms = (time.time() - started) * 1000
        logger.info(
            "sweep_completed",
            scanned=report.scanned,
            timed_out=len(report.timed_out),
            skipped=len(report.skipped),
            duration_ms=round(report.duration_ms, 1),
        )
        return report
