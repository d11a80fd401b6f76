"""
In-memory meeting store adapter for local development.

Implements MeetingStorePort using a dict guarded by a lock. The lock only
emulates the per-operation atomicity DynamoDB gives the real adapter; the
services never lock anything themselves.

NOT for production — no persistence across restarts, single process only.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from domain.models import ACTIVE_STATUSES, Meeting, MeetingKind, MeetingStatus
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import LogScope
from shared_utils.error_handler import ConflictError


logger = get_scoped_logger(LogScope.ADAPTER)

_TRANSITION_FIELDS = frozenset({"accepted_at", "ended_at", "helper_id"})


class InMemoryMeetingStoreAdapter:
    """Dict-backed implementation of MeetingStorePort."""

    def __init__(self) -> None:
        self._meetings: Dict[str, Meeting] = {}
        self._slots: Dict[str, str] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # MeetingStorePort implementation
    # ------------------------------------------------------------------

    def create(self, meeting: Meeting, previous_meeting_id: Optional[str] = None) -> str:
        with self._lock:
            if meeting.meeting_id in self._meetings:
                raise ConflictError(
                    "Meeting already exists", context={"meeting_id": meeting.meeting_id}
                )
            if self._slots.get(meeting.seeker_id) != previous_meeting_id:
                logger.warning(
                    "inmemory_create_meeting_conflict",
                    meeting_id=meeting.meeting_id,
                    seeker_id=meeting.seeker_id,
                )
                raise ConflictError(
                    "Another meeting request for this seeker was created concurrently",
                    context={"seeker_id": meeting.seeker_id},
                )
            self._meetings[meeting.meeting_id] = meeting.model_copy()
            self._slots[meeting.seeker_id] = meeting.meeting_id
        logger.info("inmemory_create_meeting", meeting_id=meeting.meeting_id, kind=meeting.kind.value)
        return meeting.meeting_id

    def get(self, meeting_id: str) -> Optional[Meeting]:
        with self._lock:
            meeting = self._meetings.get(meeting_id)
            return meeting.model_copy() if meeting else None

    def get_seeker_slot(self, seeker_id: str) -> Optional[str]:
        with self._lock:
            return self._slots.get(seeker_id)

    def find_active_by_seeker(self, seeker_id: str) -> Optional[Meeting]:
        found = self._select(lambda m: m.seeker_id == seeker_id and m.status in ACTIVE_STATUSES)
        return found[-1] if found else None

    def find_active_by_helper(self, helper_id: str) -> Optional[Meeting]:
        found = self._select(
            lambda m: m.helper_id == helper_id and m.status == MeetingStatus.ACCEPTED
        )
        return found[-1] if found else None

    def list_pending_global(self) -> List[Meeting]:
        return self._select(
            lambda m: m.status == MeetingStatus.PENDING and m.kind == MeetingKind.GLOBAL
        )

    def list_pending_specific(self, helper_id: str) -> List[Meeting]:
        return self._select(
            lambda m: m.status == MeetingStatus.PENDING
            and m.kind == MeetingKind.SPECIFIC
            and m.helper_id == helper_id
        )

    def list_pending(self) -> List[Meeting]:
        return self._select(lambda m: m.status == MeetingStatus.PENDING)

    def conditional_transition(
        self,
        meeting_id: str,
        expected_status: MeetingStatus,
        new_status: MeetingStatus,
        fields: Optional[Dict[str, Any]] = None,
        created_after: Optional[datetime] = None,
    ) -> bool:
        fields = fields or {}
        unknown = set(fields) - _TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Unsupported transition fields: {sorted(unknown)}")

        with self._lock:
            current = self._meetings.get(meeting_id)
            if current is None or current.status != expected_status:
                return False
            if created_after is not None and current.created_at <= created_after:
                return False
            self._meetings[meeting_id] = current.model_copy(
                update={"status": new_status, **fields}
            )

        logger.info(
            "inmemory_transition",
            meeting_id=meeting_id,
            expected=expected_status.value,
            new=new_status.value,
        )
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _select(self, predicate: Callable[[Meeting], bool]) -> List[Meeting]:
        with self._lock:
            found = [m.model_copy() for m in self._meetings.values() if predicate(m)]
        found.sort(key=lambda m: m.created_at)
        return found
