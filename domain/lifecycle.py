"""
Meeting status state machine.

Pure functions over domain models: legal transitions, the timestamp fields
each transition writes, and the pending-timeout rule. Expiry is computed from
stored ``created_at`` values, never from a live timer, so the sweep job and
an inline claim-time check agree after restarts.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, FrozenSet, Mapping

from domain.models import Meeting, MeetingStatus
from shared_utils.error_handler import ConflictError


TRANSITIONS: Mapping[MeetingStatus, FrozenSet[MeetingStatus]] = {
    MeetingStatus.PENDING: frozenset(
        {
            MeetingStatus.ACCEPTED,
            MeetingStatus.REJECTED,
            MeetingStatus.TIMEOUT,
            MeetingStatus.ENDED,  # supersession only
        }
    ),
    MeetingStatus.ACCEPTED: frozenset({MeetingStatus.ENDED}),
    MeetingStatus.ENDED: frozenset(),
    MeetingStatus.REJECTED: frozenset(),
    MeetingStatus.TIMEOUT: frozenset(),
}

_STATE_MESSAGES = {
    MeetingStatus.PENDING: "Meeting has not been accepted",
    MeetingStatus.ACCEPTED: "Meeting has already been accepted",
    MeetingStatus.ENDED: "Meeting has already ended",
    MeetingStatus.REJECTED: "Meeting has already been rejected",
    MeetingStatus.TIMEOUT: "Meeting has timed out",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def can_transition(current: MeetingStatus, target: MeetingStatus) -> bool:
    """True if ``current -> target`` is an edge of the lifecycle graph."""
    return target in TRANSITIONS[current]


def describe_state(status: MeetingStatus) -> str:
    """Human-readable reason a transition out of *status* was refused."""
    return _STATE_MESSAGES[status]


def conflict_for(meeting: Meeting, target: MeetingStatus) -> ConflictError:
    return ConflictError(
        describe_state(meeting.status),
        context={
            "meeting_id": meeting.meeting_id,
            "current_status": meeting.status.value,
            "requested_status": target.value,
        },
    )


def plan_transition(
    meeting: Meeting,
    target: MeetingStatus,
    now: datetime,
) -> Dict[str, Any]:
    """Validate ``meeting.status -> target`` and return the fields it writes.

    Entering ``accepted`` stamps ``accepted_at``; entering ``ended`` stamps
    ``ended_at``. Both are written only by the transition that enters the
    state, so they are never overwritten.

    Raises:
        ConflictError: The edge does not exist (including any move out of a
            terminal state).
    """
    if not can_transition(meeting.status, target):
        raise conflict_for(meeting, target)

    fields: Dict[str, Any] = {}
    if target == MeetingStatus.ACCEPTED:
        fields["accepted_at"] = now
    elif target == MeetingStatus.ENDED:
        fields["ended_at"] = now
    return fields


def expiry_cutoff(now: datetime, threshold_seconds: int) -> datetime:
    """Meetings created at or before this instant have aged out."""
    return now - timedelta(seconds=threshold_seconds)


def is_pending_expired(meeting: Meeting, now: datetime, threshold_seconds: int) -> bool:
    """True iff the meeting is pending and its age has reached the threshold."""
    if meeting.status != MeetingStatus.PENDING:
        return False
    return meeting.created_at <= expiry_cutoff(now, threshold_seconds)
