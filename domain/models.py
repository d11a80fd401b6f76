"""
Pure domain models for the helper matchmaking service.

These models contain NO AWS dependencies. They represent core business concepts
that flow through ports and services.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class MeetingKind(str, Enum):
    """Who may claim a meeting."""

    GLOBAL = "global"
    SPECIFIC = "specific"


class MeetingStatus(str, Enum):
    """Meeting lifecycle status."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    ENDED = "ended"
    REJECTED = "rejected"
    TIMEOUT = "timeout"


ACTIVE_STATUSES = frozenset({MeetingStatus.PENDING, MeetingStatus.ACCEPTED})
TERMINAL_STATUSES = frozenset(
    {MeetingStatus.ENDED, MeetingStatus.REJECTED, MeetingStatus.TIMEOUT}
)


class UserRole(str, Enum):
    """Caller roles asserted by access control."""

    SEEKER = "seeker"
    HELPER = "helper"
    SYSTEM = "system"  # cron / sweeper principal, never a directory user


class Meeting(BaseModel):
    """A single seeker/helper session request (maps to a DynamoDB item).

    ``helper_id`` is set at creation for specific meetings and written by the
    accepting claim for global ones.
    """

    meeting_id: str
    seeker_id: str
    kind: MeetingKind
    helper_id: Optional[str] = None
    status: MeetingStatus = MeetingStatus.PENDING
    created_at: datetime
    accepted_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_kind_fields(self) -> "Meeting":
        if self.kind == MeetingKind.SPECIFIC and not self.helper_id:
            raise ValueError("specific meetings require helper_id")
        if (
            self.kind == MeetingKind.GLOBAL
            and self.status == MeetingStatus.PENDING
            and self.helper_id
        ):
            raise ValueError("pending global meetings cannot carry helper_id")
        return self

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_party(self, user_id: str) -> bool:
        """True if *user_id* is the seeker or the recorded helper."""
        return user_id == self.seeker_id or (
            self.helper_id is not None and user_id == self.helper_id
        )

    def to_api(self) -> Dict[str, Any]:
        """camelCase JSON representation returned by the HTTP API."""
        return {
            "id": self.meeting_id,
            "seekerId": self.seeker_id,
            "type": self.kind.value,
            "helperId": self.helper_id,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "acceptedAt": self.accepted_at.isoformat() if self.accepted_at else None,
            "endedAt": self.ended_at.isoformat() if self.ended_at else None,
        }


class UserRecord(BaseModel):
    """Directory entry for a seeker or helper (read-only here)."""

    user_id: str
    first_name: str = ""
    last_name: str = ""
    role: UserRole

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.user_id


class CallerIdentity(BaseModel):
    """Authenticated principal attached to a request."""

    user_id: str
    role: UserRole


class SessionCredential(BaseModel):
    """Capability token admitting one participant to a meeting's media room."""

    token: str
    room_name: str
    identity: str

    def to_api(self) -> Dict[str, str]:
        return {
            "token": self.token,
            "roomName": self.room_name,
            "identity": self.identity,
        }


class ClaimResult(BaseModel):
    """Outcome of a successful claim: the accepted meeting plus a credential."""

    meeting: Meeting
    credential: SessionCredential


class PendingSpecificView(BaseModel):
    """A pending specific meeting annotated with the seeker's display name."""

    meeting: Meeting
    seeker_name: str

    def to_api(self) -> Dict[str, Any]:
        return {**self.meeting.to_api(), "seekerName": self.seeker_name}


class SweepReport(BaseModel):
    """Report generated after a timeout sweep."""

    scanned: int = 0
    timed_out: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    started_at: str = ""  # ISO 8601
    completed_at: str = ""  # ISO 8601
    duration_ms: float = 0.0
