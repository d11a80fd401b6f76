"""
Port interface for meeting storage.

Implementations: DynamoMeetingStoreAdapter, InMemoryMeetingStoreAdapter (adapters/)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from domain.models import Meeting, MeetingStatus


@runtime_checkable
class MeetingStorePort(Protocol):
    """Durable record of every meeting; the single source of truth.

    Status only ever changes through ``conditional_transition``.
    """

    def create(self, meeting: Meeting, previous_meeting_id: Optional[str] = None) -> str:
        """Insert a new meeting and point the seeker's slot at it.

        The insert and the slot update happen atomically, guarded on the
        slot still holding *previous_meeting_id* (``None`` meaning the
        seeker has no slot yet).

        Args:
            meeting: Fresh pending meeting.
            previous_meeting_id: Slot value observed before supersession.

        Returns:
            The meeting id.

        Raises:
            ConflictError: Another creation for the same seeker won.
            ExternalServiceError: If the store is unreachable.
        """
        ...

    def get(self, meeting_id: str) -> Optional[Meeting]:
        """Retrieve a single meeting by ID, or None."""
        ...

    def get_seeker_slot(self, seeker_id: str) -> Optional[str]:
        """Return the id of the seeker's most recently created meeting, or None."""
        ...

    def find_active_by_seeker(self, seeker_id: str) -> Optional[Meeting]:
        """Return the seeker's pending or accepted meeting, if any."""
        ...

    def find_active_by_helper(self, helper_id: str) -> Optional[Meeting]:
        """Return the helper's accepted meeting, if any."""
        ...

    def list_pending_global(self) -> List[Meeting]:
        """Pending global meetings, oldest ``created_at`` first."""
        ...

    def list_pending_specific(self, helper_id: str) -> List[Meeting]:
        """Pending specific meetings targeted at *helper_id*, oldest first."""
        ...

    def list_pending(self) -> List[Meeting]:
        """All pending meetings regardless of kind, oldest first."""
        ...

    def conditional_transition(
        self,
        meeting_id: str,
        expected_status: MeetingStatus,
        new_status: MeetingStatus,
        fields: Optional[Dict[str, Any]] = None,
        created_after: Optional[datetime] = None,
    ) -> bool:
        """Atomically move a meeting from *expected_status* to *new_status*.

        Args:
            meeting_id: Primary key.
            expected_status: Status the record must still hold.
            new_status: Status to write.
            fields: Extra attributes written in the same operation
                (``accepted_at``, ``ended_at``, ``helper_id``).
            created_after: When given, the record must also have been
                created strictly after this instant.

        Returns:
            True iff the transition was written; False if the guard failed
            (another actor changed the record first, or it does not exist).

        Raises:
            ExternalServiceError: If the store is unreachable.
        """
        ...
