"""
Matchmaking service — meeting creation, claims, and termination.

Flow:  access-checked caller → lifecycle guard → store conditional transition
       → (claims only) session credential.

Depends only on ports (protocol interfaces) — never on concrete adapters.
Every status change goes through ``MeetingStorePort.conditional_transition``;
a False return means another actor moved the record first, and the service
reports the state it now observes instead of overwriting it.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional

from domain.lifecycle import (
    conflict_for,
    describe_state,
    expiry_cutoff,
    is_pending_expired,
    plan_transition,
    utcnow,
)
from domain.models import (
    CallerIdentity,
    ClaimResult,
    Meeting,
    MeetingKind,
    MeetingStatus,
    PendingSpecificView,
    SessionCredential,
    UserRole,
)
from ports.credential_issuer import CredentialIssuerPort
from ports.meeting_store import MeetingStorePort
from ports.user_directory import UserDirectoryPort
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import (
    ConflictError,
    CredentialIssuanceError,
    ForbiddenError,
    MeetingTimeoutError,
    NotFoundError,
    ValidationError,
)
from shared_utils.logging_utils import get_scoped_logger

logger = get_scoped_logger(LogScope.MATCHMAKING)


class MatchmakingService:
    """Owns the meeting lifecycle and the claim algorithms.

    Holds no locks and no per-request state; concurrent callers coordinate
    only through the store's atomic operations, so several API instances can
    share one table.
    """

    def __init__(
        self,
        meeting_store: MeetingStorePort,
        user_directory: UserDirectoryPort,
        credential_issuer: CredentialIssuerPort,
        pending_timeout_seconds: int = Defaults.PENDING_TIMEOUT_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = meeting_store
        self._users = user_directory
        self._issuer = credential_issuer
        self._timeout_seconds = pending_timeout_seconds
        self._clock = clock or utcnow

    # ------------------------------------------------------------------
    # Creation & supersession
    # ------------------------------------------------------------------

    def create_meeting(
        self,
        caller: CallerIdentity,
        kind: MeetingKind,
        helper_id: Optional[str] = None,
    ) -> Meeting:
        """Create a pending meeting for *caller*, ending any active one first.

        Raises:
            ValidationError: Bad helper for the requested kind.
            NotFoundError: Named helper does not exist.
            ConflictError: A concurrent creation for the same seeker won.
        """
        if kind == MeetingKind.SPECIFIC:
            self._validate_target_helper(caller, helper_id)
        elif helper_id:
            raise ValidationError(
                "Global meetings cannot name a helper",
                context={"helper": helper_id},
            )

        # The slot, not a status scan, decides what gets superseded.
        slot = self._store.get_seeker_slot(caller.user_id)
        prior = self._store.get(slot) if slot else None
        superseded = None
        if prior is not None and prior.is_active:
            self._supersede(prior)
            superseded = prior.meeting_id

        meeting = Meeting(
            meeting_id=str(uuid.uuid4()),
            seeker_id=caller.user_id,
            kind=kind,
            helper_id=helper_id if kind == MeetingKind.SPECIFIC else None,
            status=MeetingStatus.PENDING,
            created_at=self._clock(),
        )
        self._store.create(meeting, previous_meeting_id=slot)
        logger.info(
            "meeting_created",
            meeting_id=meeting.meeting_id,
            seeker_id=caller.user_id,
            kind=kind.value,
            helper_id=meeting.helper_id,
            superseded=superseded,
        )
        return meeting

    def _validate_target_helper(self, caller: CallerIdentity, helper_id: Optional[str]) -> None:
        if not helper_id:
            raise ValidationError("Helper is required for specific meetings")
        helper = self._users.get_user(helper_id)
        if helper is None:
            raise NotFoundError("Helper not found", context={"helper": helper_id})
        if helper.role != UserRole.HELPER:
            raise ValidationError("Specified user is not a helper", context={"helper": helper_id})
        if helper.user_id == caller.user_id:
            raise ValidationError("You cannot help yourself")

    def _supersede(self, meeting: Meeting) -> None:
        """Force the seeker's previous meeting to ended.

        If a claim or sweep moves it first, re-read and try again from the
        new status. Statuses only advance, so this ends after at most two
        lost races.
        """
        current: Optional[Meeting] = meeting
        while current is not None and current.is_active:
            fields = plan_transition(current, MeetingStatus.ENDED, self._clock())
            if self._store.conditional_transition(
                current.meeting_id, current.status, MeetingStatus.ENDED, fields
            ):
                logger.info(
                    "meeting_superseded",
                    meeting_id=current.meeting_id,
                    from_status=current.status.value,
                )
                return
            current = self._store.get(current.meeting_id)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def claim_specific(self, caller: CallerIdentity, meeting_id: str) -> ClaimResult:
        """Designated helper accepts a specific meeting.

        Raises:
            NotFoundError, ValidationError, ForbiddenError,
            ConflictError: Helper busy, or the meeting already left pending.
            MeetingTimeoutError: The meeting aged out before being claimed.
            CredentialIssuanceError: Accepted, but no credential could be minted.
        """
        meeting = self._load(meeting_id)
        if meeting.kind != MeetingKind.SPECIFIC:
            raise ValidationError("Meeting is not specific", context={"meeting_id": meeting_id})
        if meeting.helper_id != caller.user_id:
            raise ForbiddenError(
                "You are not authorized to accept this meeting",
                context={"meeting_id": meeting_id},
            )
        if meeting.status != MeetingStatus.PENDING:
            raise conflict_for(meeting, MeetingStatus.ACCEPTED)
        self._ensure_helper_free(caller.user_id)

        now = self._clock()
        if is_pending_expired(meeting, now, self._timeout_seconds):
            self._expire(meeting)
            raise MeetingTimeoutError("Meeting has timed out", meeting_id=meeting_id)

        fields = plan_transition(meeting, MeetingStatus.ACCEPTED, now)
        won = self._store.conditional_transition(
            meeting_id,
            MeetingStatus.PENDING,
            MeetingStatus.ACCEPTED,
            fields,
            created_after=expiry_cutoff(now, self._timeout_seconds),
        )
        if not won:
            current = self._store.get(meeting_id) or meeting
            if current.status == MeetingStatus.PENDING:
                # Only the age guard can fail while the status is unchanged
                self._expire(current)
                raise MeetingTimeoutError("Meeting has timed out", meeting_id=meeting_id)
            raise conflict_for(current, MeetingStatus.ACCEPTED)

        accepted = meeting.model_copy(update={"status": MeetingStatus.ACCEPTED, **fields})
        logger.info("meeting_claimed", meeting_id=meeting_id, helper_id=caller.user_id, kind="specific")
        return ClaimResult(meeting=accepted, credential=self._issue_after_accept(accepted, caller))

    def claim_first_global(self, caller: CallerIdentity) -> ClaimResult:
        """Claim the longest-waiting open global meeting.

        Candidates are tried oldest first. Losing the race for one candidate
        falls through to the next, so concurrent helpers spread across the
        queue instead of all failing on its head.

        Raises:
            ConflictError: The helper already has an accepted meeting.
            NotFoundError: No candidate could be claimed.
            CredentialIssuanceError: Accepted, but no credential could be minted.
        """
        self._ensure_helper_free(caller.user_id)

        now = self._clock()
        cutoff = expiry_cutoff(now, self._timeout_seconds)
        for candidate in self._store.list_pending_global():
            if candidate.created_at <= cutoff:
                self._expire(candidate)
                continue

            fields = plan_transition(candidate, MeetingStatus.ACCEPTED, now)
            fields["helper_id"] = caller.user_id
            if self._store.conditional_transition(
                candidate.meeting_id,
                MeetingStatus.PENDING,
                MeetingStatus.ACCEPTED,
                fields,
                created_after=cutoff,
            ):
                accepted = candidate.model_copy(
                    update={"status": MeetingStatus.ACCEPTED, **fields}
                )
                logger.info(
                    "meeting_claimed",
                    meeting_id=candidate.meeting_id,
                    helper_id=caller.user_id,
                    kind="global",
                )
                return ClaimResult(
                    meeting=accepted,
                    credential=self._issue_after_accept(accepted, caller),
                )

            logger.info(
                "claim_candidate_lost",
                meeting_id=candidate.meeting_id,
                helper_id=caller.user_id,
            )

        raise NotFoundError("No pending meetings")

    def _ensure_helper_free(self, helper_id: str) -> None:
        active = self._store.find_active_by_helper(helper_id)
        if active is not None:
            raise ConflictError(
                "You are already in another meeting",
                context={"meeting_id": active.meeting_id},
            )

    def _issue_after_accept(self, meeting: Meeting, caller: CallerIdentity) -> SessionCredential:
        try:
            return self._issuer.issue_session_credential(meeting.meeting_id, caller.user_id)
        except CredentialIssuanceError:
            # Meeting stays accepted; the caller recovers through issue_credential()
            logger.error(
                "credential_issuance_failed_after_accept",
                meeting_id=meeting.meeting_id,
                helper_id=caller.user_id,
            )
            raise

    # ------------------------------------------------------------------
    # Other transitions
    # ------------------------------------------------------------------

    def reject_meeting(self, caller: CallerIdentity, meeting_id: str) -> Meeting:
        """Designated helper declines a pending specific meeting."""
        meeting = self._load(meeting_id)
        if meeting.kind != MeetingKind.SPECIFIC:
            raise ValidationError("Meeting is not specific", context={"meeting_id": meeting_id})
        if meeting.helper_id != caller.user_id:
            raise ForbiddenError(
                "You are not allowed to reject this meeting",
                context={"meeting_id": meeting_id},
            )

        fields = plan_transition(meeting, MeetingStatus.REJECTED, self._clock())
        if not self._store.conditional_transition(
            meeting_id, MeetingStatus.PENDING, MeetingStatus.REJECTED, fields
        ):
            raise conflict_for(self._store.get(meeting_id) or meeting, MeetingStatus.REJECTED)

        logger.info("meeting_rejected", meeting_id=meeting_id, helper_id=caller.user_id)
        return meeting.model_copy(update={"status": MeetingStatus.REJECTED, **fields})

    def end_meeting(self, caller: CallerIdentity, meeting_id: str) -> Meeting:
        """Either participant ends an accepted meeting."""
        meeting = self._load(meeting_id)
        if not meeting.is_party(caller.user_id):
            raise ForbiddenError(
                "You are not a participant in this meeting",
                context={"meeting_id": meeting_id},
            )
        # pending -> ended exists only for supersession
        if meeting.status != MeetingStatus.ACCEPTED:
            raise conflict_for(meeting, MeetingStatus.ENDED)

        fields = plan_transition(meeting, MeetingStatus.ENDED, self._clock())
        if not self._store.conditional_transition(
            meeting_id, MeetingStatus.ACCEPTED, MeetingStatus.ENDED, fields
        ):
            raise conflict_for(self._store.get(meeting_id) or meeting, MeetingStatus.ENDED)

        logger.info("meeting_ended", meeting_id=meeting_id, ended_by=caller.user_id)
        return meeting.model_copy(update={"status": MeetingStatus.ENDED, **fields})

    def issue_credential(self, caller: CallerIdentity, meeting_id: str) -> SessionCredential:
        """(Re)issue a media credential for a party of a live meeting.

        The seeker may join while the meeting is pending or accepted; the
        helper once it is accepted. This is also how a helper recovers when
        issuance failed right after a successful claim.
        """
        meeting = self._load(meeting_id)
        if not meeting.is_party(caller.user_id):
            raise ForbiddenError(
                "You are not allowed to join this meeting",
                context={"meeting_id": meeting_id},
            )
        if is_pending_expired(meeting, self._clock(), self._timeout_seconds):
            self._expire(meeting)
            raise MeetingTimeoutError(
                "Meeting has timed out waiting for helper", meeting_id=meeting_id
            )
        if meeting.is_terminal:
            raise ConflictError(
                describe_state(meeting.status),
                context={"meeting_id": meeting_id, "current_status": meeting.status.value},
            )
        if caller.user_id != meeting.seeker_id and meeting.status != MeetingStatus.ACCEPTED:
            raise ConflictError(
                describe_state(meeting.status),
                context={"meeting_id": meeting_id, "current_status": meeting.status.value},
            )
        return self._issuer.issue_session_credential(meeting_id, caller.user_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_meeting(self, caller: CallerIdentity, meeting_id: str) -> Meeting:
        """Visible to its parties, and to any helper while an open global request."""
        meeting = self._load(meeting_id)
        open_to_helpers = (
            meeting.kind == MeetingKind.GLOBAL
            and meeting.status == MeetingStatus.PENDING
            and caller.role == UserRole.HELPER
        )
        if not (meeting.is_party(caller.user_id) or open_to_helpers):
            raise ForbiddenError(
                "You are not authorized to access this meeting",
                context={"meeting_id": meeting_id},
            )
        return meeting

    def list_pending_global(self, caller: CallerIdentity) -> List[Meeting]:
        now = self._clock()
        meetings = [
            m for m in self._store.list_pending_global()
            if not is_pending_expired(m, now, self._timeout_seconds)
        ]
        logger.debug("pending_global_listed", helper_id=caller.user_id, count=len(meetings))
        return meetings

    def list_pending_specific(self, caller: CallerIdentity) -> List[PendingSpecificView]:
        now = self._clock()
        names: Dict[str, str] = {}
        views: List[PendingSpecificView] = []
        for meeting in self._store.list_pending_specific(caller.user_id):
            if is_pending_expired(meeting, now, self._timeout_seconds):
                continue
            if meeting.seeker_id not in names:
                seeker = self._users.get_user(meeting.seeker_id)
                names[meeting.seeker_id] = seeker.display_name if seeker else meeting.seeker_id
            views.append(
                PendingSpecificView(meeting=meeting, seeker_name=names[meeting.seeker_id])
            )
        return views

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _load(self, meeting_id: str) -> Meeting:
        meeting = self._store.get(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting not found", context={"meeting_id": meeting_id})
        return meeting

    def _expire(self, meeting: Meeting) -> bool:
        """pending -> timeout; False if a concurrent actor moved it first."""
        expired = self._store.conditional_transition(
            meeting.meeting_id, MeetingStatus.PENDING, MeetingStatus.TIMEOUT
        )
        if expired:
            logger.info("meeting_timed_out", meeting_id=meeting.meeting_id, trigger="claim")
        return expired
