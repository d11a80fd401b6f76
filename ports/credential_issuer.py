"""
Port interface for media-session credentials.

Implementations: TwilioCredentialIssuer (adapters/)
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from domain.models import SessionCredential


@runtime_checkable
class CredentialIssuerPort(Protocol):
    """Mints capability tokens for the two-party room named after a meeting."""

    def issue_session_credential(self, meeting_id: str, identity: str) -> SessionCredential:
        """Return a credential admitting *identity* to the room *meeting_id*.

        Raises:
            CredentialIssuanceError: Provider misconfigured or unreachable.
        """
        ...
