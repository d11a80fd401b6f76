"""
Twilio Video credential issuer.

Implements CredentialIssuerPort by minting a Twilio access token with a
VideoGrant for the room named after the meeting. Twilio creates ad-hoc rooms
on first connect, so no room provisioning call is made here.
"""

from __future__ import annotations

from typing import Optional

from twilio.jwt.access_token import AccessToken
from twilio.jwt.access_token.grants import VideoGrant

from domain.models import SessionCredential
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import CredentialIssuanceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.CREDENTIALS)


class TwilioCredentialIssuer:
    """Twilio implementation of CredentialIssuerPort."""

    def __init__(
        self,
        account_sid: Optional[str],
        api_key: Optional[str],
        api_secret: Optional[str],
        ttl_seconds: int = Defaults.CREDENTIAL_TTL_SECONDS,
    ) -> None:
        self._account_sid = account_sid
        self._api_key = api_key
        self._api_secret = api_secret
        self._ttl_seconds = ttl_seconds

    @property
    def configured(self) -> bool:
        return bool(self._account_sid and self._api_key and self._api_secret)

    def issue_session_credential(self, meeting_id: str, identity: str) -> SessionCredential:
        if not self.configured:
            logger.error("twilio_not_configured", meeting_id=meeting_id)
            raise CredentialIssuanceError(
                "Twilio credentials are not configured correctly. Please contact support.",
                meeting_id=meeting_id,
            )

        try:
            token = AccessToken(
                self._account_sid,
                self._api_key,
                self._api_secret,
                identity=identity,
                ttl=self._ttl_seconds,
            )
            token.add_grant(VideoGrant(room=meeting_id))
            jwt = token.to_jwt()
        except Exception as exc:
            logger.error(
                "twilio_token_failed",
                meeting_id=meeting_id,
                identity=identity,
                error=str(exc),
            )
            raise CredentialIssuanceError(
                f"Could not issue session credential: {exc}",
                meeting_id=meeting_id,
            ) from exc

        if isinstance(jwt, bytes):
            jwt = jwt.decode("utf-8")

        logger.info("twilio_token_issued", meeting_id=meeting_id, identity=identity)
        return SessionCredential(token=jwt, room_name=meeting_id, identity=identity)
