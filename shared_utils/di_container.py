"""
Dependency injection container for managing application dependencies.
Centralizes adapter creation and lifecycle management.

Adapters are chosen by ``STORE_BACKEND``: DynamoDB in deployed
environments, in-memory for local development.
"""

import threading
from typing import Optional

from shared_utils.config_loader import get_settings
from shared_utils.constants import Environment, LogScope, StoreBackend
from shared_utils.error_handler import ConfigurationError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.CONFIG)


class DIContainer:
    """Singleton dependency injection container.

    Lazy construction is serialised by one re-entrant lock, since sync
    endpoints run on FastAPI's threadpool.
    """

    _instance: Optional['DIContainer'] = None
    _lock = threading.RLock()

    _meeting_store: Optional[object] = None
    _user_directory: Optional[object] = None
    _credential_issuer: Optional[object] = None
    _access_control: Optional[object] = None
    _matchmaking_service: Optional[object] = None
    _timeout_sweeper: Optional[object] = None

    def __new__(cls):
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
        return cls._instance

    def reset(self):
        """Reset container (useful for testing)."""
        with self._lock:
            self._meeting_store = None
            self._user_directory = None
            self._credential_issuer = None
            self._access_control = None
            self._matchmaking_service = None
            self._timeout_sweeper = None

    # ------------------------------------------------------------------
    # Adapters
    # ------------------------------------------------------------------

    def get_meeting_store(self):
        """Get or create the meeting store adapter (lazy singleton)."""
        with self._lock:
            if self._meeting_store is None:
                settings = get_settings()
                if settings.store_backend == StoreBackend.MEMORY.value:
                    from adapters.in_memory_meeting_store import InMemoryMeetingStoreAdapter
                    self._meeting_store = InMemoryMeetingStoreAdapter()
                    logger.info("meeting_store_initialized", adapter="InMemoryMeetingStoreAdapter")
                else:
                    from adapters.dynamo_meeting_store import DynamoMeetingStoreAdapter
                    self._meeting_store = DynamoMeetingStoreAdapter(
                        table_name=settings.dynamodb_meetings_table,
                        slots_table_name=settings.dynamodb_seeker_slots_table,
                        region=settings.aws_region,
                        endpoint_url=settings.aws_endpoint_url,
                    )
                    logger.info("meeting_store_initialized", adapter="DynamoMeetingStoreAdapter")
        return self._meeting_store

    def get_user_directory(self):
        """Get or create the user directory adapter (lazy singleton)."""
        with self._lock:
            if self._user_directory is None:
                settings = get_settings()
                if settings.store_backend == StoreBackend.MEMORY.value:
                    from adapters.in_memory_user_directory import InMemoryUserDirectoryAdapter
                    self._user_directory = InMemoryUserDirectoryAdapter()
                    logger.info("user_directory_initialized", adapter="InMemoryUserDirectoryAdapter")
                else:
                    from adapters.dynamo_user_directory import DynamoUserDirectoryAdapter
                    self._user_directory = DynamoUserDirectoryAdapter(
                        table_name=settings.dynamodb_users_table,
                        region=settings.aws_region,
                        endpoint_url=settings.aws_endpoint_url,
                    )
                    logger.info("user_directory_initialized", adapter="DynamoUserDirectoryAdapter")
        return self._user_directory

    def get_credential_issuer(self):
        """Get or create TwilioCredentialIssuer (lazy singleton)."""
        with self._lock:
            if self._credential_issuer is None:
                from adapters.twilio_credential_issuer import TwilioCredentialIssuer

                settings = get_settings()
                if (
                    not settings.twilio_configured()
                    and settings.environment == Environment.PRODUCTION.value
                ):
                    raise ConfigurationError(
                        "Twilio credentials are required in production",
                        context={"environment": settings.environment},
                    )
                self._credential_issuer = TwilioCredentialIssuer(
                    account_sid=settings.twilio_account_sid,
                    api_key=settings.twilio_api_key,
                    api_secret=settings.twilio_api_secret,
                    ttl_seconds=settings.credential_ttl_seconds,
                )
                if not settings.twilio_configured():
                    logger.warning("twilio_not_configured")
                logger.info("credential_issuer_initialized", adapter="TwilioCredentialIssuer")
        return self._credential_issuer

    def get_access_control(self):
        """Get or create JwtAccessControlAdapter (lazy singleton)."""
        with self._lock:
            if self._access_control is None:
                from adapters.jwt_access_control import JwtAccessControlAdapter

                settings = get_settings()
                self._access_control = JwtAccessControlAdapter(
                    secret=settings.jwt_secret,
                    user_directory=self.get_user_directory(),
                    algorithm=settings.jwt_algorithm,
                )
                logger.info("access_control_initialized", adapter="JwtAccessControlAdapter")
        return self._access_control

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def get_matchmaking_service(self):
        """Get or create MatchmakingService (lazy singleton)."""
        with self._lock:
            if self._matchmaking_service is None:
                from services.matchmaking_service import MatchmakingService

                settings = get_settings()
                self._matchmaking_service = MatchmakingService(
                    meeting_store=self.get_meeting_store(),
                    user_directory=self.get_user_directory(),
                    credential_issuer=self.get_credential_issuer(),
                    pending_timeout_seconds=settings.pending_timeout_seconds,
                )
                logger.info("matchmaking_service_initialized")
        return self._matchmaking_service

    def get_timeout_sweeper(self):
        """Get or create TimeoutSweeper (lazy singleton)."""
        with self._lock:
            if self._timeout_sweeper is None:
                from services.timeout_sweeper import TimeoutSweeper

                settings = get_settings()
                self._timeout_sweeper = TimeoutSweeper(
                    meeting_store=self.get_meeting_store(),
                    pending_timeout_seconds=settings.pending_timeout_seconds,
                )
                logger.info("timeout_sweeper_initialized")
        return self._timeout_sweeper


# Global singleton instance
_container = DIContainer()


def get_di_container() -> DIContainer:
    """Get global DI container instance."""
    return _container
