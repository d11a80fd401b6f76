"""
Root conftest.py — shared fixtures for the entire test suite.

Guidelines:
    • No __init__.py in test sub-directories (avoids shadowing root packages).
    • pytest.ini_options lives in pyproject.toml with pythonpath=["."].
    • Markers: integration, concurrency.
"""

import os

# Required settings must exist before any module calls get_settings()
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-with-at-least-32-bytes!")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from datetime import datetime, timedelta, timezone
from typing import Dict
from unittest.mock import MagicMock

import pytest

from adapters.in_memory_meeting_store import InMemoryMeetingStoreAdapter
from adapters.in_memory_user_directory import InMemoryUserDirectoryAdapter
from domain.models import CallerIdentity, SessionCredential, UserRecord, UserRole
from services.matchmaking_service import MatchmakingService
from services.timeout_sweeper import TimeoutSweeper


# ---------------------------------------------------------------------------
# Marker registration
# ---------------------------------------------------------------------------

def pytest_configure(config):
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "concurrency: mark test as a multi-threaded race test")


# ---------------------------------------------------------------------------
# Minimal required settings kwargs for Settings(**BASE_SETTINGS_KWARGS)
# ---------------------------------------------------------------------------

BASE_SETTINGS_KWARGS: Dict[str, str] = {
    "jwt_secret": "test-jwt-secret-with-at-least-32-bytes!",
    "environment": "development",
}


@pytest.fixture()
def base_settings_kwargs() -> Dict[str, str]:
    """Provide the minimal kwargs needed to instantiate ``Settings``."""
    return {**BASE_SETTINGS_KWARGS}


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Directory users and callers
# ---------------------------------------------------------------------------

SEEKER = CallerIdentity(user_id="seeker-1", role=UserRole.SEEKER)
OTHER_SEEKER = CallerIdentity(user_id="seeker-2", role=UserRole.SEEKER)
HELPER = CallerIdentity(user_id="helper-1", role=UserRole.HELPER)
OTHER_HELPER = CallerIdentity(user_id="helper-2", role=UserRole.HELPER)

DIRECTORY_USERS = [
    UserRecord(user_id="seeker-1", first_name="Sam", last_name="Seeker", role=UserRole.SEEKER),
    UserRecord(user_id="seeker-2", first_name="Sara", last_name="", role=UserRole.SEEKER),
    UserRecord(user_id="helper-1", first_name="Hana", last_name="Helper", role=UserRole.HELPER),
    UserRecord(user_id="helper-2", first_name="Hugo", last_name="Helper", role=UserRole.HELPER),
]


@pytest.fixture()
def seeker() -> CallerIdentity:
    return SEEKER


@pytest.fixture()
def other_seeker() -> CallerIdentity:
    return OTHER_SEEKER


@pytest.fixture()
def helper() -> CallerIdentity:
    return HELPER


@pytest.fixture()
def other_helper() -> CallerIdentity:
    return OTHER_HELPER


@pytest.fixture()
def user_directory() -> InMemoryUserDirectoryAdapter:
    return InMemoryUserDirectoryAdapter(DIRECTORY_USERS)


@pytest.fixture()
def meeting_store() -> InMemoryMeetingStoreAdapter:
    return InMemoryMeetingStoreAdapter()


# ---------------------------------------------------------------------------
# Credential issuer stub
# ---------------------------------------------------------------------------

def _fake_credential(meeting_id: str, identity: str) -> SessionCredential:
    return SessionCredential(token=f"tok-{meeting_id}-{identity}", room_name=meeting_id, identity=identity)


@pytest.fixture()
def credential_issuer() -> MagicMock:
    """Issuer mock that mints a deterministic token per (meeting, identity)."""
    issuer = MagicMock()
    issuer.issue_session_credential.side_effect = _fake_credential
    return issuer


# ---------------------------------------------------------------------------
# Services wired to in-memory adapters
# ---------------------------------------------------------------------------

@pytest.fixture()
def matchmaking_service(meeting_store, user_directory, credential_issuer, clock) -> MatchmakingService:
    return MatchmakingService(
        meeting_store=meeting_store,
        user_directory=user_directory,
        credential_issuer=credential_issuer,
        pending_timeout_seconds=30,
        clock=clock,
    )


@pytest.fixture()
def timeout_sweeper(meeting_store, clock) -> TimeoutSweeper:
    return TimeoutSweeper(meeting_store=meeting_store, pending_timeout_seconds=30, clock=clock)
