"""
In-memory user directory adapter for local development and tests.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from domain.models import UserRecord
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import LogScope


logger = get_scoped_logger(LogScope.ADAPTER)


class InMemoryUserDirectoryAdapter:
    """Dict-backed implementation of UserDirectoryPort."""

    def __init__(self, users: Optional[Iterable[UserRecord]] = None) -> None:
        self._users: Dict[str, UserRecord] = {u.user_id: u for u in users or []}

    def add_user(self, user: UserRecord) -> None:
        self._users[user.user_id] = user
        logger.debug("inmemory_user_added", user_id=user.user_id, role=user.role.value)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self._users.get(user_id)
