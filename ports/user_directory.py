"""
Port interface for user lookups.

Implementations: DynamoUserDirectoryAdapter, InMemoryUserDirectoryAdapter (adapters/)
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from domain.models import UserRecord


@runtime_checkable
class UserDirectoryPort(Protocol):
    """Read-only view of registered seekers and helpers."""

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        """Retrieve a user by ID.

        Returns:
            UserRecord if found, None otherwise.

        Raises:
            ExternalServiceError: If the directory is unreachable.
        """
        ...
