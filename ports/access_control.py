"""
Port interface for caller authentication and role checks.

Implementations: JwtAccessControlAdapter (adapters/)
"""

from __future__ import annotations

from typing import Iterable, Optional, Protocol, runtime_checkable

from domain.models import CallerIdentity, UserRole


@runtime_checkable
class AccessControlPort(Protocol):
    """Authenticates callers and asserts their role before the engine runs."""

    def authenticate(self, authorization: Optional[str]) -> CallerIdentity:
        """Resolve an ``Authorization`` header into a caller.

        Raises:
            AuthenticationError: Header missing, malformed, expired, or the
                user no longer exists.
        """
        ...

    def authorize(self, caller: CallerIdentity, allowed_roles: Iterable[UserRole]) -> None:
        """Assert ``caller.role`` is one of *allowed_roles*.

        Raises:
            ForbiddenError: Role not permitted.
        """
        ...
