"""
JWT bearer-token access control adapter.

Implements AccessControlPort. Tokens are HS256 JWTs minted by the identity
service with ``sub`` (user id), ``role`` and ``exp`` claims. Directory users
must still exist and their stored role wins over the token's claim; the
``system`` role (sweep jobs) is not backed by a directory user.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import jwt

from domain.models import CallerIdentity, UserRole
from ports.user_directory import UserDirectoryPort
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import AuthenticationError, ForbiddenError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ACCESS_CONTROL)


class JwtAccessControlAdapter:
    """PyJWT implementation of AccessControlPort."""

    def __init__(
        self,
        secret: str,
        user_directory: UserDirectoryPort,
        algorithm: str = Defaults.JWT_ALGORITHM,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._users = user_directory

    def authenticate(self, authorization: Optional[str]) -> CallerIdentity:
        if not authorization or not authorization.startswith("Bearer "):
            raise AuthenticationError("You are not logged in! Please log in to get access.")
        token = authorization[len("Bearer "):].strip()
        if not token:
            raise AuthenticationError("You are not logged in! Please log in to get access.")

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "role", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Your session has expired. Please log in again.") from exc
        except jwt.InvalidTokenError as exc:
            logger.warning("jwt_rejected", error=str(exc))
            raise AuthenticationError("Invalid token. Please log in again.") from exc

        try:
            role = UserRole(claims["role"])
        except ValueError as exc:
            raise AuthenticationError("Invalid token. Please log in again.") from exc

        user_id = str(claims["sub"])
        if role == UserRole.SYSTEM:
            return CallerIdentity(user_id=user_id, role=role)

        user = self._users.get_user(user_id)
        if user is None:
            logger.warning("jwt_user_missing", user_id=user_id)
            raise AuthenticationError("The user belonging to this token does no longer exist.")
        return CallerIdentity(user_id=user.user_id, role=user.role)

    def authorize(self, caller: CallerIdentity, allowed_roles: Iterable[UserRole]) -> None:
        allowed = set(allowed_roles)
        if caller.role not in allowed:
            logger.info(
                "role_denied",
                user_id=caller.user_id,
                role=caller.role.value,
                allowed=sorted(r.value for r in allowed),
            )
            raise ForbiddenError(
                "You do not have permission to perform this action",
                context={"role": caller.role.value},
            )

    def issue_token(
        self,
        user_id: str,
        role: UserRole,
        ttl_seconds: int = Defaults.SYSTEM_TOKEN_TTL_SECONDS,
    ) -> str:
        """Mint a bearer token (sweep jobs, local tooling, tests)."""
        now = datetime.now(timezone.utc)
        return jwt.encode(
            {
                "sub": user_id,
                "role": role.value,
                "iat": now,
                "exp": now + timedelta(seconds=ttl_seconds),
            },
            self._secret,
            algorithm=self._algorithm,
        )
