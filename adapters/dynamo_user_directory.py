"""
DynamoDB-backed user directory adapter.

Implements UserDirectoryPort with a ``get_item`` on the Users table, which is
owned by the identity service; this service only reads it.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError

from domain.models import UserRecord, UserRole
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import DatabaseConfig, LogScope
from shared_utils.error_handler import ExternalServiceError


logger = get_scoped_logger(LogScope.ADAPTER)


class DynamoUserDirectoryAdapter:
    """Amazon DynamoDB implementation of UserDirectoryPort.

    Table key: ``user_id``.
    """

    def __init__(
        self,
        table_name: str = DatabaseConfig.USERS_TABLE,
        region: str = "eu-west-2",
        endpoint_url: str = "",
        dynamodb_resource: Optional[object] = None,
    ) -> None:
        resource_kwargs: dict = {"region_name": region}
        if endpoint_url:
            resource_kwargs["endpoint_url"] = endpoint_url
        dynamo = dynamodb_resource or boto3.resource("dynamodb", **resource_kwargs)
        self._table = dynamo.Table(table_name)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        try:
            response = self._table.get_item(Key={DatabaseConfig.USERS_KEY: user_id})
        except ClientError as exc:
            logger.error("dynamo_get_user_failed", user_id=user_id, error=str(exc))
            raise ExternalServiceError(
                "DynamoDB", f"Failed to get user: {exc}"
            ) from exc
        item = response.get("Item")
        if item is None:
            return None
        return self._from_dynamo_item(item)

    @staticmethod
    def _from_dynamo_item(item: Dict[str, Any]) -> Optional[UserRecord]:
        try:
            role = UserRole(item.get("role", ""))
        except ValueError:
            logger.warning("dynamo_user_unknown_role", user_id=item.get("user_id"), role=item.get("role"))
            return None
        if role == UserRole.SYSTEM:
            return None
        return UserRecord(
            user_id=item["user_id"],
            first_name=item.get("first_name", ""),
            last_name=item.get("last_name", ""),
            role=role,
        )
