"""
DynamoDB-backed meeting store adapter.

Implements MeetingStorePort using boto3 for the Meetings and SeekerSlots tables.
Status changes are conditional ``update_item`` calls, so the check and the
write are a single server-side operation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from domain.models import Meeting, MeetingKind, MeetingStatus
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import DatabaseConfig, LogScope
from shared_utils.error_handler import ConflictError, ExternalServiceError


logger = get_scoped_logger(LogScope.ADAPTER)

_TRANSITION_FIELDS = frozenset({"accepted_at", "ended_at", "helper_id"})


def to_iso(value: datetime) -> str:
    """Fixed-width UTC timestamp; lexicographic order equals time order."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class DynamoMeetingStoreAdapter:
    """Amazon DynamoDB implementation of MeetingStorePort.

    Meetings table key: ``meeting_id`` (partition key, no sort key).
    SeekerSlots table key: ``seeker_id``; attribute ``active_meeting_id``.
    """

    def __init__(
        self,
        table_name: str = DatabaseConfig.MEETINGS_TABLE,
        slots_table_name: str = DatabaseConfig.SEEKER_SLOTS_TABLE,
        region: str = "eu-west-2",
        endpoint_url: str = "",
        dynamodb_resource: Optional[object] = None,
    ) -> None:
        self._table_name = table_name
        self._slots_table_name = slots_table_name
        resource_kwargs: dict = {"region_name": region}
        if endpoint_url:
            resource_kwargs["endpoint_url"] = endpoint_url
        self._dynamo = dynamodb_resource or boto3.resource(
            "dynamodb", **resource_kwargs
        )
        self._table = self._dynamo.Table(table_name)
        self._slots = self._dynamo.Table(slots_table_name)
        self._client = self._dynamo.meta.client
        self._serializer = TypeSerializer()

    # ------------------------------------------------------------------
    # MeetingStorePort implementation
    # ------------------------------------------------------------------

    def create(self, meeting: Meeting, previous_meeting_id: Optional[str] = None) -> str:
        """Insert the meeting and swing the seeker slot in one transaction."""
        item = self._to_dynamo_item(meeting)
        slot_put: Dict[str, Any] = {
            "TableName": self._slots_table_name,
            "Item": {
                DatabaseConfig.SEEKER_SLOTS_KEY: {"S": meeting.seeker_id},
                "active_meeting_id": {"S": meeting.meeting_id},
            },
        }
        if previous_meeting_id is None:
            slot_put["ConditionExpression"] = "attribute_not_exists(seeker_id)"
        else:
            slot_put["ConditionExpression"] = "active_meeting_id = :prev"
            slot_put["ExpressionAttributeValues"] = {":prev": {"S": previous_meeting_id}}

        try:
            self._client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self._table_name,
                            "Item": {
                                k: self._serializer.serialize(v) for k, v in item.items()
                            },
                            "ConditionExpression": "attribute_not_exists(meeting_id)",
                        }
                    },
                    {"Put": slot_put},
                ]
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "TransactionCanceledException":
                logger.warning(
                    "dynamo_create_meeting_conflict",
                    meeting_id=meeting.meeting_id,
                    seeker_id=meeting.seeker_id,
                )
                raise ConflictError(
                    "Another meeting request for this seeker was created concurrently",
                    context={"seeker_id": meeting.seeker_id},
                ) from exc
            logger.error(
                "dynamo_create_meeting_failed",
                meeting_id=meeting.meeting_id,
                error=str(exc),
            )
            raise ExternalServiceError(
                "DynamoDB", f"Failed to create meeting: {exc}"
            ) from exc

        logger.info(
            "dynamo_create_meeting",
            meeting_id=meeting.meeting_id,
            kind=meeting.kind.value,
        )
        return meeting.meeting_id

    def get(self, meeting_id: str) -> Optional[Meeting]:
        """Retrieve a single meeting by ID."""
        try:
            response = self._table.get_item(
                Key={DatabaseConfig.MEETINGS_KEY: meeting_id}, ConsistentRead=True
            )
        except ClientError as exc:
            logger.error("dynamo_get_meeting_failed", meeting_id=meeting_id, error=str(exc))
            raise ExternalServiceError(
                "DynamoDB", f"Failed to get meeting: {exc}"
            ) from exc
        item = response.get("Item")
        if item is None:
            return None
        return self._from_dynamo_item(item)

    def get_seeker_slot(self, seeker_id: str) -> Optional[str]:
        try:
            response = self._slots.get_item(
                Key={DatabaseConfig.SEEKER_SLOTS_KEY: seeker_id}, ConsistentRead=True
            )
        except ClientError as exc:
            logger.error("dynamo_get_seeker_slot_failed", seeker_id=seeker_id, error=str(exc))
            raise ExternalServiceError(
                "DynamoDB", f"Failed to read seeker slot: {exc}"
            ) from exc
        item = response.get("Item")
        return item.get("active_meeting_id") if item else None

    def find_active_by_seeker(self, seeker_id: str) -> Optional[Meeting]:
        meetings = self._scan(
            Attr("seeker_id").eq(seeker_id)
            & Attr("status").is_in([s.value for s in (MeetingStatus.PENDING, MeetingStatus.ACCEPTED)])
        )
        return meetings[-1] if meetings else None

    def find_active_by_helper(self, helper_id: str) -> Optional[Meeting]:
        meetings = self._scan(
            Attr("helper_id").eq(helper_id) & Attr("status").eq(MeetingStatus.ACCEPTED.value)
        )
        return meetings[-1] if meetings else None

    def list_pending_global(self) -> List[Meeting]:
        return self._scan(
            Attr("status").eq(MeetingStatus.PENDING.value)
            & Attr("kind").eq(MeetingKind.GLOBAL.value)
        )

    def list_pending_specific(self, helper_id: str) -> List[Meeting]:
        return self._scan(
            Attr("status").eq(MeetingStatus.PENDING.value)
            & Attr("kind").eq(MeetingKind.SPECIFIC.value)
            & Attr("helper_id").eq(helper_id)
        )

    def list_pending(self) -> List[Meeting]:
        return self._scan(Attr("status").eq(MeetingStatus.PENDING.value))

    def conditional_transition(
        self,
        meeting_id: str,
        expected_status: MeetingStatus,
        new_status: MeetingStatus,
        fields: Optional[Dict[str, Any]] = None,
        created_after: Optional[datetime] = None,
    ) -> bool:
        """Conditional ``update_item`` guarded on the current status."""
        fields = fields or {}
        unknown = set(fields) - _TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Unsupported transition fields: {sorted(unknown)}")

        set_clauses = ["#status = :new"]
        values: Dict[str, Any] = {
            ":new": new_status.value,
            ":expected": expected_status.value,
        }
        for name in sorted(fields):
            value = fields[name]
            set_clauses.append(f"{name} = :{name}")
            values[f":{name}"] = to_iso(value) if isinstance(value, datetime) else value

        condition = "#status = :expected"
        if created_after is not None:
            condition += " AND created_at > :cutoff"
            values[":cutoff"] = to_iso(created_after)

        try:
            self._table.update_item(
                Key={DatabaseConfig.MEETINGS_KEY: meeting_id},
                UpdateExpression="SET " + ", ".join(set_clauses),
                ConditionExpression=condition,
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues=values,
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                logger.info(
                    "dynamo_transition_guard_failed",
                    meeting_id=meeting_id,
                    expected=expected_status.value,
                    new=new_status.value,
                )
                return False
            logger.error(
                "dynamo_transition_failed",
                meeting_id=meeting_id,
                error=str(exc),
            )
            raise ExternalServiceError(
                "DynamoDB", f"Failed to update meeting status: {exc}"
            ) from exc

        logger.info(
            "dynamo_transition",
            meeting_id=meeting_id,
            expected=expected_status.value,
            new=new_status.value,
        )
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _scan(self, filter_expr) -> List[Meeting]:
        """Paginated filtered scan, sorted oldest first.

        TODO: replace with queries on a (status, created_at) GSI once the
        table outgrows full scans.
        """
        scan_kwargs: Dict[str, Any] = {
            "FilterExpression": filter_expr,
            "ConsistentRead": True,
        }
        items: List[Dict[str, Any]] = []
        try:
            while True:
                response = self._table.scan(**scan_kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if last_key is None:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_key
        except ClientError as exc:
            logger.error("dynamo_scan_meetings_failed", error=str(exc))
            raise ExternalServiceError(
                "DynamoDB", f"Failed to scan meetings: {exc}"
            ) from exc

        meetings = [self._from_dynamo_item(item) for item in items]
        meetings.sort(key=lambda m: m.created_at)
        return meetings

    @staticmethod
    def _to_dynamo_item(meeting: Meeting) -> Dict[str, Any]:
        """Convert domain Meeting → DynamoDB item dict."""
        item: Dict[str, Any] = {
            "meeting_id": meeting.meeting_id,
            "seeker_id": meeting.seeker_id,
            "kind": meeting.kind.value,
            "status": meeting.status.value,
            "created_at": to_iso(meeting.created_at),
        }
        # Absent attributes rather than NULLs keep filter expressions simple
        if meeting.helper_id:
            item["helper_id"] = meeting.helper_id
        if meeting.accepted_at:
            item["accepted_at"] = to_iso(meeting.accepted_at)
        if meeting.ended_at:
            item["ended_at"] = to_iso(meeting.ended_at)
        return item

    @staticmethod
    def _from_dynamo_item(item: Dict[str, Any]) -> Meeting:
        """Convert DynamoDB item dict → domain Meeting."""
        return Meeting(
            meeting_id=item["meeting_id"],
            seeker_id=item["seeker_id"],
            kind=MeetingKind(item["kind"]),
            helper_id=item.get("helper_id"),
            status=MeetingStatus(item.get("status", MeetingStatus.PENDING.value)),
            created_at=from_iso(item["created_at"]),
            accepted_at=from_iso(item["accepted_at"]) if item.get("accepted_at") else None,
            ended_at=from_iso(item["ended_at"]) if item.get("ended_at") else None,
        )
