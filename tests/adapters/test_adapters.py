"""
Unit tests for adapter implementations.

Uses mocked boto3 resources and clients — no live AWS calls.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import jwt
import pytest
from botocore.exceptions import ClientError

from domain.models import CallerIdentity, Meeting, MeetingKind, MeetingStatus, UserRecord, UserRole
from adapters.dynamo_meeting_store import DynamoMeetingStoreAdapter, from_iso, to_iso
from adapters.dynamo_user_directory import DynamoUserDirectoryAdapter
from adapters.in_memory_meeting_store import InMemoryMeetingStoreAdapter
from adapters.in_memory_user_directory import InMemoryUserDirectoryAdapter
from adapters.jwt_access_control import JwtAccessControlAdapter
from adapters.twilio_credential_issuer import TwilioCredentialIssuer
from shared_utils.error_handler import (
    AuthenticationError,
    ConflictError,
    CredentialIssuanceError,
    ExternalServiceError,
    ForbiddenError,
)


_CREATED = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
_SECRET = "adapter-test-secret-at-least-32-bytes-long"


def _client_error(code: str, operation: str = "UpdateItem") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "fail"}}, operation)


def _meeting(**overrides) -> Meeting:
    kw = {
        "meeting_id": "m-1",
        "seeker_id": "seeker-1",
        "kind": MeetingKind.SPECIFIC,
        "helper_id": "helper-1",
        "created_at": _CREATED,
    }
    kw.update(overrides)
    return Meeting(**kw)


def _item(**overrides) -> dict:
    item = {
        "meeting_id": "m-1",
        "seeker_id": "seeker-1",
        "kind": "global",
        "status": "pending",
        "created_at": to_iso(_CREATED),
    }
    item.update(overrides)
    return item


# ======================================================================
# Timestamp helpers
# ======================================================================

class TestIsoHelpers:
    def test_fixed_width_utc(self) -> None:
        assert to_iso(_CREATED) == "2024-05-01T12:00:00.123456Z"

    def test_non_utc_input_is_normalised(self) -> None:
        local = _CREATED.astimezone(timezone(timedelta(hours=2)))
        assert to_iso(local) == "2024-05-01T12:00:00.123456Z"

    def test_parse_back(self) -> None:
        assert from_iso(to_iso(_CREATED)) == _CREATED

    def test_lexicographic_order_is_time_order(self) -> None:
        earlier = to_iso(_CREATED)
        later = to_iso(_CREATED + timedelta(microseconds=1))
        assert earlier < later


# ======================================================================
# DynamoMeetingStoreAdapter
# ======================================================================

class TestDynamoMeetingStoreAdapter:
    @pytest.fixture()
    def mock_table(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture()
    def mock_slots(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture()
    def mock_client(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture()
    def adapter(self, mock_table, mock_slots, mock_client) -> DynamoMeetingStoreAdapter:
        mock_resource = MagicMock()
        mock_resource.Table.side_effect = lambda name: {
            "TestMeetings": mock_table,
            "TestSlots": mock_slots,
        }[name]
        mock_resource.meta.client = mock_client
        return DynamoMeetingStoreAdapter(
            table_name="TestMeetings",
            slots_table_name="TestSlots",
            dynamodb_resource=mock_resource,
        )

    # --- create ---------------------------------------------------------

    def test_create_first_meeting(self, adapter, mock_client) -> None:
        assert adapter.create(_meeting()) == "m-1"

        items = mock_client.transact_write_items.call_args[1]["TransactItems"]
        meeting_put, slot_put = items[0]["Put"], items[1]["Put"]
        assert meeting_put["TableName"] == "TestMeetings"
        assert meeting_put["Item"]["meeting_id"] == {"S": "m-1"}
        assert meeting_put["Item"]["helper_id"] == {"S": "helper-1"}
        assert meeting_put["Item"]["created_at"] == {"S": to_iso(_CREATED)}
        assert "accepted_at" not in meeting_put["Item"]
        assert meeting_put["ConditionExpression"] == "attribute_not_exists(meeting_id)"
        assert slot_put["TableName"] == "TestSlots"
        assert slot_put["Item"]["active_meeting_id"] == {"S": "m-1"}
        assert slot_put["ConditionExpression"] == "attribute_not_exists(seeker_id)"

    def test_create_swings_existing_slot(self, adapter, mock_client) -> None:
        adapter.create(_meeting(meeting_id="m-2"), previous_meeting_id="m-1")
        slot_put = mock_client.transact_write_items.call_args[1]["TransactItems"][1]["Put"]
        assert slot_put["ConditionExpression"] == "active_meeting_id = :prev"
        assert slot_put["ExpressionAttributeValues"] == {":prev": {"S": "m-1"}}

    def test_create_cancelled_transaction_is_conflict(self, adapter, mock_client) -> None:
        mock_client.transact_write_items.side_effect = _client_error(
            "TransactionCanceledException", "TransactWriteItems"
        )
        with pytest.raises(ConflictError, match="concurrently"):
            adapter.create(_meeting())

    def test_create_other_error(self, adapter, mock_client) -> None:
        mock_client.transact_write_items.side_effect = _client_error("500", "TransactWriteItems")
        with pytest.raises(ExternalServiceError, match="DynamoDB"):
            adapter.create(_meeting())

    # --- reads ----------------------------------------------------------

    def test_get_found(self, adapter, mock_table) -> None:
        mock_table.get_item.return_value = {
            "Item": _item(status="accepted", helper_id="helper-1", accepted_at=to_iso(_CREATED))
        }
        meeting = adapter.get("m-1")
        assert meeting.status == MeetingStatus.ACCEPTED
        assert meeting.helper_id == "helper-1"
        assert meeting.accepted_at == _CREATED
        assert meeting.created_at == _CREATED

    def test_get_not_found(self, adapter, mock_table) -> None:
        mock_table.get_item.return_value = {}
        assert adapter.get("missing") is None

    def test_get_client_error(self, adapter, mock_table) -> None:
        mock_table.get_item.side_effect = _client_error("500", "GetItem")
        with pytest.raises(ExternalServiceError):
            adapter.get("m-1")

    def test_get_seeker_slot(self, adapter, mock_slots) -> None:
        mock_slots.get_item.return_value = {"Item": {"seeker_id": "seeker-1", "active_meeting_id": "m-9"}}
        assert adapter.get_seeker_slot("seeker-1") == "m-9"
        mock_slots.get_item.return_value = {}
        assert adapter.get_seeker_slot("seeker-2") is None

    def test_reads_are_strongly_consistent(self, adapter, mock_table, mock_slots) -> None:
        mock_table.get_item.return_value = {}
        mock_slots.get_item.return_value = {}
        mock_table.scan.return_value = {"Items": []}

        adapter.get("m-1")
        adapter.get_seeker_slot("seeker-1")
        adapter.find_active_by_seeker("seeker-1")

        mock_table.get_item.assert_called_once_with(Key={"meeting_id": "m-1"}, ConsistentRead=True)
        mock_slots.get_item.assert_called_once_with(Key={"seeker_id": "seeker-1"}, ConsistentRead=True)
        assert mock_table.scan.call_args[1]["ConsistentRead"] is True

    def test_scan_paginates_and_sorts(self, adapter, mock_table) -> None:
        later = to_iso(_CREATED + timedelta(seconds=5))
        mock_table.scan.side_effect = [
            {"Items": [_item(meeting_id="m-2", created_at=later)], "LastEvaluatedKey": {"meeting_id": "m-2"}},
            {"Items": [_item(meeting_id="m-1")]},
        ]

        meetings = adapter.list_pending_global()

        assert [m.meeting_id for m in meetings] == ["m-1", "m-2"]
        assert mock_table.scan.call_count == 2
        assert mock_table.scan.call_args_list[1][1]["ExclusiveStartKey"] == {"meeting_id": "m-2"}

    def test_find_active_by_helper_none_when_idle(self, adapter, mock_table) -> None:
        mock_table.scan.return_value = {"Items": []}
        assert adapter.find_active_by_helper("helper-1") is None

    def test_scan_client_error(self, adapter, mock_table) -> None:
        mock_table.scan.side_effect = _client_error("500", "Scan")
        with pytest.raises(ExternalServiceError):
            adapter.list_pending()

    # --- conditional_transition ----------------------------------------

    def test_transition_success(self, adapter, mock_table) -> None:
        now = _CREATED + timedelta(seconds=10)
        ok = adapter.conditional_transition(
            "m-1",
            MeetingStatus.PENDING,
            MeetingStatus.ACCEPTED,
            {"accepted_at": now, "helper_id": "helper-1"},
        )

        assert ok is True
        kwargs = mock_table.update_item.call_args[1]
        assert kwargs["Key"] == {"meeting_id": "m-1"}
        assert kwargs["UpdateExpression"] == (
            "SET #status = :new, accepted_at = :accepted_at, helper_id = :helper_id"
        )
        assert kwargs["ConditionExpression"] == "#status = :expected"
        assert kwargs["ExpressionAttributeNames"] == {"#status": "status"}
        values = kwargs["ExpressionAttributeValues"]
        assert values[":new"] == "accepted"
        assert values[":expected"] == "pending"
        assert values[":accepted_at"] == to_iso(now)
        assert values[":helper_id"] == "helper-1"

    def test_transition_with_age_guard(self, adapter, mock_table) -> None:
        adapter.conditional_transition(
            "m-1", MeetingStatus.PENDING, MeetingStatus.ACCEPTED, created_after=_CREATED
        )
        kwargs = mock_table.update_item.call_args[1]
        assert kwargs["ConditionExpression"] == "#status = :expected AND created_at > :cutoff"
        assert kwargs["ExpressionAttributeValues"][":cutoff"] == to_iso(_CREATED)

    def test_transition_guard_failure_returns_false(self, adapter, mock_table) -> None:
        mock_table.update_item.side_effect = _client_error("ConditionalCheckFailedException")
        assert adapter.conditional_transition("m-1", MeetingStatus.PENDING, MeetingStatus.TIMEOUT) is False

    def test_transition_other_error_raises(self, adapter, mock_table) -> None:
        mock_table.update_item.side_effect = _client_error("ProvisionedThroughputExceededException")
        with pytest.raises(ExternalServiceError):
            adapter.conditional_transition("m-1", MeetingStatus.PENDING, MeetingStatus.TIMEOUT)

    def test_transition_rejects_unknown_fields(self, adapter, mock_table) -> None:
        with pytest.raises(ValueError, match="seeker_id"):
            adapter.conditional_transition(
                "m-1", MeetingStatus.PENDING, MeetingStatus.ENDED, {"seeker_id": "x"}
            )
        mock_table.update_item.assert_not_called()


# ======================================================================
# InMemoryMeetingStoreAdapter
# ======================================================================

class TestInMemoryMeetingStoreAdapter:
    @pytest.fixture()
    def store(self) -> InMemoryMeetingStoreAdapter:
        return InMemoryMeetingStoreAdapter()

    def test_create_and_get(self, store) -> None:
        store.create(_meeting())
        assert store.get("m-1").helper_id == "helper-1"
        assert store.get_seeker_slot("seeker-1") == "m-1"

    def test_get_returns_copy(self, store) -> None:
        store.create(_meeting())
        copy = store.get("m-1")
        copy.status = MeetingStatus.ENDED
        assert store.get("m-1").status == MeetingStatus.PENDING

    def test_create_requires_matching_slot(self, store) -> None:
        store.create(_meeting())
        with pytest.raises(ConflictError):
            store.create(_meeting(meeting_id="m-2"))
        store.create(_meeting(meeting_id="m-2"), previous_meeting_id="m-1")
        assert store.get_seeker_slot("seeker-1") == "m-2"

    def test_duplicate_id_conflicts(self, store) -> None:
        store.create(_meeting())
        with pytest.raises(ConflictError, match="already exists"):
            store.create(_meeting(), previous_meeting_id="m-1")

    def test_transition_guards_status(self, store) -> None:
        store.create(_meeting())
        assert store.conditional_transition("m-1", MeetingStatus.PENDING, MeetingStatus.REJECTED)
        assert not store.conditional_transition("m-1", MeetingStatus.PENDING, MeetingStatus.ACCEPTED)
        assert store.get("m-1").status == MeetingStatus.REJECTED

    def test_transition_age_guard(self, store) -> None:
        store.create(_meeting())
        assert not store.conditional_transition(
            "m-1", MeetingStatus.PENDING, MeetingStatus.ACCEPTED, created_after=_CREATED
        )
        assert store.conditional_transition(
            "m-1",
            MeetingStatus.PENDING,
            MeetingStatus.ACCEPTED,
            {"accepted_at": _CREATED},
            created_after=_CREATED - timedelta(seconds=1),
        )

    def test_transition_unknown_meeting(self, store) -> None:
        assert not store.conditional_transition("nope", MeetingStatus.PENDING, MeetingStatus.TIMEOUT)

    def test_listings(self, store) -> None:
        store.create(_meeting(meeting_id="g-1", seeker_id="s-1", kind=MeetingKind.GLOBAL, helper_id=None))
        store.create(_meeting(meeting_id="sp-1", seeker_id="s-2"))
        store.create(_meeting(meeting_id="sp-2", seeker_id="s-3", helper_id="helper-2"))

        assert [m.meeting_id for m in store.list_pending_global()] == ["g-1"]
        assert [m.meeting_id for m in store.list_pending_specific("helper-1")] == ["sp-1"]
        assert len(store.list_pending()) == 3
        assert store.find_active_by_seeker("s-2").meeting_id == "sp-1"
        assert store.find_active_by_helper("helper-1") is None

        store.conditional_transition("sp-1", MeetingStatus.PENDING, MeetingStatus.ACCEPTED)
        assert store.find_active_by_helper("helper-1").meeting_id == "sp-1"


# ======================================================================
# User directories
# ======================================================================

class TestDynamoUserDirectoryAdapter:
    @pytest.fixture()
    def mock_table(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture()
    def adapter(self, mock_table) -> DynamoUserDirectoryAdapter:
        mock_resource = MagicMock()
        mock_resource.Table.return_value = mock_table
        return DynamoUserDirectoryAdapter(table_name="TestUsers", dynamodb_resource=mock_resource)

    def test_found(self, adapter, mock_table) -> None:
        mock_table.get_item.return_value = {
            "Item": {"user_id": "helper-1", "first_name": "Hana", "last_name": "Helper", "role": "helper"}
        }
        user = adapter.get_user("helper-1")
        assert user.role == UserRole.HELPER
        assert user.display_name == "Hana Helper"
        mock_table.get_item.assert_called_once_with(Key={"user_id": "helper-1"})

    def test_not_found(self, adapter, mock_table) -> None:
        mock_table.get_item.return_value = {}
        assert adapter.get_user("nobody") is None

    def test_unknown_role_is_ignored(self, adapter, mock_table) -> None:
        mock_table.get_item.return_value = {"Item": {"user_id": "admin-1", "role": "admin"}}
        assert adapter.get_user("admin-1") is None

    def test_system_role_is_not_a_directory_user(self, adapter, mock_table) -> None:
        mock_table.get_item.return_value = {"Item": {"user_id": "cron", "role": "system"}}
        assert adapter.get_user("cron") is None

    def test_client_error(self, adapter, mock_table) -> None:
        mock_table.get_item.side_effect = _client_error("500", "GetItem")
        with pytest.raises(ExternalServiceError, match="DynamoDB"):
            adapter.get_user("helper-1")


class TestInMemoryUserDirectoryAdapter:
    def test_add_and_get(self) -> None:
        directory = InMemoryUserDirectoryAdapter()
        assert directory.get_user("u-1") is None
        directory.add_user(UserRecord(user_id="u-1", role=UserRole.SEEKER))
        assert directory.get_user("u-1").role == UserRole.SEEKER


# ======================================================================
# TwilioCredentialIssuer
# ======================================================================

class TestTwilioCredentialIssuer:
    def _issuer(self, **overrides) -> TwilioCredentialIssuer:
        kw = {
            "account_sid": "ACtest",
            "api_key": "SKtest",
            "api_secret": "twilio-api-secret-at-least-32-bytes",
            "ttl_seconds": 600,
        }
        kw.update(overrides)
        return TwilioCredentialIssuer(**kw)

    def test_unconfigured_raises(self) -> None:
        issuer = self._issuer(api_secret=None)
        assert not issuer.configured
        with pytest.raises(CredentialIssuanceError, match="not configured") as exc_info:
            issuer.issue_session_credential("m-1", "helper-1")
        assert exc_info.value.context["meeting_id"] == "m-1"

    def test_token_grants_the_meeting_room(self) -> None:
        cred = self._issuer().issue_session_credential("m-1", "helper-1")

        assert cred.room_name == "m-1"
        assert cred.identity == "helper-1"
        claims = jwt.decode(cred.token, "twilio-api-secret-at-least-32-bytes", algorithms=["HS256"])
        assert claims["iss"] == "SKtest"
        assert claims["sub"] == "ACtest"
        assert claims["grants"]["identity"] == "helper-1"
        assert claims["grants"]["video"]["room"] == "m-1"

    @patch("adapters.twilio_credential_issuer.AccessToken")
    def test_provider_failure_wrapped(self, mock_token_cls: MagicMock) -> None:
        mock_token_cls.return_value.to_jwt.side_effect = RuntimeError("signing failed")
        with pytest.raises(CredentialIssuanceError, match="signing failed"):
            self._issuer().issue_session_credential("m-1", "helper-1")

    @patch("adapters.twilio_credential_issuer.AccessToken")
    def test_ttl_passed_through(self, mock_token_cls: MagicMock) -> None:
        mock_token_cls.return_value.to_jwt.return_value = b"bytes-token"
        cred = self._issuer(ttl_seconds=42).issue_session_credential("m-1", "seeker-1")
        assert cred.token == "bytes-token"
        assert mock_token_cls.call_args[1]["ttl"] == 42
        assert mock_token_cls.call_args[1]["identity"] == "seeker-1"


# ======================================================================
# JwtAccessControlAdapter
# ======================================================================

class TestJwtAccessControlAdapter:
    @pytest.fixture()
    def directory(self) -> InMemoryUserDirectoryAdapter:
        return InMemoryUserDirectoryAdapter(
            [
                UserRecord(user_id="seeker-1", role=UserRole.SEEKER),
                UserRecord(user_id="helper-1", role=UserRole.HELPER),
            ]
        )

    @pytest.fixture()
    def access(self, directory) -> JwtAccessControlAdapter:
        return JwtAccessControlAdapter(secret=_SECRET, user_directory=directory)

    def _bearer(self, token: str) -> str:
        return f"Bearer {token}"

    def test_authenticates_directory_user(self, access) -> None:
        token = access.issue_token("helper-1", UserRole.HELPER)
        caller = access.authenticate(self._bearer(token))
        assert caller == CallerIdentity(user_id="helper-1", role=UserRole.HELPER)

    def test_directory_role_wins_over_claim(self, access) -> None:
        token = access.issue_token("seeker-1", UserRole.HELPER)
        assert access.authenticate(self._bearer(token)).role == UserRole.SEEKER

    def test_system_role_skips_directory(self, access) -> None:
        token = access.issue_token("cron", UserRole.SYSTEM)
        assert access.authenticate(self._bearer(token)).role == UserRole.SYSTEM

    @pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer ", "Bearer    "])
    def test_missing_or_malformed_header(self, access, header) -> None:
        with pytest.raises(AuthenticationError, match="not logged in"):
            access.authenticate(header)

    def test_expired_token(self, access) -> None:
        token = access.issue_token("helper-1", UserRole.HELPER, ttl_seconds=-10)
        with pytest.raises(AuthenticationError, match="expired"):
            access.authenticate(self._bearer(token))

    def test_wrong_signature(self, access) -> None:
        other = JwtAccessControlAdapter(secret="another-secret-that-is-also-32-bytes!!", user_directory=None)
        token = other.issue_token("helper-1", UserRole.HELPER)
        with pytest.raises(AuthenticationError, match="Invalid token"):
            access.authenticate(self._bearer(token))

    def test_missing_role_claim(self, access) -> None:
        token = jwt.encode(
            {"sub": "helper-1", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            _SECRET,
            algorithm="HS256",
        )
        with pytest.raises(AuthenticationError, match="Invalid token"):
            access.authenticate(self._bearer(token))

    def test_unknown_role_claim(self, access) -> None:
        token = jwt.encode(
            {"sub": "helper-1", "role": "admin", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            _SECRET,
            algorithm="HS256",
        )
        with pytest.raises(AuthenticationError, match="Invalid token"):
            access.authenticate(self._bearer(token))

    def test_deleted_user(self, access) -> None:
        token = access.issue_token("ghost", UserRole.HELPER)
        with pytest.raises(AuthenticationError, match="no longer exist"):
            access.authenticate(self._bearer(token))

    def test_authorize(self, access) -> None:
        caller = CallerIdentity(user_id="seeker-1", role=UserRole.SEEKER)
        access.authorize(caller, [UserRole.SEEKER, UserRole.HELPER])
        with pytest.raises(ForbiddenError):
            access.authorize(caller, [UserRole.HELPER])


# ======================================================================
# Port conformance
# ======================================================================

class TestPortConformance:
    def test_meeting_stores(self) -> None:
        from ports.meeting_store import MeetingStorePort

        resource = MagicMock()
        assert isinstance(InMemoryMeetingStoreAdapter(), MeetingStorePort)
        assert isinstance(DynamoMeetingStoreAdapter(dynamodb_resource=resource), MeetingStorePort)

    def test_user_directories(self) -> None:
        from ports.user_directory import UserDirectoryPort

        assert isinstance(InMemoryUserDirectoryAdapter(), UserDirectoryPort)
        assert isinstance(DynamoUserDirectoryAdapter(dynamodb_resource=MagicMock()), UserDirectoryPort)

    def test_issuer_and_access_control(self) -> None:
        from ports.access_control import AccessControlPort
        from ports.credential_issuer import CredentialIssuerPort

        assert isinstance(TwilioCredentialIssuer(None, None, None), CredentialIssuerPort)
        assert isinstance(
            JwtAccessControlAdapter(secret=_SECRET, user_directory=InMemoryUserDirectoryAdapter()),
            AccessControlPort,
        )
