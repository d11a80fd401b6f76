"""
Input validation and sanitization utilities.
Request bodies arrive as plain dicts; these helpers turn missing or
malformed fields into ValidationError (HTTP 400).
"""

from typing import Any, Dict, Iterable
import re

from shared_utils.error_handler import ValidationError
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import LogScope


logger = get_scoped_logger(LogScope.VALIDATION)

_UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
    re.IGNORECASE,
)


class InputValidator:
    """Utility class for input validation."""

    @staticmethod
    def validate_non_empty_string(value: Any, field_name: str) -> str:
        """Validate non-empty string.

        Args:
            value: String to validate
            field_name: Name of field for error messages

        Returns:
            Validated (stripped) string

        Raises:
            ValidationError: If validation fails
        """
        if not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a string", context={"field": field_name})

        if not value or not value.strip():
            raise ValidationError(f"{field_name} cannot be empty", context={"field": field_name})

        return value.strip()

    @staticmethod
    def validate_uuid(value: str, field_name: str = "id") -> str:
        """Validate UUID format.

        Args:
            value: UUID string to validate
            field_name: Name of field for error messages

        Returns:
            Validated UUID

        Raises:
            ValidationError: If validation fails
        """
        if not _UUID_PATTERN.match(value):
            raise ValidationError(f"Invalid {field_name} format", context={"field": field_name})

        return value.lower()

    @staticmethod
    def validate_choice(value: Any, choices: Iterable[str], field_name: str) -> str:
        """Validate that a string is one of a fixed set (case-insensitive)."""
        allowed = [c.lower() for c in choices]
        if not isinstance(value, str) or value.lower() not in allowed:
            raise ValidationError(
                f"Invalid {field_name}",
                context={"field": field_name, "allowed": allowed},
            )
        return value.lower()

    @staticmethod
    def require_meeting_id(body: Dict[str, Any], field_name: str = "meetingId") -> str:
        """Pull a meeting id out of a JSON body.

        Raises:
            ValidationError: If the field is missing, empty or not a UUID.
        """
        raw = body.get(field_name)
        if raw is None or raw == "":
            logger.warning("meeting_id_missing", field=field_name)
            raise ValidationError("Meeting ID is required", context={"field": field_name})
        value = InputValidator.validate_non_empty_string(raw, field_name)
        return InputValidator.validate_uuid(value, field_name="meeting ID")
