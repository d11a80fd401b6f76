"""
Constants management.
Centralized configuration for all magic values, table names, and defaults.
"""

from enum import Enum
from typing import Final


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    # Short aliases accepted from env vars
    DEV = "dev"
    STAGE = "stage"
    PROD = "prod"


class StoreBackend(str, Enum):
    """Supported meeting store / user directory backends."""
    DYNAMODB = "dynamodb"
    MEMORY = "memory"


# Default values
class Defaults:
    """Service defaults for all configurations."""
    PENDING_TIMEOUT_SECONDS: Final[int] = 30
    CREDENTIAL_TTL_SECONDS: Final[int] = 3600
    SYSTEM_TOKEN_TTL_SECONDS: Final[int] = 300
    JWT_ALGORITHM: Final[str] = "HS256"
    LOG_LEVEL: Final[str] = "INFO"
    AWS_REGION: Final[str] = "eu-west-2"


# Database settings
class DatabaseConfig:
    """DynamoDB table configuration."""
    MEETINGS_TABLE: Final[str] = "Meetings"
    USERS_TABLE: Final[str] = "Users"
    SEEKER_SLOTS_TABLE: Final[str] = "SeekerSlots"
    MEETINGS_KEY: Final[str] = "meeting_id"
    USERS_KEY: Final[str] = "user_id"
    SEEKER_SLOTS_KEY: Final[str] = "seeker_id"


# Logging scopes
class LogScope:
    """Standardized logging scope names."""
    CONFIG = "config_loader"
    API = "api"
    VALIDATION = "validation"
    ERROR_HANDLER = "error_handler"
    ADAPTER = "adapter"
    LIFECYCLE = "lifecycle"
    MATCHMAKING = "matchmaking"
    SWEEPER = "timeout_sweeper"
    ACCESS_CONTROL = "access_control"
    CREDENTIALS = "credentials"
    WORKER = "worker"


# API endpoints and paths
class APIEndpoints:
    """API route definitions."""
    HEALTH = "/health"
    MEETINGS = "/api/meetings"
    MEETING_DETAIL = "/api/meetings/{meeting_id}"
    GLOBAL = "/api/meetings/global"
    PENDING_SPECIFIC = "/api/meetings/pending-specific"
    ACCEPT_SPECIFIC = "/api/meetings/accept-specific"
    ACCEPT_FIRST = "/api/meetings/accept-first"
    REJECT = "/api/meetings/reject"
    END = "/api/meetings/end"
    TOKEN = "/api/meetings/token"
    CHECK_PENDING_TIMEOUTS = "/api/meetings/check-pending-timeouts"


# Rate limits (slowapi syntax)
class RateLimits:
    """Per-client request limits for the write endpoints."""
    CREATE: Final[str] = "20/minute"
    CLAIM: Final[str] = "30/minute"
    SWEEP: Final[str] = "12/minute"


# Error codes
class ErrorCode(str, Enum):
    """Standardized error codes for consistency."""
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_INPUT = "INVALID_INPUT"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    MEETING_TIMEOUT = "MEETING_TIMEOUT"
    CREDENTIAL_ISSUANCE_FAILED = "CREDENTIAL_ISSUANCE_FAILED"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
