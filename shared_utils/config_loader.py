from pydantic_settings import BaseSettings
from pydantic import field_validator, ConfigDict
from functools import lru_cache
from typing import Optional
import json
import boto3

from shared_utils.constants import DatabaseConfig, Defaults, LogScope, StoreBackend
from shared_utils.logging_utils import get_scoped_logger

logger = get_scoped_logger(LogScope.CONFIG)

_ENVIRONMENT_ALIASES = {
    "dev": "development",
    "stage": "staging",
    "prod": "production",
}


def get_secret_from_aws(secret_name: str, region: str = Defaults.AWS_REGION, key: str = "jwt_secret") -> str:
    """Fetch a single value from a JSON secret in AWS Secrets Manager.

    Args:
        secret_name: Name of the secret in Secrets Manager
        region: AWS region
        key: Field to read from the secret's JSON document

    Returns:
        Secret value or empty string if fetch fails
    """
    try:
        client = boto3.client("secretsmanager", region_name=region)
        response = client.get_secret_value(SecretId=secret_name)
        if "SecretString" in response:
            secret = json.loads(response["SecretString"])
            return secret.get(key, "")
        return ""
    except Exception as e:
        logger.warning("secret_fetch_failed", secret_name=secret_name, error=str(e))
        return ""


class Settings(BaseSettings):
    """Application configuration with environment variable precedence.

    Precedence: 1) Environment Variables > 2).env file > 3) Class defaults (required fields have no defaults)
    """
    # Application metadata
    app_name: str = "Helper Matchmaking Service"
    app_version: str = "1.0.0"
    app_description: str = "Seeker/helper video session matchmaking"

    # HTTP server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    rate_limit_enabled: bool = True

    # Meeting lifecycle
    pending_timeout_seconds: int = Defaults.PENDING_TIMEOUT_SECONDS

    # Storage
    store_backend: str = StoreBackend.DYNAMODB.value
    aws_region: str = Defaults.AWS_REGION
    aws_endpoint_url: str = ""  # LocalStack / DynamoDB Local
    dynamodb_meetings_table: str = DatabaseConfig.MEETINGS_TABLE
    dynamodb_users_table: str = DatabaseConfig.USERS_TABLE
    dynamodb_seeker_slots_table: str = DatabaseConfig.SEEKER_SLOTS_TABLE

    # Access control
    jwt_secret: str
    jwt_secret_name: Optional[str] = None
    jwt_algorithm: str = Defaults.JWT_ALGORITHM

    # Session credentials (Twilio Video)
    twilio_account_sid: Optional[str] = None
    twilio_api_key: Optional[str] = None
    twilio_api_secret: Optional[str] = None
    credential_ttl_seconds: int = Defaults.CREDENTIAL_TTL_SECONDS

    # Environment
    environment: str
    log_level: str = Defaults.LOG_LEVEL

    model_config = ConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is recognized (short forms are normalised)."""
        value = _ENVIRONMENT_ALIASES.get(v.lower(), v.lower())
        valid_envs = {"development", "staging", "production"}
        if value not in valid_envs:
            raise ValueError(f"environment must be one of {valid_envs}, got {v}")
        return value

    @field_validator('store_backend')
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        """Validate storage backend is supported."""
        valid_backends = {b.value for b in StoreBackend}
        if v.lower() not in valid_backends:
            raise ValueError(f"store_backend must be one of {valid_backends}, got {v}")
        return v.lower()

    @field_validator('pending_timeout_seconds', 'credential_ttl_seconds')
    @classmethod
    def validate_positive_seconds(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"duration must be a positive number of seconds, got {v}")
        return v

    def twilio_configured(self) -> bool:
        """True when every Twilio credential is present."""
        return bool(self.twilio_account_sid and self.twilio_api_key and self.twilio_api_secret)


@lru_cache()
def get_settings() -> Settings:
    """Load and cache application settings.

    If JWT_SECRET_NAME is provided, the signing secret is fetched from
    AWS Secrets Manager and overrides JWT_SECRET.

    Returns:
        Validated Settings instance

    Raises:
        ValueError: If required settings are missing or invalid
    """
    settings = Settings()

    if settings.jwt_secret_name:
        secret = get_secret_from_aws(settings.jwt_secret_name, settings.aws_region)
        if secret:
            settings.jwt_secret = secret
            logger.debug("fetched_jwt_secret_from_secrets_manager")

    # Log loaded configuration (secrets omitted)
    logger.info(
        "configuration_loaded",
        environment=settings.environment,
        store_backend=settings.store_backend,
        aws_region=settings.aws_region,
        meetings_table=settings.dynamodb_meetings_table,
        pending_timeout_seconds=settings.pending_timeout_seconds,
        twilio_configured=settings.twilio_configured(),
    )

    return settings
