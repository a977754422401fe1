"""
Configuration management using Pydantic Settings
Loads and validates environment variables (and an optional .env file)
"""

from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Credentials left empty fall back to boto3's default credential chain.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Provisioning backend selection
    provisioning_provider: Literal["CLOUDFORMATION"] = Field(
        default="CLOUDFORMATION",
        description="Provisioning backend used to deploy stacks"
    )

    # AWS Configuration
    aws_access_key_id: str = Field(
        default="",
        description="AWS Access Key ID"
    )
    aws_secret_access_key: str = Field(
        default="",
        description="AWS Secret Access Key"
    )
    aws_session_token: str = Field(
        default="",
        description="AWS session token for temporary credentials"
    )
    aws_region: str = Field(
        default="us-east-1",
        description="AWS region"
    )
    cloudformation_endpoint_url: Optional[str] = Field(
        default=None,
        description="Override the CloudFormation endpoint (e.g. LocalStack)"
    )

    # Waiter Configuration
    waiter_delay_seconds: int = Field(
        default=30,
        description="Seconds between polls while waiting on a stack or change set"
    )
    waiter_max_attempts: int = Field(
        default=120,
        description="Maximum number of polls before a wait gives up"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @field_validator("waiter_delay_seconds", "waiter_max_attempts")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("waiter settings must be positive integers")
        return v

    @property
    def waiter_config(self) -> dict:
        """
        Returns the WaiterConfig passed to every boto3 waiter
        """
        return {
            "Delay": self.waiter_delay_seconds,
            "MaxAttempts": self.waiter_max_attempts
        }

    def has_explicit_credentials(self) -> bool:
        """Check if static AWS credentials were configured"""
        return bool(self.aws_access_key_id and self.aws_secret_access_key)


# Singleton instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get or create the settings singleton instance.
    Loads configuration from the environment (and .env if present) on first call.

    Returns:
        Settings instance

    Raises:
        ValidationError: If environment variables are invalid
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reset_settings():
    """
    Reset the settings singleton (useful for testing)
    """
    global _settings
    _settings = None
