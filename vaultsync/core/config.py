"""
vaultsync/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (DB URI, CRM credentials, webhook secrets, etc.)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, field_validator, ValidationInfo
from pydantic_settings import BaseSettings
from typing import Optional, Literal, Dict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # MongoDB
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="vaultsync",
        description="MongoDB database name"
    )

    # External CRM
    CRM_BASE_URL: str = Field(
        default="https://services.leadconnectorhq.com",
        description="CRM REST API base URL"
    )
    CRM_API_TOKEN: Optional[str] = Field(
        default=None,
        description="Bearer token for the CRM API"
    )
    CRM_API_VERSION: str = Field(
        default="2021-07-28",
        description="Value sent in the CRM 'Version' header"
    )
    CRM_LOCATION_ID: Optional[str] = Field(
        default=None,
        description="CRM location (sub-account) id, required for contact upserts"
    )
    CRM_TIMEOUT: float = Field(
        default=15.0,
        description="CRM request timeout in seconds"
    )
    CRM_WEBHOOK_SECRET: Optional[str] = Field(
        default=None,
        description="Shared secret expected in CRM tag webhooks"
    )
    CRM_CUSTOM_FIELDS: Dict[str, str] = Field(
        default_factory=dict,
        description="Logical field name -> CRM custom field id (JSON object)"
    )

    # Contract signing webhook (relayed by an automation platform)
    CONTRACT_WEBHOOK_SECRET: Optional[str] = Field(
        default=None,
        description="Shared secret expected in contract completion webhooks"
    )

    # Vault uploads
    STORAGE_DIR: str = Field(
        default="./storage/vault",
        description="Root directory for uploaded vault files"
    )
    MAX_UPLOAD_BYTES: int = Field(
        default=25 * 1024 * 1024,
        description="Maximum accepted upload size in bytes"
    )
    UPLOAD_WEBHOOK_URL: Optional[str] = Field(
        default=None,
        description="Automation webhook notified after each upload"
    )

    # Accounts & sessions
    SECRET_KEY: str = Field(
        default="change-me-in-production",
        description="Secret used to sign session tokens"
    )
    SESSION_COOKIE_NAME: str = Field(
        default="vault_session",
        description="Name of the session cookie"
    )
    SESSION_TTL_MINUTES: int = Field(
        default=60 * 24,
        description="Session lifetime in minutes"
    )
    PASSWORD_MIN_LENGTH: int = Field(
        default=6,
        description="Minimum length for user-chosen passwords"
    )
    DEFAULT_CLIENT_PASSWORD: str = Field(
        default="CBvault2025!",
        description="Initial password for advisor-created client accounts"
    )
    RESET_TOKEN_TTL_MINUTES: int = Field(
        default=60,
        description="Password reset link lifetime in minutes"
    )

    # Application
    APP_URL: str = Field(
        default="http://localhost:3000",
        description="Public URL of the client portal (used in links)"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    API_PREFIX: str = Field(
        default="/api/v1",
        description="API route prefix"
    )
    CORS_ORIGINS: list = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_secret_key(cls, v: str, info: ValidationInfo) -> str:
        """Ensure secret key is changed in production."""
        if info.data.get("ENVIRONMENT") == "production" and v == "change-me-in-production":
            raise ValueError("SECRET_KEY must be changed in production environment")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()


def validate_settings():
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    errors = []

    if not settings.MONGODB_URL:
        errors.append("MONGODB_URL is required")

    if not settings.CRM_BASE_URL:
        errors.append("CRM_BASE_URL is required")

    # Production-specific validations
    if settings.is_production:
        if not settings.CRM_API_TOKEN:
            errors.append("CRM_API_TOKEN is required in production")
        if not settings.CRM_LOCATION_ID:
            errors.append("CRM_LOCATION_ID is required in production")
        if not settings.CRM_WEBHOOK_SECRET:
            errors.append("CRM_WEBHOOK_SECRET is required in production")
        if not settings.CONTRACT_WEBHOOK_SECRET:
            errors.append("CONTRACT_WEBHOOK_SECRET is required in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
