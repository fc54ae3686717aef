"""
API configuration settings.
"""

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "Book Exchange Listings API"
    api_version: str = "1.0.0"
    api_description: str = "A REST API for managing book-exchange listings"
    books_prefix: str = "/api/books"
    docs_url: str = "/api-docs"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 4000
    debug: bool = False

    # Database Settings
    mongodb_url: str = Field(validation_alias=AliasChoices("MONGODB_URL", "mongodb_url"))
    mongodb_database: str = "ScalableBook"
    mongodb_collection: str = "books"

    # Security Settings
    jwt_secret: str = Field(validation_alias=AliasChoices("JWT_SECRET", "jwt_secret"))
    jwt_client_id: str = Field(
        validation_alias=AliasChoices("JWT_CLIENTID", "JWT_CLIENT_ID", "jwt_client_id")
    )
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60

    # Listing behaviour
    empty_page_not_found: bool = True
    list_all_max_results: Optional[int] = None

    # CORS Settings
    cors_origins: list = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list = ["*"]
    cors_allow_headers: list = ["*"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    model_config = {
        "env_file": ".env",
        "extra": "ignore"  # Ignore extra fields from .env
    }

    @field_validator('jwt_secret', 'jwt_client_id', 'mongodb_url')
    @classmethod
    def validate_not_blank(cls, v):
        """Required settings must carry a value."""
        if not v.strip():
            raise ValueError('must not be blank')
        return v

    @field_validator('jwt_expire_minutes')
    @classmethod
    def validate_expiry(cls, v):
        """Ensure token lifetime is positive."""
        if v < 1:
            raise ValueError('jwt_expire_minutes must be at least 1')
        return v

    @field_validator('list_all_max_results')
    @classmethod
    def validate_list_all_cap(cls, v):
        """Ensure the unpaginated listing cap is positive when set."""
        if v is not None and v < 1:
            raise ValueError('list_all_max_results must be at least 1')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()


# Global config instance
config = APIConfig()
