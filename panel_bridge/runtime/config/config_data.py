"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, computed_field

# TribeHR documents that the 'iss' claim of every panel request is this exact string
PARTNER_ISSUER = "http://www.tribehr.com"


class AppConfig(BaseModel):
    """Application configuration model."""

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    host: str = Field(default="localhost", description="Application host")
    port: int = Field(default=8000, description="Application port")


class PartnerConfig(BaseModel):
    """Credentials and endpoints issued by the partner for this panel."""

    integration_id: str = Field(
        default="", description="Integration ID; used as 'iss' on outgoing requests"
    )
    shared_secret: str = Field(
        default="", description="Pre-shared HS256 secret for both directions"
    )
    lookup_endpoint: str = Field(
        default="https://app.tribehr.com/lookup/",
        description="Base URL of the partner Lookup API (trailing slash expected)",
    )
    request_timeout_seconds: float = Field(
        default=5.0, description="Hard timeout for a single Lookup API call"
    )
    outgoing_token_ttl_seconds: int = Field(
        default=300, description="Lifetime of tokens signed for Lookup API calls"
    )

    @computed_field
    @property
    def normalized_lookup_endpoint(self) -> str:
        """Lookup endpoint with exactly one trailing slash."""
        return self.lookup_endpoint.rstrip("/") + "/"


class SecurityConfig(BaseModel):
    """Token validation and replay protection settings."""

    enforce_nonce: bool = Field(
        default=True,
        description="Reject replayed nonces; disable only to replay captured requests in test",
    )
    nonce_window_seconds: int = Field(
        default=12 * 3600, description="How long a seen nonce blocks reuse"
    )
    max_token_chars: int = Field(
        default=4096, description="Upper bound on the size of an incoming token"
    )
    max_nonce_attempts: int = Field(
        default=10, description="Attempts at drawing an unused outgoing nonce"
    )


class ReconciliationConfig(BaseModel):
    """Toggles for lazily creating local records from partner identities."""

    create_account_if_not_exists: bool = Field(
        default=True, description="Create a local account when no match is found"
    )
    create_user_if_not_exists: bool = Field(
        default=True, description="Create a local user when no match is found"
    )


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="plain", description="Log format")
    file: str | None = Field(default=None, description="Log file path")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )
    request_logging_enabled: bool = Field(
        default=False, description="Write the partner request trace to its own file"
    )
    request_log_file: str = Field(
        default="logs/request.log", description="Partner request trace file"
    )


class DatabaseConfig(BaseModel):
    """Database configuration model."""

    url: str = Field(
        default="sqlite:///./db/panel_bridge.sqlite3",
        description="Database connection URL",
    )
    pool_size: int = Field(default=20, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum pool overflow")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    pool_recycle: int = Field(default=1800, description="Pool recycle time in seconds")
    echo: bool = Field(default=False, description="Echo SQL statements")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


class ConfigData(BaseModel):
    """Root configuration model that matches the config.yaml structure."""

    app: AppConfig = Field(
        default_factory=AppConfig, description="Application configuration"
    )
    partner: PartnerConfig = Field(
        default_factory=PartnerConfig, description="Partner integration configuration"
    )
    security: SecurityConfig = Field(
        default_factory=SecurityConfig, description="Security configuration"
    )
    reconciliation: ReconciliationConfig = Field(
        default_factory=ReconciliationConfig,
        description="Identity reconciliation configuration",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
