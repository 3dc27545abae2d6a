"""Configuration models and loaders."""

from .config_data import (
    PARTNER_ISSUER,
    AppConfig,
    ConfigData,
    DatabaseConfig,
    LoggingConfig,
    PartnerConfig,
    ReconciliationConfig,
    SecurityConfig,
)
from .config_template import load_templated_yaml, parse_templated_yaml

__all__ = [
    "PARTNER_ISSUER",
    "AppConfig",
    "ConfigData",
    "DatabaseConfig",
    "LoggingConfig",
    "PartnerConfig",
    "ReconciliationConfig",
    "SecurityConfig",
    "load_templated_yaml",
    "parse_templated_yaml",
]
