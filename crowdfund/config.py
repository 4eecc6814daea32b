"""
Configuration Management Module

Centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


THIRTY_DAYS = 30 * 24 * 60 * 60


class CrowdfundConfig(BaseSettings):
    """Crowdfund ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="CROWDFUND_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    database_url: str = "sqlite:///crowdfund.db"  # or memory://

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Token transfer service
    token_service_url: str = ""  # Empty = in-memory token ledger
    token_service_timeout: float = 5.0
    token_service_api_key: str = ""
    ledger_account: str = "crowdfund-ledger"  # Account holding pledged tokens

    # Business rules
    # Upper bound on end_offset in seconds; defaults to the fixed thirty-day window
    max_campaign_duration: int = Field(default=THIRTY_DAYS, gt=0)

    # Feature flags
    enable_audit_logging: bool = True


# Global configuration instance
config = CrowdfundConfig()


def get_config() -> CrowdfundConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> CrowdfundConfig:
    """Reload configuration from environment"""
    global config
    config = CrowdfundConfig()
    return config
