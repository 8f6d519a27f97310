"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class EmiEngineConfig(BaseSettings):
    """EMI engine configuration"""

    model_config = SettingsConfigDict(
        env_prefix="EMI_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    database_url: str = "sqlite:///emi_engine.db"  # memory:// for tests
    database_timeout: float = 30.0

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8091

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    default_currency: str = "INR"
    max_tenure_months: int = 600  # Upper bound on generated installments
    default_payment_method: str = "Bank Transfer"

    # Feature flags
    enable_event_hash_chain: bool = True


# Global configuration instance
config = EmiEngineConfig()


def get_config() -> EmiEngineConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> EmiEngineConfig:
    """Reload configuration from environment"""
    global config
    config = EmiEngineConfig()
    return config
