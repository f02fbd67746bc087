"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class EngineConfig(BaseSettings):
    """Progressive loan engine configuration"""

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Calculation configuration
    rate_factor_precision: int = 19  # Significant digits for rate factors and interest
    rounding_mode: str = "ROUND_HALF_EVEN"  # Any decimal module rounding constant name
    emi_max_iterations: int = 20

    # Loan product defaults
    default_days_in_year_type: str = "actual"
    default_capitalized_income_strategy: str = "equal_amortization"

    # Batch processing configuration
    batch_max_workers: int = 4

    class Config:
        env_prefix = "PROGRESSIVE_LOAN_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = EngineConfig()


def get_config() -> EngineConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> EngineConfig:
    """Reload configuration from environment"""
    global config
    config = EngineConfig()
    return config
