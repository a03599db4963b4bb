"""
Configuration Management Module

Centralised, environment-driven configuration using pydantic-settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class ArrearsConfig(BaseSettings):
    """Arrears ageing service configuration"""

    # Storage
    database_url: str = "sqlite:///arrears.db"  # or memory:// for tests

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8091

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Batch rebuild
    batch_max_workers: int = 1  # > 1 computes per-loan aggregates in a thread pool

    class Config:
        env_prefix = "ARREARS_"
        env_file = ".env"
        case_sensitive = False


config = ArrearsConfig()


def get_config() -> ArrearsConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> ArrearsConfig:
    """Reload configuration from environment"""
    global config
    config = ArrearsConfig()
    return config
