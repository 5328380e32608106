"""Configuration models."""

from crater_service.config.settings import (
    ApiUser,
    BusConfig,
    DatabaseConfig,
    EngineConfig,
    Settings,
    get_settings,
)

__all__ = [
    "ApiUser",
    "BusConfig",
    "DatabaseConfig",
    "EngineConfig",
    "Settings",
    "get_settings",
]
