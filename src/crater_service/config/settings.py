"""Application settings."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

DEFAULT_CONFIG_FILE = "crater-web-config.json"


class DatabaseConfig(BaseModel):
    """Connection parameters for the build result database. No field has a default."""

    database_name: str = Field(min_length=1)
    username: str = Field(min_length=1)
    password: str
    host: str = Field(min_length=1)
    port: int = Field(gt=0, lt=65536)

    def conninfo(self) -> dict[str, Any]:
        """Keyword arguments accepted by ``psycopg.connect``."""
        return {
            "dbname": self.database_name,
            "user": self.username,
            "password": self.password,
            "host": self.host,
            "port": self.port,
        }


class BusConfig(BaseModel):
    """Transport selection; ``options`` is handed to the transport untouched."""

    backend: str = "null"
    options: dict[str, Any] = Field(default_factory=dict)


class EngineConfig(BaseModel):
    enabled: bool = True
    bus: BusConfig = Field(default_factory=BusConfig)


class ApiUser(BaseModel):
    name: str = Field(min_length=1)
    token: str = Field(min_length=1)


class Settings(BaseSettings):
    """Runtime settings loaded from init args, environment, .env and the JSON config file."""

    app_name: str = "crater-service"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8080
    db: DatabaseConfig | None = None
    engine: EngineConfig = Field(default_factory=EngineConfig)
    users: list[ApiUser] = Field(default_factory=list)

    model_config = SettingsConfigDict(
        env_prefix="CRATER_",
        env_nested_delimiter="__",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        json_file = os.getenv("CRATER_CONFIG_FILE", DEFAULT_CONFIG_FILE)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls, json_file=json_file),
            file_secret_settings,
        )

    def is_authorized(self, name: str | None, token: str | None) -> bool:
        if not name or not token:
            return False
        return any(user.name == name and user.token == token for user in self.users)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
