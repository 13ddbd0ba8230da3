"""
Configuration settings for tablemapper.

Uses Pydantic Settings to load environment variables for the database backend,
logging, and query defaults. Tables and records never read settings directly;
the backend factory and the CLI resolve them once and inject the results, and
models fall back to DEFAULT_PAGING when they declare no paging.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_driver: Literal["postgres", "sqlite"] = Field("postgres", alias="DB_DRIVER")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("tablemapper", alias="DB_NAME")
    sqlite_path: str = Field(":memory:", alias="SQLITE_PATH")
    db_connect_retries: int = Field(3, alias="DB_CONNECT_RETRIES")
    db_profiling: bool = Field(False, alias="DB_PROFILING")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Query defaults
    default_paging: int = Field(10, alias="DEFAULT_PAGING", ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
