"""Centralized settings management for the agenda ingestion pipeline."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import URL, make_url


class Settings(BaseSettings):
    """
    Application settings powered by pydantic-settings.

    Loads configuration from environment variables and a .env file located
    at the project root.
    """

    # -------------------------------------------------------------------------
    # ENVIRONMENT
    # -------------------------------------------------------------------------
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    # -------------------------------------------------------------------------
    # DATABASE
    # -------------------------------------------------------------------------
    # Either a full DATABASE_URL or the split DB_* parts below.
    DATABASE_URL: str | None = None
    DB_HOST: str | None = None
    DB_PORT: int = 5432
    DB_NAME: str | None = None
    DB_USER: str | None = None
    DB_PASSWORD: SecretStr | None = None

    # -------------------------------------------------------------------------
    # ORGANIZER (owner of inserted events)
    # -------------------------------------------------------------------------
    ORGANIZER_ID: str | None = None
    ORGANIZER_EMAIL: str | None = None

    # -------------------------------------------------------------------------
    # INGESTION DEFAULTS
    # -------------------------------------------------------------------------
    DEFAULT_CITY: str = "São Paulo, SP"
    HTTP_TIMEOUT: float = Field(default=30.0, gt=0)
    MAX_RETRIES: int = Field(default=3, ge=0, le=10)

    # -------------------------------------------------------------------------
    # PATHS
    # -------------------------------------------------------------------------
    BASE_DIR: Path = Path(__file__).resolve().parents[2]
    INGESTION_CONFIG_PATH: Path = (
        Path(__file__).resolve().parent / "ingestion.yaml"
    )

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def database_url(self) -> str | None:
        """
        Resolve the database URL.

        Prefers DATABASE_URL; otherwise assembles one from the DB_* parts.
        Returns None when no database is configured (dry runs).
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if not self.DB_HOST or not self.DB_NAME:
            return None
        url = URL.create(
            "postgresql",
            username=self.DB_USER,
            password=(
                self.DB_PASSWORD.get_secret_value() if self.DB_PASSWORD else None
            ),
            host=self.DB_HOST,
            port=self.DB_PORT,
            database=self.DB_NAME,
        )
        return url.render_as_string(hide_password=False)

    def get_psycopg2_params(self) -> dict:
        """
        Parse the database URL into psycopg2-compatible connection parameters.

        Uses sqlalchemy.make_url for robust parsing of complex connection strings.

        Returns
        -------
        dict
            psycopg2 connection arguments (host, port, dbname, user, password).

        Raises
        ------
        ValueError
            If no database is configured.
        """
        raw = self.database_url
        if not raw:
            raise ValueError("DATABASE_URL (or DB_HOST/DB_NAME) is not configured")
        url = make_url(raw)
        return {
            "host": url.host,
            "port": url.port,
            "dbname": url.database,
            "user": url.username,
            "password": url.password,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns
    -------
    Settings
        The singleton settings instance.
    """
    return Settings()
