"""
Configuration Utility - Environment Variables and Credentials

Centralized configuration loading from .env files using pydantic-settings,
plus lookup of API credentials by stack name from the credentials JSON file.

Usage:
    from drawexport.utils.config import settings, load_credentials

    creds = load_credentials(settings.CREDENTIALS_FILE, settings.STACK)
    export_dir = resolve_export_dir(settings.STACK, settings.EXPORT_DIR)
"""

from functools import lru_cache
from pathlib import Path

import orjson
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from drawexport.utils.schemas import Credentials


class CredentialsError(Exception):
    """Raised when API credentials cannot be loaded for the requested stack."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Stack / credentials
    STACK: str = Field(default="reardmener")
    CREDENTIALS_FILE: str = Field(default="./credentials.json")

    # Export output
    EXPORT_DIR: str = Field(default="")
    STATE_FILE_NAME: str = Field(default="lastexport.json")

    # Translation polling
    POLL_INTERVAL_SECONDS: float = Field(default=5.0)
    TRANSLATION_TIMEOUT_SECONDS: float = Field(default=600.0)

    # HTTP transport
    HTTP_TIMEOUT_SECONDS: float = Field(default=600.0)

    # Scheduler Configuration
    EXPORT_SCHEDULE_CRON: str = Field(default="0 2 * * *")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="main.log")
    LOG_MAX_BYTES: int = Field(default=1048576)
    LOG_BACKUP_COUNT: int = Field(default=3)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


def resolve_export_dir(stack: str, export_dir: str | None = None) -> Path:
    """Return the export folder, defaulting to ./pdfoutput/<stack>."""
    if export_dir:
        return Path(export_dir)
    return Path("./pdfoutput") / stack


def load_credentials(path: str | Path, stack: str) -> Credentials:
    """
    Load API credentials for a stack from the credentials JSON file.

    The file maps stack names to objects with url, accessKey, secretKey and
    companyId.

    Args:
        path: Path to credentials JSON file
        stack: Name of the credential profile to use

    Returns:
        Validated Credentials for the stack

    Raises:
        CredentialsError: If the file is missing or unreadable, the stack is
            not present, or any credential field is empty
    """
    creds_path = Path(path)

    if not creds_path.is_file():
        raise CredentialsError(f"{creds_path} not found")

    try:
        data = orjson.loads(creds_path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as e:
        raise CredentialsError(f"Failed to read credentials file {creds_path}: {e}") from e

    profile = data.get(stack) if isinstance(data, dict) else None
    if not profile:
        raise CredentialsError(f"No credentials for stack={stack} in {creds_path}")

    try:
        return Credentials(**profile)
    except (TypeError, ValidationError) as e:
        raise CredentialsError(f"Invalid credentials for stack={stack} in {creds_path}: {e}") from e


# Global settings instance
settings = get_settings()
