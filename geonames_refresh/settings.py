"""
Runtime settings for the refresh jobs.

Values come from GEONAMES_* environment variables, optionally backed by
a .env file. Variables already set in the environment win over the file.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from geonames_refresh.observability.logger import get_logger

logger = get_logger(__name__)


class RefreshSettings(BaseSettings):
    """
    Settings shared by the CLI commands.

    Attributes:
        db_host: Database host
        db_port: Database port
        db_name: Database name
        db_user: Database user
        db_password: Database password (required to connect)
        storage_dir: Directory holding the extracted geonames files
        tables_config: Path to the table definitions YAML
        load_timeout_seconds: Upper bound for the bulk load (None = unbounded)
        dataset: Key of the status row
    """

    model_config = SettingsConfigDict(
        env_prefix="GEONAMES_",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    db_host: str = "localhost"
    db_port: int = Field(5432, ge=1, le=65535)
    db_name: str = "geonames"
    db_user: str = "geonames"
    db_password: str | None = None
    storage_dir: str = "storage/geonames"
    tables_config: str = "config/tables.yaml"
    load_timeout_seconds: float | None = Field(None, gt=0)
    dataset: str = "geonames"

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "RefreshSettings":
        return cls(_env_file=env_file)


def load_settings(env_file: str | Path | None = None) -> RefreshSettings:
    """
    Load settings from the environment.

    Args:
        env_file: Optional .env file; its values do not override variables
                  already set in the environment
    """
    if env_file is not None and not Path(env_file).exists():
        logger.warning(f"Environment file not found: {env_file}")
        env_file = None
    elif env_file is not None:
        logger.debug(f"Reading environment file {env_file}")
    return RefreshSettings.from_env(env_file)
