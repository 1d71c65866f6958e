"""Configuration management using Pydantic settings."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class DatalayerSettings(BaseSettings):
    """Datalayer settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DATALAYER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Test mode marker (query override + persisted flag)
    test_mode_key: str = "__dtlrtest__"
    test_mode_max_age: int = 3600 * 24 * 7  # seconds

    # Initialization
    broadcast_pageload: bool = True

    # Method queue bridge
    method_queue_size: int = 1000

    # Plugin resolution
    plugin_entry_point_group: str = "datalayer.plugins"

    # Where JsonFileStore keeps persisted markers (None = in-memory store)
    state_file: Optional[Path] = None


settings = DatalayerSettings()
