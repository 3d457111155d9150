"""Configuration module for the lecture store."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from lecture_store.exceptions import ConfigurationError

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, kept next to the default data location
_USER_ENV = Path.home() / ".lecture_store" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class StorageConfig(BaseModel):
    """Configuration for the lecture store."""

    # Base directory that relative paths are resolved against
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("LECTURE_STORE_BASE_DIR", "."))
    )
    # Storage root holding metadata/ and entries/
    root_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("LECTURE_STORE_ROOT", "data/storage"))
    )
    # Indentation used when writing subjects.json / entries.json
    json_indent: int = Field(
        default_factory=lambda: int(os.getenv("LECTURE_STORE_JSON_INDENT", "2"))
    )
    # Logging configuration
    log_level: str = Field(
        default_factory=lambda: os.getenv("LECTURE_STORE_LOG_LEVEL", "INFO").upper()
    )
    # When set, logs are also written to a rotating file in this directory
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("LECTURE_STORE_LOG_DIR"))
            if os.getenv("LECTURE_STORE_LOG_DIR")
            else None
        )
    )

    @model_validator(mode="after")
    def _validate_settings(self) -> "StorageConfig":
        """Reject settings that would produce unreadable files or no logging."""
        if self.json_indent < 0:
            raise ValueError("json_indent must be >= 0")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {', '.join(_LOG_LEVELS)}, got {self.log_level!r}"
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_root_dir(self) -> Path:
        """Get the absolute storage root directory."""
        return self.get_absolute_path(self.root_dir)

    def get_log_level(self) -> int:
        """Map log_level to its numeric logging value."""
        level = logging.getLevelName(self.log_level.upper())
        if not isinstance(level, int):
            raise ConfigurationError(
                f"Unknown log level: {self.log_level}", config_key="log_level"
            )
        return level

    def get_log_dir(self) -> Optional[Path]:
        """Get the absolute log directory, or None when file logging is off."""
        if self.log_dir is None:
            return None
        return self.get_absolute_path(self.log_dir)


# Create a global config instance
config = StorageConfig()
