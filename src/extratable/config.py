"""Engine configuration using pydantic-settings.

Every value has a working default, so an embedding application only needs
to set the ``EXTRATABLE_*`` variables it wants to change.
"""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Engine settings loaded from environment variables.

    Recognised environment variables:
    - EXTRATABLE_HISTORY_LIMIT: Maximum undo depth (oldest entries evicted)
    - EXTRATABLE_DEFAULT_LOCALE: Locale used by the value formatter
    - EXTRATABLE_DEFAULT_COLUMN_WIDTH / EXTRATABLE_DEFAULT_ROW_HEIGHT
    - EXTRATABLE_BLOCK_INVALID_EDITS: Refuse committing edits that fail validation
    - EXTRATABLE_LOG_LEVEL / EXTRATABLE_JSON_LOGS
    """

    model_config = SettingsConfigDict(
        env_prefix="EXTRATABLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # History
    history_limit: int = 50

    # Formatting
    default_locale: str = "en-US"

    # Sizing
    default_column_width: int = 120
    default_row_height: int = 32
    min_column_width: int = 50
    max_column_width: int = 500
    min_row_height: int = 24
    max_row_height: int = 200

    # Editing
    block_invalid_edits: bool = False

    # Logging
    log_level: str = "WARNING"
    json_logs: bool = False

    @field_validator("history_limit")
    @classmethod
    def validate_history_limit(cls, v: int) -> int:
        """Validate the undo depth is positive."""
        if v < 1:
            raise ValueError("history_limit must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known value."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v_upper

    @model_validator(mode="after")
    def validate_size_bounds(self) -> "EngineSettings":
        """Validate that the default sizes sit inside their min/max bounds."""
        errors = []
        if not self.min_column_width <= self.default_column_width <= self.max_column_width:
            errors.append("default_column_width must lie within min/max column width")
        if not self.min_row_height <= self.default_row_height <= self.max_row_height:
            errors.append("default_row_height must lie within min/max row height")
        if errors:
            raise ValueError("Configuration errors:\n  - " + "\n  - ".join(errors))
        return self


@lru_cache
def get_settings() -> EngineSettings:
    """Get cached settings instance.

    Settings are loaded once; call ``get_settings.cache_clear()`` after
    changing the environment.
    """
    return EngineSettings()
