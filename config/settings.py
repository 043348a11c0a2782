from functools import lru_cache
from pathlib import Path
from typing import Optional

import pydantic
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Runtime settings for the maintenance runner.
    Reads from environment variables (MAINT_*) and the .env file.
    """

    # --- Core Application Configuration ---
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Execution Policy ---
    DRY_RUN: bool = False
    # Run elevated tasks without rights, recording PARTIAL_SUCCESS
    BEST_EFFORT_PRIVILEGE: bool = False
    MAX_PARALLEL_TASKS: int = pydantic.Field(default=1, ge=1)

    # --- Files ---
    OUTPUT_DIR: str = "maintenance_results"
    CONFIG_PATH: Optional[str] = None

    @pydantic.computed_field
    @property
    def DIFF_DIR(self) -> str:
        """
        Where per-task actionable lists are persisted.
        """
        return str(Path(self.OUTPUT_DIR) / "diff")

    @pydantic.computed_field
    @property
    def REPORT_DIR(self) -> str:
        return str(Path(self.OUTPUT_DIR) / "reports")

    @pydantic.field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return value

    # Pydantic-Settings configuration
    model_config = SettingsConfigDict(
        env_prefix="MAINT_",
        env_file=".env",
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Returns a cached instance of the Settings object.
    Using @lru_cache ensures the .env file is read only once.
    """
    return Settings()
