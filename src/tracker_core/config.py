"""Runtime settings, read from ALAT_* environment variables."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ALAT_", env_file=".env", extra="ignore")

    # Sheet names inside xlsx exports of the tracking spreadsheet
    history_sheet: str = "Form Responses 1"
    equipment_sheet: str = "MASTER ALAT"

    # Zone the sheet timestamps are typed in; offsets in ISO strings convert to it
    sheet_timezone: str = "UTC"

    auto_sync_interval_seconds: float = Field(default=8.0, ge=0)
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
