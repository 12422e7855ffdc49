# study_copilot/config.py
"""
Runtime configuration.

Values come from environment variables prefixed STUDY_COPILOT_ (or a .env file).
Google OAuth and Upstash credentials are read directly from their own env vars
by google_auth / token_store.
"""

from __future__ import annotations

from functools import lru_cache
from zoneinfo import ZoneInfo

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from study_copilot.planner import PlannerSettings


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STUDY_COPILOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = Field("sqlite:///data/study_copilot.db", description="SQLAlchemy database URL")
    timezone: str = Field("America/Toronto", description="IANA timezone used for planning")
    log_level: str = Field("INFO", description="Root log level for the API process")

    # Planner constants
    working_start_hour: int = Field(8, ge=0, le=23)
    working_end_hour: int = Field(22, ge=1, le=24)
    slot_minutes: int = Field(60, ge=15, le=240)
    min_planning_days: int = Field(7, ge=1)
    max_planning_days: int = Field(84, ge=1)
    max_total_blocks: int = Field(30, ge=1)
    reschedule_days: int = Field(7, ge=1)
    max_alternatives: int = Field(5, ge=1)
    min_alternatives: int = Field(2, ge=1)

    # Google Calendar (optional)
    google_busy_enabled: bool = Field(False, description="Merge Google FreeBusy into busy intervals")
    google_sync_enabled: bool = Field(False, description="Mirror accepted study blocks to the primary calendar")
    planning_calendar_ids: str = Field("", description="Comma-separated calendar ids; empty means all")

    @model_validator(mode="after")
    def _check_bounds(self) -> "Settings":
        if self.working_end_hour <= self.working_start_hour:
            raise ValueError("working_end_hour must be after working_start_hour")
        if self.max_planning_days < self.min_planning_days:
            raise ValueError("max_planning_days must be >= min_planning_days")
        if self.max_alternatives < self.min_alternatives:
            raise ValueError("max_alternatives must be >= min_alternatives")
        return self

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def calendar_ids(self) -> set[str]:
        """
        Parsed planning_calendar_ids. Empty set means "include all calendars".
        """
        return {x.strip() for x in self.planning_calendar_ids.split(",") if x.strip()}

    def planner_settings(self) -> PlannerSettings:
        return PlannerSettings(
            working_start_hour=self.working_start_hour,
            working_end_hour=self.working_end_hour,
            slot_minutes=self.slot_minutes,
            min_planning_days=self.min_planning_days,
            max_planning_days=self.max_planning_days,
            max_total_blocks=self.max_total_blocks,
            reschedule_days=self.reschedule_days,
            max_alternatives=self.max_alternatives,
            min_alternatives=self.min_alternatives,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
