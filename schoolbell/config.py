"""Application settings loaded from environment variables."""

import logging
import os
from dataclasses import dataclass
from datetime import time
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_FALLBACK_REMINDER_TIME = time(6, 45)


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


@dataclass(frozen=True)
class Child:
    """A configured child and the chat user that receives their messages."""

    name: str
    user_id: str = ""


class Settings(BaseSettings):
    """SchoolBell configuration. All values come from environment variables."""

    # Children: "Anna=12345,Bo=67890" (name=chat user id)
    children: str = Field(default="")

    # Telegram
    telegram_bot_token: str = Field(default="")

    # Notifications
    default_notification_channel: str = Field(default="telegram")

    # Database
    database_path: Path = Field(default=Path("data/schoolbell.db"))

    # Turso (hosted libSQL): when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Scheduler
    scheduler_timezone: str = Field(default="Europe/Copenhagen")
    tick_interval_seconds: int = Field(default=30, ge=1, le=60)
    cron_execution_window_minutes: int = Field(default=5, ge=0)
    initial_occurrence_offset_minutes: int = Field(default=1, ge=0)
    cron_evaluation_window_seconds: int = Field(default=10, ge=1, le=60)
    cron_lookahead_minutes: int = Field(default=2, ge=0)
    default_reminder_time: str = Field(default="06:45")

    # Week letters
    week_letter_check_cron: str = Field(default="0 16 * * 0")
    content_source_url: str = Field(default="")
    retry_interval_hours: int = Field(default=1, ge=1)
    max_retry_duration_hours: int = Field(default=48, ge=1)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_children(self) -> list[Child]:
        """Parse CHILDREN into Child records, skipping blank entries."""
        if not self.children.strip():
            return []
        result = []
        for entry in self.children.split(","):
            name, _, user_id = entry.partition("=")
            if name.strip():
                result.append(Child(name=name.strip(), user_id=user_id.strip()))
        return result

    def get_child(self, name: str) -> Child | None:
        """Look up a configured child by name (case-insensitive)."""
        wanted = name.strip().lower()
        for child in self.get_children():
            if child.name.lower() == wanted:
                return child
        return None

    def get_default_reminder_time(self) -> time:
        """Parse DEFAULT_REMINDER_TIME, falling back to 06:45 when malformed."""
        try:
            return time.fromisoformat(self.default_reminder_time.strip())
        except ValueError:
            logger.warning(
                "Could not parse DEFAULT_REMINDER_TIME=%r, using %s",
                self.default_reminder_time,
                _FALLBACK_REMINDER_TIME.strftime("%H:%M"),
            )
            return _FALLBACK_REMINDER_TIME


settings = Settings()
