"""
Configuration management using environment variables.
Handles all watcher settings with proper validation and defaults.
"""

from typing import Annotated, List, Optional
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class WatcherConfig(BaseSettings):
    """
    Configuration class for watcher settings.
    Uses pydantic BaseSettings for environment variable management.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields from .env
    )

    # Courses
    course_ids: Annotated[List[int], NoDecode] = Field(default_factory=list)
    course_url_template: str = Field(default="https://moodle.rwth-aachen.de/course/view.php?id={id}")
    course_resources_url_template: str = Field(default="https://moodle.rwth-aachen.de/course/resources.php?id={id}")
    snapshot_url_template: str = Field(default="https://moodle.rwth-aachen.de/local/snapshot/course.php?id={id}")
    session_cookie: Optional[str] = Field(default=None)

    # Polling
    poll_interval_seconds: int = Field(default=300)
    deadline_window_hours: float = Field(default=16)
    fetch_timeout_seconds: float = Field(default=60.0)
    request_timeout: int = Field(default=30)
    retry_attempts: int = Field(default=2)
    retry_delay: float = Field(default=1.0)
    rate_limit_per_second: float = Field(default=2.0)

    # Snapshot store
    store_file: str = Field(default="files.json")

    # Notifications
    alerting_enabled: bool = Field(default=True)
    log_enabled: bool = Field(default=True)
    webhook_url: Optional[str] = Field(default=None)
    notify_timeout_seconds: float = Field(default=30.0)
    max_items_per_message: int = Field(default=25)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default="logs/watcher.log")

    # Development/Testing
    debug: bool = Field(default=False)
    timezone: str = Field(default="UTC")

    @field_validator('course_ids', mode='before')
    @classmethod
    def parse_course_ids(cls, v):
        """Accept a comma separated string such as "1234,5678"."""
        if isinstance(v, str):
            return [int(part) for part in v.replace(' ', '').split(',') if part]
        if isinstance(v, int):
            return [v]
        return v

    @field_validator('poll_interval_seconds')
    @classmethod
    def validate_poll_interval(cls, v):
        """Ensure the poll interval is reasonable."""
        if v < 10:
            raise ValueError('poll_interval_seconds must be at least 10')
        return v

    @field_validator('deadline_window_hours')
    @classmethod
    def validate_deadline_window(cls, v):
        """Ensure the deadline window is positive."""
        if v <= 0:
            raise ValueError('deadline_window_hours must be positive')
        return v

    @field_validator('request_timeout')
    @classmethod
    def validate_timeout(cls, v):
        """Ensure timeout is reasonable."""
        if v < 5 or v > 300:
            raise ValueError('request_timeout must be between 5 and 300 seconds')
        return v

    @field_validator('retry_attempts')
    @classmethod
    def validate_retry_attempts(cls, v):
        """Ensure retry attempts is reasonable."""
        if v < 0 or v > 10:
            raise ValueError('retry_attempts must be between 0 and 10')
        return v

    @field_validator('rate_limit_per_second')
    @classmethod
    def validate_rate_limit(cls, v):
        """Ensure rate limit is reasonable."""
        if v < 0.1 or v > 10:
            raise ValueError('rate_limit_per_second must be between 0.1 and 10')
        return v

    @field_validator('max_items_per_message')
    @classmethod
    def validate_max_items(cls, v):
        """Embeds hold at most 25 fields."""
        if v < 1 or v > 25:
            raise ValueError('max_items_per_message must be between 1 and 25')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    def get_store_file_path(self) -> Path:
        """Get snapshot store path as Path object."""
        return Path(self.store_file)

    def get_user_agent(self) -> str:
        """Get user agent string for requests."""
        return "CourseWatcher/1.0"

    def get_headers(self) -> dict:
        """Get default headers for HTTP requests."""
        return {
            "User-Agent": self.get_user_agent(),
            "Accept": "text/html,application/json;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }

    def get_cookies(self) -> dict:
        """Get session cookies for the course server."""
        if self.session_cookie:
            return {"MoodleSession": self.session_cookie}
        return {}


# Global configuration instance
config = WatcherConfig()
