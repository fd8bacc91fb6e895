"""Configuration models."""

from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

REFS_NOTES_REVIEW = "refs/notes/review"
DEFAULT_ANONYMOUS_COWARD_NAME = "Name of user not set"


def _check_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {value}") from e
    return value


class NoteFormat(BaseModel):
    """Settings that influence the rendered content of a review note."""

    timezone: str = Field("UTC", description="IANA timezone used for Submitted-at")
    anonymous_coward_name: str = Field(
        DEFAULT_ANONYMOUS_COWARD_NAME,
        description="Name rendered for accounts without name and email",
    )
    canonical_web_url: Optional[str] = Field(
        None, description="Base URL of the review web UI, used to derive Reviewed-on"
    )

    class Config:
        """Pydantic config."""
        json_schema_extra = {
            "example": {
                "timezone": "Europe/Berlin",
                "anonymous_coward_name": "Anonymous Coward",
                "canonical_web_url": "https://review.example.com/",
            }
        }

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        return _check_timezone(value)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings are prefixed with REVIEWNOTES_ (e.g., REVIEWNOTES_THREADS).
    """

    model_config = SettingsConfigDict(
        env_prefix="REVIEWNOTES_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Sources
    repositories_dir: Path = Path(".")
    metadata_file: Path = Path("reviews.json")

    # Notes
    notes_ref: str = REFS_NOTES_REVIEW
    server_name: str = "Code Review"
    server_email: str = "review@localhost"
    max_retries: int = 10
    retry_backoff: float = 0.025

    # Note content
    canonical_web_url: Optional[str] = None
    anonymous_coward_name: str = DEFAULT_ANONYMOUS_COWARD_NAME
    timezone: str = "UTC"

    # Bulk export
    threads: int = 2

    # Listener
    async_listener: bool = False
    listener_workers: int = 2
    listener_queue_size: int = 100

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("threads", "listener_workers")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(value, 1)

    @field_validator("max_retries")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        return max(value, 0)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        return _check_timezone(value)

    def note_format(self) -> NoteFormat:
        """Return the subset of settings that drives note rendering."""
        return NoteFormat(
            timezone=self.timezone,
            anonymous_coward_name=self.anonymous_coward_name,
            canonical_web_url=self.canonical_web_url,
        )
