"""
Meetini Reminders — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from meetini/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Cron trigger
    CRON_SECRET: str

    # SQLite
    DATABASE_PATH: str = "data/meetini.db"

    # Public URL used to build links back to an invitation
    APP_BASE_URL: str = "http://localhost:3000"
    APP_PORT: int = 8000

    # Reminder timing
    RESPONSE_NEEDED_DELAY_HOURS: int = 24
    UPCOMING_MEETING_LEAD_MINUTES: int = 60
    REMINDER_RETENTION_DAYS: int = 30

    # Dispatch
    DISPATCH_CONCURRENCY: int = 5
    GATEWAY_TIMEOUT_SECONDS: float = 30.0

    # Email — Resend
    RESEND_API_KEY: str = ""
    RESEND_FROM_EMAIL: str = "Meetini <notifications@meetini.ai>"

    # SMS — Twilio (SMS is disabled when any of these is empty)
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""

    @field_validator(
        "APP_PORT",
        "RESPONSE_NEEDED_DELAY_HOURS",
        "UPCOMING_MEETING_LEAD_MINUTES",
        "REMINDER_RETENTION_DAYS",
        "DISPATCH_CONCURRENCY",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("DISPATCH_CONCURRENCY")
    @classmethod
    def positive_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("DISPATCH_CONCURRENCY must be at least 1")
        return v

    @field_validator("APP_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    cron_secret = os.getenv("CRON_SECRET", "")

    if not cron_secret or cron_secret.startswith("your-"):
        print("ERROR: CRON_SECRET is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        CRON_SECRET=cron_secret,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/meetini.db"),
        APP_BASE_URL=os.getenv("APP_BASE_URL", "http://localhost:3000"),
        APP_PORT=os.getenv("APP_PORT", "8000"),
        RESPONSE_NEEDED_DELAY_HOURS=os.getenv("RESPONSE_NEEDED_DELAY_HOURS", "24"),
        UPCOMING_MEETING_LEAD_MINUTES=os.getenv("UPCOMING_MEETING_LEAD_MINUTES", "60"),
        REMINDER_RETENTION_DAYS=os.getenv("REMINDER_RETENTION_DAYS", "30"),
        DISPATCH_CONCURRENCY=os.getenv("DISPATCH_CONCURRENCY", "5"),
        GATEWAY_TIMEOUT_SECONDS=os.getenv("GATEWAY_TIMEOUT_SECONDS", "30"),
        RESEND_API_KEY=os.getenv("RESEND_API_KEY", ""),
        RESEND_FROM_EMAIL=os.getenv(
            "RESEND_FROM_EMAIL", "Meetini <notifications@meetini.ai>"
        ),
        TWILIO_ACCOUNT_SID=os.getenv("TWILIO_ACCOUNT_SID", ""),
        TWILIO_AUTH_TOKEN=os.getenv("TWILIO_AUTH_TOKEN", ""),
        TWILIO_PHONE_NUMBER=os.getenv("TWILIO_PHONE_NUMBER", ""),
    )


# Singleton — imported by all other modules as:
#   from meetini.config import settings
settings = _load_settings()
