"""Shared test fixtures and configuration.

Sets up fake environment variables so meetini.config doesn't sys.exit(),
and provides common fixtures like a temp DB and a recording gateway.
"""

import os

# Patch env vars BEFORE any meetini imports
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("APP_BASE_URL", "https://meetini.test")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "")

from datetime import datetime, timedelta, timezone

import pytest

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeGateway:
    """Records every send() call; behaviour is controlled per test."""

    def __init__(self, error: Exception | None = None, fail_emails: set[str] | None = None,
                 delay: float = 0.0):
        self.calls = []
        self.error = error
        self.fail_emails = fail_emails or set()
        self.delay = delay

    async def send(self, recipients, payload):
        from meetini.ports.notification_port import DeliveryReport, RecipientResult

        self.calls.append((list(recipients), payload))
        if self.delay:
            import asyncio
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return DeliveryReport(results=[
            RecipientResult(
                recipient=r,
                success=r.email not in self.fail_emails,
                channels=[] if r.email in self.fail_emails else ["email"],
                error="boom" if r.email in self.fail_emails else "",
            )
            for r in recipients
        ])


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_meetini.db")


@pytest.fixture
def db(tmp_db_path):
    """Return an InvitationDB instance backed by a temp file."""
    from meetini.data.db import InvitationDB
    return InvitationDB(db_path=tmp_db_path)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def make_invitation(db):
    """Factory: insert an invitation without scheduling any reminders."""

    def _make(participants=None, proposed_times=None, title="Coffee chat", **kwargs):
        if participants is None:
            participants = [
                {"email": "alice@example.com", "name": "Alice"},
                {"email": "bob@example.com", "name": "Bob"},
            ]
        if proposed_times is None:
            proposed_times = [NOW + timedelta(days=3), NOW + timedelta(days=4)]
        return db.create_invitation(
            title=title,
            proposed_times=proposed_times,
            created_by="organizer-1",
            participants=participants,
            **kwargs,
        )

    return _make
