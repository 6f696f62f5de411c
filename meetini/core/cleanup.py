"""
Meetini Reminders — Cleanup Sweeper.

Removes sent reminders past the retention window and every reminder of a
cancelled invitation. Unsent reminders of live invitations are never
eligible, so a reminder a concurrent dispatch run is still delivering can't
be deleted out from under it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from meetini.data.db import InvitationDB

logger = logging.getLogger(__name__)


@dataclass
class CleanupOutcome:
    expired: int = 0
    cancelled: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def deleted(self) -> int:
        return self.expired + self.cancelled

    def as_dict(self) -> dict:
        return {
            "deleted": self.deleted,
            "expired": self.expired,
            "cancelled": self.cancelled,
            "errors": list(self.errors),
        }


def cleanup_reminders(
    db: InvitationDB,
    now: datetime | None = None,
    retention: timedelta | None = None,
) -> CleanupOutcome:
    """Delete expired and orphaned reminders. Idempotent.

    The two deletion steps are independent: if one fails it is logged and
    recorded, and the other still runs.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if retention is None:
        from meetini.config import settings

        retention = timedelta(days=settings.REMINDER_RETENTION_DAYS)

    outcome = CleanupOutcome()

    try:
        outcome.expired = db.delete_sent_reminders_before(now - retention)
    except Exception as exc:
        logger.error("Cleanup of expired reminders failed: %s", exc)
        outcome.errors.append(f"expired: {exc}")

    try:
        outcome.cancelled = db.delete_reminders_for_cancelled()
    except Exception as exc:
        logger.error("Cleanup of cancelled-invitation reminders failed: %s", exc)
        outcome.errors.append(f"cancelled: {exc}")

    logger.info(
        "Cleanup finished: %d expired, %d cancelled",
        outcome.expired, outcome.cancelled,
    )
    return outcome
