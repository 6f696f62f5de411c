"""
Meetini Reminders — Reminder Scheduler.

Given an invitation, works out which reminder jobs should exist and writes
the missing ones. Safe to call any number of times: invitation and
response_needed go out at most once per invitation, upcoming_meeting at most
once per meeting time, so a repeat call creates nothing even after earlier
reminders were dispatched.

  invitation        due immediately
  response_needed   now + RESPONSE_NEEDED_DELAY_HOURS, while anyone is pending
  upcoming_meeting  meeting time - UPCOMING_MEETING_LEAD_MINUTES, once scheduled
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from meetini.core.errors import InvalidStateError, NotFoundError
from meetini.data.models import InvitationStatus, ParticipantStatus, ReminderType

if TYPE_CHECKING:
    from meetini.data.db import InvitationDB
    from meetini.data.models import Invitation, Reminder

logger = logging.getLogger(__name__)


def default_response_delay() -> timedelta:
    from meetini.config import settings

    return timedelta(hours=settings.RESPONSE_NEEDED_DELAY_HOURS)


def default_meeting_lead() -> timedelta:
    from meetini.config import settings

    return timedelta(minutes=settings.UPCOMING_MEETING_LEAD_MINUTES)


def plan_reminders(
    invitation: Invitation,
    now: datetime,
    response_delay: timedelta,
    meeting_lead: timedelta,
) -> list[tuple[ReminderType, datetime]]:
    """Return the (type, scheduled_for) pairs that should exist for an invitation.

    Pure function: no I/O, no clock.
    """
    jobs: list[tuple[ReminderType, datetime]] = []
    status = invitation.status

    if status is InvitationStatus.PENDING:
        jobs.append((ReminderType.INVITATION, now))
        if any(p.status is ParticipantStatus.PENDING for p in invitation.participants):
            jobs.append((ReminderType.RESPONSE_NEEDED, now + response_delay))
    elif status is InvitationStatus.SCHEDULED:
        remind_at = invitation.meeting_time - meeting_lead
        if remind_at > now:
            jobs.append((ReminderType.UPCOMING_MEETING, remind_at))
        else:
            logger.info(
                "Invitation %s meets too soon for an upcoming_meeting reminder",
                invitation.id,
            )
    elif status is InvitationStatus.CANCELLED:
        pass
    else:
        raise ValueError(f"Unhandled invitation status: {status!r}")

    return jobs


def _already_planned(
    db: InvitationDB,
    invitation_id: str,
    reminder_type: ReminderType,
    scheduled_for: datetime,
) -> bool:
    if reminder_type in (ReminderType.INVITATION, ReminderType.RESPONSE_NEEDED):
        return db.has_reminder(invitation_id, reminder_type)
    if reminder_type is ReminderType.UPCOMING_MEETING:
        # A moved meeting gets a new one; its stale unsent one is dropped first.
        return (
            db.find_unsent_reminder(invitation_id, reminder_type) is not None
            or db.has_reminder(invitation_id, reminder_type, scheduled_for)
        )
    raise ValueError(f"Unhandled reminder type: {reminder_type!r}")


def schedule_reminders(
    db: InvitationDB,
    invitation_id: str,
    now: datetime | None = None,
    response_delay: timedelta | None = None,
    meeting_lead: timedelta | None = None,
) -> list[Reminder]:
    """Create the reminders an invitation should have and doesn't yet.

    Returns only the reminders created by this call.

    Raises:
        NotFoundError: no such invitation.
        InvalidStateError: the invitation has no participants or is cancelled.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if response_delay is None:
        response_delay = default_response_delay()
    if meeting_lead is None:
        meeting_lead = default_meeting_lead()

    invitation = db.get_invitation(invitation_id)
    if invitation is None:
        raise NotFoundError(f"Invitation {invitation_id} not found")
    if not invitation.participants:
        raise InvalidStateError(f"Invitation {invitation_id} has no participants")
    if invitation.status is InvitationStatus.CANCELLED:
        raise InvalidStateError(f"Invitation {invitation_id} is cancelled")

    created: list[Reminder] = []
    for reminder_type, scheduled_for in plan_reminders(
        invitation, now, response_delay, meeting_lead,
    ):
        if _already_planned(db, invitation_id, reminder_type, scheduled_for):
            continue
        reminder = db.create_reminder(invitation_id, reminder_type, scheduled_for)
        if reminder is not None:
            created.append(reminder)

    logger.info(
        "Scheduled %d reminders for invitation %s (%s)",
        len(created), invitation_id, invitation.status.value,
    )
    return created
