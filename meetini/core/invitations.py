"""
Meetini Reminders — Invitation Lifecycle.

  create            -> pending, invitation + response_needed reminders
  all participants
  answered / organizer
  finalizes a time  -> scheduled, upcoming_meeting reminder
  cancel            -> cancelled, reminders left for the sweeper

Every transition that changes which reminders should exist re-runs the
scheduler, which only ever adds what is missing. Moving an already
scheduled meeting first drops its stale upcoming_meeting reminder.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Mapping

from meetini.core.errors import InvalidStateError, NotFoundError
from meetini.core.reminder_scheduler import schedule_reminders
from meetini.data.models import InvitationStatus, ParticipantStatus, ReminderType

if TYPE_CHECKING:
    from meetini.data.db import InvitationDB
    from meetini.data.models import Invitation, Participant

logger = logging.getLogger(__name__)


def create_invitation(
    db: InvitationDB,
    title: str,
    proposed_times: list[datetime],
    created_by: str,
    participants: Iterable[Mapping],
    location: str | None = None,
    description: str | None = None,
    preferences: Mapping | None = None,
    now: datetime | None = None,
) -> Invitation:
    """Create a pending invitation and schedule its initial reminders."""
    participants = list(participants)
    if not participants:
        raise InvalidStateError("An invitation needs at least one participant")
    if not proposed_times:
        raise InvalidStateError("An invitation needs at least one proposed time")

    invitation = db.create_invitation(
        title=title,
        proposed_times=proposed_times,
        created_by=created_by,
        participants=participants,
        location=location,
        description=description,
        preferences=preferences,
    )
    for p in invitation.participants:
        if not p.has_usable_channel:
            logger.warning(
                "Participant %s of invitation %s has no usable channel yet",
                p.id, invitation.id,
            )

    schedule_reminders(db, invitation.id, now=now)
    return invitation


def record_response(
    db: InvitationDB,
    participant_id: str,
    status: ParticipantStatus,
    now: datetime | None = None,
) -> Participant:
    """Record a participant's answer.

    Once every participant has answered, a pending invitation becomes
    scheduled at its first proposed time.
    """
    status = ParticipantStatus(status)
    participant = db.get_participant(participant_id)
    if participant is None:
        raise NotFoundError(f"Participant {participant_id} not found")

    invitation = db.get_invitation(participant.invitation_id)
    if invitation.status is InvitationStatus.CANCELLED:
        raise InvalidStateError(f"Invitation {invitation.id} is cancelled")

    participant = db.set_participant_status(participant_id, status)
    invitation = db.get_invitation(participant.invitation_id)

    if invitation.status is InvitationStatus.PENDING and all(
        p.status.is_terminal for p in invitation.participants
    ):
        logger.info("All participants of invitation %s answered", invitation.id)
        db.set_invitation_status(invitation.id, InvitationStatus.SCHEDULED)
        schedule_reminders(db, invitation.id, now=now)

    return participant


def finalize_time(
    db: InvitationDB,
    invitation_id: str,
    meeting_time: datetime,
    now: datetime | None = None,
) -> Invitation:
    """Organizer picks the meeting time; the invitation becomes scheduled."""
    invitation = db.get_invitation(invitation_id)
    if invitation is None:
        raise NotFoundError(f"Invitation {invitation_id} not found")
    if invitation.status is InvitationStatus.CANCELLED:
        raise InvalidStateError(f"Invitation {invitation_id} is cancelled")

    previous = invitation.meeting_time if invitation.status is InvitationStatus.SCHEDULED else None
    invitation = db.set_scheduled_time(invitation_id, meeting_time)
    if previous is not None and previous != invitation.meeting_time:
        # Meeting moved: the old upcoming_meeting reminder points at the wrong time.
        db.delete_unsent_reminder(invitation_id, ReminderType.UPCOMING_MEETING)
    schedule_reminders(db, invitation_id, now=now)
    return invitation


def cancel_invitation(db: InvitationDB, invitation_id: str) -> Invitation:
    """Cancel an invitation. Its reminders stop dispatching at once and are
    removed by the next cleanup run."""
    invitation = db.get_invitation(invitation_id)
    if invitation is None:
        raise NotFoundError(f"Invitation {invitation_id} not found")
    if invitation.status is not InvitationStatus.CANCELLED:
        db.set_invitation_status(invitation_id, InvitationStatus.CANCELLED)
    return db.get_invitation(invitation_id)
