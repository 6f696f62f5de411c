"""
Meetini Reminders — Data Models.

An invitation is a proposed meeting with candidate times, a set of
participants and the reminder jobs that nudge them. Every status and type
field is a closed enum so a typo can never slip through as a new state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class InvitationStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"


class ParticipantStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"

    @property
    def is_terminal(self) -> bool:
        return self is not ParticipantStatus.PENDING


class ReminderType(str, Enum):
    INVITATION = "invitation"
    RESPONSE_NEEDED = "response_needed"
    UPCOMING_MEETING = "upcoming_meeting"


class TimePreference(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class DurationType(str, Enum):
    THIRTY_MINUTES = "30min"
    ONE_HOUR = "1hour"
    TWO_HOURS = "2hours"

    @property
    def minutes(self) -> int:
        if self is DurationType.THIRTY_MINUTES:
            return 30
        if self is DurationType.ONE_HOUR:
            return 60
        if self is DurationType.TWO_HOURS:
            return 120
        raise ValueError(f"Unhandled duration: {self!r}")


class LocationType(str, Enum):
    COFFEE = "coffee"
    RESTAURANT = "restaurant"
    OFFICE = "office"
    VIRTUAL = "virtual"


@dataclass
class Preferences:
    """Meeting preferences captured when the invitation was created."""

    invitation_id: str
    time_preference: TimePreference | None = None
    duration_type: DurationType = DurationType.ONE_HOUR
    location_type: LocationType | None = None


@dataclass
class Participant:
    """A person invited to an invitation.

    The two notification channels are independent; a participant with no
    usable channel is skipped at dispatch time rather than failing it.
    """

    id: str
    invitation_id: str
    email: str | None = None
    phone_number: str | None = None
    name: str | None = None
    status: ParticipantStatus = ParticipantStatus.PENDING
    notify_by_email: bool = True
    notify_by_sms: bool = False

    @property
    def has_usable_channel(self) -> bool:
        return bool(
            (self.notify_by_email and self.email)
            or (self.notify_by_sms and self.phone_number)
        )


@dataclass
class Invitation:
    """A proposed meeting.

    proposed_times[0] is the meeting time once the invitation is scheduled.
    """

    id: str
    title: str
    proposed_times: list[datetime]
    created_by: str
    status: InvitationStatus = InvitationStatus.PENDING
    location: str | None = None
    description: str | None = None
    calendar_event_id: str | None = None
    created_at: datetime | None = None
    participants: list[Participant] = field(default_factory=list)
    preferences: Preferences | None = None

    @property
    def meeting_time(self) -> datetime:
        return self.proposed_times[0]


@dataclass
class Reminder:
    """A scheduled, at-most-once notification job tied to one invitation."""

    id: str
    invitation_id: str
    type: ReminderType
    scheduled_for: datetime
    sent: bool = False
    sent_at: datetime | None = None


@dataclass
class DueReminder:
    """A due reminder joined with its invitation (participants included)."""

    reminder: Reminder
    invitation: Invitation
