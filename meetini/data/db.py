"""
Meetini Reminders — Invitation Database.

SQLite-backed persistence for invitations, their participants and
preferences, and the reminder jobs scheduled against them. One instance is
built at process start and handed to the scheduler, dispatcher and sweeper.

Timestamps are stored as UTC ISO-8601 strings with fixed microsecond
precision, so plain string comparison in SQL is chronological.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Mapping

from meetini.data.models import (
    DueReminder,
    DurationType,
    Invitation,
    InvitationStatus,
    LocationType,
    Participant,
    ParticipantStatus,
    Preferences,
    Reminder,
    ReminderType,
    TimePreference,
)

logger = logging.getLogger(__name__)


def to_db_time(value: datetime) -> str:
    """Normalize a datetime to the stored UTC string form.

    Naive datetimes are taken to be UTC already.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _new_id() -> str:
    return uuid.uuid4().hex


class InvitationDB:
    """SQLite-backed storage for invitations and their reminders."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from meetini.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS invitations (
                    id                TEXT PRIMARY KEY,
                    title             TEXT NOT NULL,
                    location          TEXT,
                    description       TEXT,
                    proposed_times    TEXT NOT NULL,
                    status            TEXT NOT NULL DEFAULT 'pending'
                                      CHECK (status IN ('pending', 'scheduled', 'cancelled')),
                    created_by        TEXT NOT NULL,
                    calendar_event_id TEXT,
                    created_at        TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS participants (
                    id              TEXT PRIMARY KEY,
                    invitation_id   TEXT NOT NULL
                                    REFERENCES invitations(id) ON DELETE CASCADE,
                    email           TEXT,
                    phone_number    TEXT,
                    name            TEXT,
                    status          TEXT NOT NULL DEFAULT 'pending'
                                    CHECK (status IN ('pending', 'accepted', 'declined')),
                    notify_by_email INTEGER NOT NULL DEFAULT 1,
                    notify_by_sms   INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS preferences (
                    invitation_id   TEXT PRIMARY KEY
                                    REFERENCES invitations(id) ON DELETE CASCADE,
                    time_preference TEXT,
                    duration_type   TEXT NOT NULL DEFAULT '1hour',
                    location_type   TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reminders (
                    id            TEXT PRIMARY KEY,
                    invitation_id TEXT NOT NULL
                                  REFERENCES invitations(id) ON DELETE CASCADE,
                    type          TEXT NOT NULL
                                  CHECK (type IN ('invitation', 'response_needed', 'upcoming_meeting')),
                    scheduled_for TEXT NOT NULL,
                    sent          INTEGER NOT NULL DEFAULT 0,
                    sent_at       TEXT
                )
            """)
            # At most one unsent reminder of each type per invitation
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_reminders_unsent_type
                    ON reminders (invitation_id, type) WHERE sent = 0
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_reminders_due
                    ON reminders (sent, scheduled_for)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_participants_invitation
                    ON participants (invitation_id)
            """)
        logger.debug("Invitation tables initialized at %s", self._db_path)

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_participant(row: sqlite3.Row) -> Participant:
        return Participant(
            id=row["id"],
            invitation_id=row["invitation_id"],
            email=row["email"],
            phone_number=row["phone_number"],
            name=row["name"],
            status=ParticipantStatus(row["status"]),
            notify_by_email=bool(row["notify_by_email"]),
            notify_by_sms=bool(row["notify_by_sms"]),
        )

    @staticmethod
    def _row_to_preferences(row: sqlite3.Row) -> Preferences:
        return Preferences(
            invitation_id=row["invitation_id"],
            time_preference=(
                TimePreference(row["time_preference"]) if row["time_preference"] else None
            ),
            duration_type=DurationType(row["duration_type"]),
            location_type=(
                LocationType(row["location_type"]) if row["location_type"] else None
            ),
        )

    @staticmethod
    def _row_to_invitation(row: sqlite3.Row) -> Invitation:
        return Invitation(
            id=row["id"],
            title=row["title"],
            location=row["location"],
            description=row["description"],
            proposed_times=[from_db_time(t) for t in json.loads(row["proposed_times"])],
            status=InvitationStatus(row["status"]),
            created_by=row["created_by"],
            calendar_event_id=row["calendar_event_id"],
            created_at=from_db_time(row["created_at"]),
        )

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        return Reminder(
            id=row["id"],
            invitation_id=row["invitation_id"],
            type=ReminderType(row["type"]),
            scheduled_for=from_db_time(row["scheduled_for"]),
            sent=bool(row["sent"]),
            sent_at=from_db_time(row["sent_at"]),
        )

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    def create_invitation(
        self,
        title: str,
        proposed_times: list[datetime],
        created_by: str,
        participants: Iterable[Mapping] = (),
        location: str | None = None,
        description: str | None = None,
        preferences: Mapping | None = None,
    ) -> Invitation:
        """Insert an invitation with its participants and preferences.

        Each participant mapping may carry email, phone_number, name, status,
        notify_by_email and notify_by_sms. Everything is written in a single
        transaction.
        """
        if not proposed_times:
            raise ValueError("An invitation needs at least one proposed time")

        invitation_id = _new_id()
        now = datetime.now(timezone.utc)
        prefs = dict(preferences or {})

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO invitations
                    (id, title, location, description, proposed_times,
                     status, created_by, created_at)
                VALUES (?, ?, ?, ?, ?, 'pending', ?, ?)
                """,
                (
                    invitation_id, title, location, description,
                    json.dumps([to_db_time(t) for t in proposed_times]),
                    created_by, to_db_time(now),
                ),
            )
            conn.execute(
                """
                INSERT INTO preferences
                    (invitation_id, time_preference, duration_type, location_type)
                VALUES (?, ?, ?, ?)
                """,
                (
                    invitation_id,
                    _enum_value(TimePreference, prefs.get("time_preference")),
                    _enum_value(DurationType, prefs.get("duration_type"))
                    or DurationType.ONE_HOUR.value,
                    _enum_value(LocationType, prefs.get("location_type")),
                ),
            )
            for p in participants:
                self._insert_participant(conn, invitation_id, p)

        logger.info("Invitation created: %s '%s'", invitation_id, title)
        return self.get_invitation(invitation_id)

    def get_invitation(self, invitation_id: str) -> Invitation | None:
        """Fetch an invitation with its participants and preferences."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM invitations WHERE id = ?", (invitation_id,)
            ).fetchone()
            if row is None:
                return None
            participant_rows = conn.execute(
                "SELECT * FROM participants WHERE invitation_id = ? ORDER BY rowid",
                (invitation_id,),
            ).fetchall()
            prefs_row = conn.execute(
                "SELECT * FROM preferences WHERE invitation_id = ?", (invitation_id,)
            ).fetchone()

        invitation = self._row_to_invitation(row)
        invitation.participants = [self._row_to_participant(r) for r in participant_rows]
        if prefs_row is not None:
            invitation.preferences = self._row_to_preferences(prefs_row)
        return invitation

    def set_invitation_status(self, invitation_id: str, status: InvitationStatus) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE invitations SET status = ? WHERE id = ?",
                (InvitationStatus(status).value, invitation_id),
            )
        updated = cursor.rowcount > 0
        if updated:
            logger.info("Invitation %s status -> %s", invitation_id, InvitationStatus(status).value)
        return updated

    def set_scheduled_time(self, invitation_id: str, meeting_time: datetime) -> Invitation | None:
        """Move meeting_time to the front of proposed_times and mark the invitation scheduled."""
        chosen = to_db_time(meeting_time)
        with self._connect() as conn:
            row = conn.execute(
                "SELECT proposed_times FROM invitations WHERE id = ?", (invitation_id,)
            ).fetchone()
            if row is None:
                return None
            times = [t for t in json.loads(row["proposed_times"]) if t != chosen]
            conn.execute(
                "UPDATE invitations SET proposed_times = ?, status = 'scheduled' WHERE id = ?",
                (json.dumps([chosen, *times]), invitation_id),
            )
        logger.info("Invitation %s scheduled for %s", invitation_id, chosen)
        return self.get_invitation(invitation_id)

    def set_calendar_event_id(self, invitation_id: str, event_id: str) -> None:
        """Link an invitation to the calendar event created for it."""
        with self._connect() as conn:
            conn.execute(
                "UPDATE invitations SET calendar_event_id = ? WHERE id = ?",
                (event_id, invitation_id),
            )
        logger.info("Invitation %s linked to calendar event %s", invitation_id, event_id)

    def delete_invitation(self, invitation_id: str) -> bool:
        """Permanently delete an invitation; participants and reminders cascade."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM invitations WHERE id = ?", (invitation_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Invitation %s deleted", invitation_id)
        return deleted

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    @staticmethod
    def _insert_participant(
        conn: sqlite3.Connection, invitation_id: str, data: Mapping,
    ) -> str:
        participant_id = _new_id()
        conn.execute(
            """
            INSERT INTO participants
                (id, invitation_id, email, phone_number, name, status,
                 notify_by_email, notify_by_sms)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                participant_id,
                invitation_id,
                data.get("email"),
                data.get("phone_number"),
                data.get("name"),
                _enum_value(ParticipantStatus, data.get("status"))
                or ParticipantStatus.PENDING.value,
                int(data.get("notify_by_email", True)),
                int(data.get("notify_by_sms", False)),
            ),
        )
        return participant_id

    def add_participant(
        self,
        invitation_id: str,
        email: str | None = None,
        phone_number: str | None = None,
        name: str | None = None,
        notify_by_email: bool = True,
        notify_by_sms: bool = False,
    ) -> Participant:
        """Add a participant to an existing invitation."""
        with self._connect() as conn:
            participant_id = self._insert_participant(
                conn,
                invitation_id,
                {
                    "email": email,
                    "phone_number": phone_number,
                    "name": name,
                    "notify_by_email": notify_by_email,
                    "notify_by_sms": notify_by_sms,
                },
            )
        logger.info("Participant %s added to invitation %s", participant_id, invitation_id)
        return self.get_participant(participant_id)

    def get_participant(self, participant_id: str) -> Participant | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM participants WHERE id = ?", (participant_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_participant(row)

    def set_participant_status(
        self, participant_id: str, status: ParticipantStatus,
    ) -> Participant | None:
        """Record a participant's response."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE participants SET status = ? WHERE id = ?",
                (ParticipantStatus(status).value, participant_id),
            )
        if cursor.rowcount == 0:
            return None
        logger.info("Participant %s responded: %s", participant_id, ParticipantStatus(status).value)
        return self.get_participant(participant_id)

    def update_participant_contact(
        self,
        participant_id: str,
        email: str | None = None,
        phone_number: str | None = None,
    ) -> Participant | None:
        """Fill in a missing email and/or phone number. None leaves a field unchanged."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE participants
                   SET email = COALESCE(?, email),
                       phone_number = COALESCE(?, phone_number)
                 WHERE id = ?
                """,
                (email, phone_number, participant_id),
            )
        if cursor.rowcount == 0:
            return None
        return self.get_participant(participant_id)

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    def create_reminder(
        self,
        invitation_id: str,
        reminder_type: ReminderType,
        scheduled_for: datetime,
    ) -> Reminder | None:
        """Insert a reminder unless an unsent one of the same type already exists.

        Returns None when the insert was ignored.
        """
        reminder_type = ReminderType(reminder_type)
        reminder_id = _new_id()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO reminders
                    (id, invitation_id, type, scheduled_for, sent, sent_at)
                VALUES (?, ?, ?, ?, 0, NULL)
                """,
                (reminder_id, invitation_id, reminder_type.value, to_db_time(scheduled_for)),
            )
        if cursor.rowcount == 0:
            logger.debug(
                "Unsent %s reminder already exists for invitation %s",
                reminder_type.value, invitation_id,
            )
            return None

        logger.info(
            "Reminder %s created: %s for invitation %s at %s",
            reminder_id, reminder_type.value, invitation_id, to_db_time(scheduled_for),
        )
        return Reminder(
            id=reminder_id,
            invitation_id=invitation_id,
            type=reminder_type,
            scheduled_for=from_db_time(to_db_time(scheduled_for)),
        )

    def get_reminder(self, reminder_id: str) -> Reminder | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM reminders WHERE id = ?", (reminder_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_reminder(row)

    def find_unsent_reminder(
        self, invitation_id: str, reminder_type: ReminderType,
    ) -> Reminder | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM reminders WHERE invitation_id = ? AND type = ? AND sent = 0",
                (invitation_id, ReminderType(reminder_type).value),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_reminder(row)

    def has_reminder(
        self,
        invitation_id: str,
        reminder_type: ReminderType,
        scheduled_for: datetime | None = None,
    ) -> bool:
        """True if a reminder of this type exists, sent or not.

        With scheduled_for, only a reminder due at exactly that time counts.
        """
        query = "SELECT 1 FROM reminders WHERE invitation_id = ? AND type = ?"
        params: list = [invitation_id, ReminderType(reminder_type).value]
        if scheduled_for is not None:
            query += " AND scheduled_for = ?"
            params.append(to_db_time(scheduled_for))
        with self._connect() as conn:
            row = conn.execute(query + " LIMIT 1", params).fetchone()
        return row is not None

    def delete_unsent_reminder(
        self, invitation_id: str, reminder_type: ReminderType,
    ) -> bool:
        """Drop a not-yet-sent reminder so it can be recreated with a new time."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM reminders WHERE invitation_id = ? AND type = ? AND sent = 0",
                (invitation_id, ReminderType(reminder_type).value),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info(
                "Unsent %s reminder of invitation %s dropped",
                ReminderType(reminder_type).value, invitation_id,
            )
        return deleted

    def list_reminders(self, invitation_id: str | None = None) -> list[Reminder]:
        """List reminders, optionally scoped to one invitation."""
        query = "SELECT * FROM reminders"
        params: list = []
        if invitation_id is not None:
            query += " WHERE invitation_id = ?"
            params.append(invitation_id)
        query += " ORDER BY scheduled_for"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_reminder(r) for r in rows]

    def get_due_reminders(self, now: datetime) -> list[DueReminder]:
        """Return unsent reminders with scheduled_for <= now, joined with their invitation.

        Reminders of cancelled invitations are never returned.
        """
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT r.id AS r_id, r.invitation_id AS r_invitation_id,
                       r.type AS r_type, r.scheduled_for AS r_scheduled_for,
                       r.sent AS r_sent, r.sent_at AS r_sent_at,
                       i.*
                  FROM reminders r
                  JOIN invitations i ON i.id = r.invitation_id
                 WHERE r.sent = 0
                   AND r.scheduled_for <= ?
                   AND i.status != 'cancelled'
                 ORDER BY r.scheduled_for
                """,
                (to_db_time(now),),
            ).fetchall()
            invitation_ids = sorted({row["id"] for row in rows})
            participant_rows = []
            if invitation_ids:
                placeholders = ", ".join("?" for _ in invitation_ids)
                participant_rows = conn.execute(
                    f"SELECT * FROM participants WHERE invitation_id IN ({placeholders}) "
                    "ORDER BY rowid",
                    invitation_ids,
                ).fetchall()

        participants: dict[str, list[Participant]] = {}
        for prow in participant_rows:
            participants.setdefault(prow["invitation_id"], []).append(
                self._row_to_participant(prow)
            )

        invitations: dict[str, Invitation] = {}
        due: list[DueReminder] = []
        for row in rows:
            invitation = invitations.get(row["id"])
            if invitation is None:
                invitation = self._row_to_invitation(row)
                invitation.participants = participants.get(invitation.id, [])
                invitations[invitation.id] = invitation
            reminder = Reminder(
                id=row["r_id"],
                invitation_id=row["r_invitation_id"],
                type=ReminderType(row["r_type"]),
                scheduled_for=from_db_time(row["r_scheduled_for"]),
                sent=bool(row["r_sent"]),
                sent_at=from_db_time(row["r_sent_at"]),
            )
            due.append(DueReminder(reminder=reminder, invitation=invitation))
        return due

    def mark_reminder_sent(self, reminder_id: str, sent_at: datetime) -> bool:
        """Flip sent false -> true exactly once.

        Conditional on sent = 0, so of two overlapping runs only one write
        succeeds. Returns False when the reminder was already sent or is gone.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE reminders SET sent = 1, sent_at = ? WHERE id = ? AND sent = 0",
                (to_db_time(sent_at), reminder_id),
            )
        marked = cursor.rowcount > 0
        if marked:
            logger.info("Reminder %s marked sent", reminder_id)
        return marked

    def delete_sent_reminders_before(self, cutoff: datetime) -> int:
        """Delete sent reminders whose sent_at is older than cutoff."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM reminders WHERE sent = 1 AND sent_at < ?",
                (to_db_time(cutoff),),
            )
        if cursor.rowcount:
            logger.info("Deleted %d sent reminders older than %s", cursor.rowcount, to_db_time(cutoff))
        return cursor.rowcount

    def delete_reminders_for_cancelled(self) -> int:
        """Delete every reminder, sent or not, whose invitation is cancelled."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                DELETE FROM reminders
                 WHERE invitation_id IN (
                     SELECT id FROM invitations WHERE status = 'cancelled'
                 )
                """
            )
        if cursor.rowcount:
            logger.info("Deleted %d reminders of cancelled invitations", cursor.rowcount)
        return cursor.rowcount


def _enum_value(enum_cls: type, value) -> str | None:
    """Validate an optional enum member or raw value; return its string value."""
    if value is None:
        return None
    return enum_cls(value).value
