"""Tests for meetini.data.db — InvitationDB (SQLite storage)."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOW
from meetini.data.db import InvitationDB, from_db_time, to_db_time
from meetini.data.models import (
    DurationType,
    InvitationStatus,
    LocationType,
    ParticipantStatus,
    ReminderType,
)


class TestTimestamps:
    def test_round_trip_keeps_instant(self):
        ts = datetime(2026, 1, 1, 9, 30, tzinfo=timezone(timedelta(hours=2)))
        assert from_db_time(to_db_time(ts)) == ts

    def test_naive_taken_as_utc(self):
        assert to_db_time(datetime(2026, 1, 1, 9, 30)) == "2026-01-01T09:30:00.000000+00:00"

    def test_fixed_width_sorts_chronologically(self):
        a = to_db_time(datetime(2026, 1, 1, 9, 30, tzinfo=timezone.utc))
        b = to_db_time(datetime(2026, 1, 1, 9, 30, 0, 1, tzinfo=timezone.utc))
        assert a < b


class TestInvitations:
    def test_create_and_get(self, make_invitation):
        inv = make_invitation(location="Blue Bottle", description="Catch up")
        assert inv.status is InvitationStatus.PENDING
        assert inv.location == "Blue Bottle"
        assert len(inv.participants) == 2
        assert inv.participants[0].email == "alice@example.com"
        assert inv.participants[0].status is ParticipantStatus.PENDING
        assert inv.proposed_times[0] == NOW + timedelta(days=3)

    def test_default_preferences(self, make_invitation):
        inv = make_invitation()
        assert inv.preferences is not None
        assert inv.preferences.duration_type is DurationType.ONE_HOUR
        assert inv.preferences.time_preference is None

    def test_explicit_preferences(self, make_invitation):
        inv = make_invitation(preferences={"duration_type": "30min", "location_type": "coffee"})
        assert inv.preferences.duration_type is DurationType.THIRTY_MINUTES
        assert inv.preferences.location_type is LocationType.COFFEE

    def test_bad_preference_rejected(self, make_invitation):
        with pytest.raises(ValueError):
            make_invitation(preferences={"location_type": "beach"})

    def test_empty_proposed_times_rejected(self, db):
        with pytest.raises(ValueError):
            db.create_invitation(title="x", proposed_times=[], created_by="u")

    def test_get_missing(self, db):
        assert db.get_invitation("nope") is None

    def test_set_status(self, db, make_invitation):
        inv = make_invitation()
        assert db.set_invitation_status(inv.id, InvitationStatus.CANCELLED) is True
        assert db.get_invitation(inv.id).status is InvitationStatus.CANCELLED

    def test_set_status_missing(self, db):
        assert db.set_invitation_status("nope", InvitationStatus.SCHEDULED) is False

    def test_set_scheduled_time_moves_choice_first(self, db, make_invitation):
        inv = make_invitation()
        chosen = inv.proposed_times[1]
        updated = db.set_scheduled_time(inv.id, chosen)
        assert updated.status is InvitationStatus.SCHEDULED
        assert updated.proposed_times == [chosen, inv.proposed_times[0]]

    def test_set_scheduled_time_new_time(self, db, make_invitation):
        inv = make_invitation()
        new_time = NOW + timedelta(days=10)
        updated = db.set_scheduled_time(inv.id, new_time)
        assert updated.meeting_time == new_time
        assert len(updated.proposed_times) == 3

    def test_set_calendar_event_id(self, db, make_invitation):
        inv = make_invitation()
        db.set_calendar_event_id(inv.id, "gcal_xyz")
        assert db.get_invitation(inv.id).calendar_event_id == "gcal_xyz"

    def test_delete_cascades(self, db, make_invitation):
        inv = make_invitation()
        db.create_reminder(inv.id, ReminderType.INVITATION, NOW)
        assert db.delete_invitation(inv.id) is True
        assert db.list_reminders() == []
        assert db.get_participant(inv.participants[0].id) is None


class TestParticipants:
    def test_add_participant(self, db, make_invitation):
        inv = make_invitation()
        p = db.add_participant(inv.id, phone_number="+15550001", notify_by_sms=True,
                               notify_by_email=False)
        assert p.phone_number == "+15550001"
        assert len(db.get_invitation(inv.id).participants) == 3

    def test_add_participant_unknown_invitation(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.add_participant("nope", email="x@y.com")

    def test_set_participant_status(self, db, make_invitation):
        inv = make_invitation()
        p = db.set_participant_status(inv.participants[0].id, ParticipantStatus.ACCEPTED)
        assert p.status is ParticipantStatus.ACCEPTED

    def test_set_participant_status_missing(self, db):
        assert db.set_participant_status("nope", ParticipantStatus.ACCEPTED) is None

    def test_update_contact_keeps_other_field(self, db, make_invitation):
        inv = make_invitation(participants=[{"name": "Carol"}])
        pid = inv.participants[0].id
        p = db.update_participant_contact(pid, email="carol@example.com")
        assert p.email == "carol@example.com"
        p = db.update_participant_contact(pid, phone_number="+15550002")
        assert p.email == "carol@example.com"
        assert p.phone_number == "+15550002"


class TestReminders:
    def test_create_reminder(self, db, make_invitation):
        inv = make_invitation()
        r = db.create_reminder(inv.id, ReminderType.INVITATION, NOW)
        assert r is not None
        assert r.sent is False
        assert r.scheduled_for == NOW
        assert db.get_reminder(r.id) == r

    def test_duplicate_unsent_type_ignored(self, db, make_invitation):
        inv = make_invitation()
        assert db.create_reminder(inv.id, ReminderType.INVITATION, NOW) is not None
        assert db.create_reminder(inv.id, ReminderType.INVITATION, NOW) is None
        assert len(db.list_reminders(inv.id)) == 1

    def test_same_type_allowed_after_sent(self, db, make_invitation):
        inv = make_invitation()
        r = db.create_reminder(inv.id, ReminderType.UPCOMING_MEETING, NOW)
        db.mark_reminder_sent(r.id, NOW)
        assert db.create_reminder(inv.id, ReminderType.UPCOMING_MEETING, NOW) is not None

    def test_find_unsent(self, db, make_invitation):
        inv = make_invitation()
        r = db.create_reminder(inv.id, ReminderType.RESPONSE_NEEDED, NOW)
        assert db.find_unsent_reminder(inv.id, ReminderType.RESPONSE_NEEDED).id == r.id
        assert db.find_unsent_reminder(inv.id, ReminderType.INVITATION) is None

    def test_has_reminder_counts_sent_rows(self, db, make_invitation):
        inv = make_invitation()
        r = db.create_reminder(inv.id, ReminderType.UPCOMING_MEETING, NOW)
        db.mark_reminder_sent(r.id, NOW)
        assert db.has_reminder(inv.id, ReminderType.UPCOMING_MEETING) is True
        assert db.has_reminder(inv.id, ReminderType.UPCOMING_MEETING, NOW) is True
        assert db.has_reminder(
            inv.id, ReminderType.UPCOMING_MEETING, NOW + timedelta(hours=1),
        ) is False
        assert db.has_reminder(inv.id, ReminderType.INVITATION) is False

    def test_mark_sent_is_write_once(self, db, make_invitation):
        inv = make_invitation()
        r = db.create_reminder(inv.id, ReminderType.INVITATION, NOW)
        assert db.mark_reminder_sent(r.id, NOW) is True
        assert db.mark_reminder_sent(r.id, NOW + timedelta(hours=1)) is False
        stored = db.get_reminder(r.id)
        assert stored.sent is True
        assert stored.sent_at == NOW

    def test_mark_sent_missing(self, db):
        assert db.mark_reminder_sent("nope", NOW) is False

    def test_delete_unsent_reminder(self, db, make_invitation):
        inv = make_invitation()
        db.create_reminder(inv.id, ReminderType.UPCOMING_MEETING, NOW)
        assert db.delete_unsent_reminder(inv.id, ReminderType.UPCOMING_MEETING) is True
        assert db.list_reminders(inv.id) == []


class TestDueReminders:
    def test_only_due_and_unsent(self, db, make_invitation):
        inv = make_invitation()
        due = db.create_reminder(inv.id, ReminderType.INVITATION, NOW - timedelta(minutes=1))
        db.create_reminder(inv.id, ReminderType.RESPONSE_NEEDED, NOW + timedelta(minutes=1))
        result = db.get_due_reminders(NOW)
        assert [d.reminder.id for d in result] == [due.id]
        assert result[0].invitation.id == inv.id
        assert len(result[0].invitation.participants) == 2

    def test_boundary_is_inclusive(self, db, make_invitation):
        inv = make_invitation()
        db.create_reminder(inv.id, ReminderType.INVITATION, NOW)
        assert len(db.get_due_reminders(NOW)) == 1

    def test_sent_excluded(self, db, make_invitation):
        inv = make_invitation()
        r = db.create_reminder(inv.id, ReminderType.INVITATION, NOW)
        db.mark_reminder_sent(r.id, NOW)
        assert db.get_due_reminders(NOW) == []

    def test_cancelled_invitation_excluded(self, db, make_invitation):
        inv = make_invitation()
        db.create_reminder(inv.id, ReminderType.INVITATION, NOW)
        db.set_invitation_status(inv.id, InvitationStatus.CANCELLED)
        assert db.get_due_reminders(NOW) == []

    def test_shared_invitation_object(self, db, make_invitation):
        inv = make_invitation()
        db.create_reminder(inv.id, ReminderType.INVITATION, NOW)
        db.create_reminder(inv.id, ReminderType.RESPONSE_NEEDED, NOW)
        result = db.get_due_reminders(NOW)
        assert len(result) == 2
        assert result[0].invitation is result[1].invitation


class TestDeletion:
    def test_delete_sent_before(self, db, make_invitation):
        inv = make_invitation()
        old = db.create_reminder(inv.id, ReminderType.INVITATION, NOW - timedelta(days=40))
        db.mark_reminder_sent(old.id, NOW - timedelta(days=40))
        fresh = db.create_reminder(inv.id, ReminderType.RESPONSE_NEEDED, NOW)
        db.mark_reminder_sent(fresh.id, NOW)
        unsent = db.create_reminder(inv.id, ReminderType.UPCOMING_MEETING, NOW - timedelta(days=40))

        assert db.delete_sent_reminders_before(NOW - timedelta(days=30)) == 1
        remaining = {r.id for r in db.list_reminders()}
        assert remaining == {fresh.id, unsent.id}

    def test_delete_for_cancelled(self, db, make_invitation):
        live = make_invitation()
        dead = make_invitation(title="Cancelled lunch")
        keep = db.create_reminder(live.id, ReminderType.INVITATION, NOW)
        db.create_reminder(dead.id, ReminderType.INVITATION, NOW)
        sent = db.create_reminder(dead.id, ReminderType.RESPONSE_NEEDED, NOW)
        db.mark_reminder_sent(sent.id, NOW)
        db.set_invitation_status(dead.id, InvitationStatus.CANCELLED)

        assert db.delete_reminders_for_cancelled() == 2
        assert [r.id for r in db.list_reminders()] == [keep.id]


def test_reopen_existing_db(tmp_db_path):
    first = InvitationDB(db_path=tmp_db_path)
    inv = first.create_invitation(
        title="Sync", proposed_times=[NOW], created_by="u", participants=[{"email": "a@x.com"}],
    )
    second = InvitationDB(db_path=tmp_db_path)
    assert second.get_invitation(inv.id).title == "Sync"
