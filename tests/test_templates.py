"""Tests for meetini.adapters.templates — email/SMS rendering."""

import pytest

from meetini.adapters.templates import email_html, email_subject, format_when, sms_text
from meetini.ports.notification_port import (
    NotificationKind,
    NotificationPayload,
    NotificationRecipient,
)


def _payload(kind="update", **kwargs):
    return NotificationPayload(kind=kind, title="Lunch <team>", **kwargs)


def test_subjects():
    assert email_subject(_payload("reminder")) == "Reminder: Lunch <team>"
    assert email_subject(_payload("update")) == "Update: Lunch <team>"
    assert email_subject(_payload("invitation")) == "New Meetini Invitation: Lunch <team>"


def test_format_when():
    assert format_when("2026-10-19T14:00:00+00:00") == "Monday, October 19, 2026 at 14:00 UTC"
    assert format_when("soon") == "soon"
    assert format_when(None) == ""


def test_html_escapes_and_includes_details():
    html = email_html(
        NotificationRecipient(email="a@x.com"),
        _payload("reminder", location="Cafe", action_url="https://meetini.test/invitations/1"),
    )
    assert "Hi there!" in html
    assert "Lunch &lt;team&gt;" in html
    assert "<strong>Where:</strong> Cafe" in html
    assert 'href="https://meetini.test/invitations/1"' in html


def test_sms_text_is_plain():
    text = sms_text(
        NotificationRecipient(name="Bob"),
        _payload("update", description="Please respond.", date="2026-10-19T14:00:00+00:00"),
    )
    lines = text.splitlines()
    assert lines[0] == "Hi Bob! Update: Lunch <team>"
    assert "Please respond." in lines
    assert lines[-1].startswith("When: Monday")


def test_kind_is_a_closed_set():
    assert _payload("reminder").kind is NotificationKind.REMINDER
    with pytest.raises(ValueError):
        _payload("digest")


def test_unhandled_kind_is_rejected_by_renderers():
    payload = _payload("update")
    payload.kind = "digest"
    with pytest.raises(ValueError):
        email_subject(payload)
    with pytest.raises(ValueError):
        email_html(NotificationRecipient(email="a@x.com"), payload)
