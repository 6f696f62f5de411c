"""Message templates for email and SMS notifications.

No I/O: this module only renders text.
"""

from __future__ import annotations

from datetime import datetime
from html import escape

from meetini.ports.notification_port import (
    NotificationKind,
    NotificationPayload,
    NotificationRecipient,
)


def email_subject(payload: NotificationPayload) -> str:
    kind = payload.kind
    if kind is NotificationKind.INVITATION:
        return f"New Meetini Invitation: {payload.title}"
    if kind is NotificationKind.REMINDER:
        return f"Reminder: {payload.title}"
    if kind is NotificationKind.UPDATE:
        return f"Update: {payload.title}"
    raise ValueError(f"Unhandled notification kind: {kind!r}")


def format_when(date: str | None) -> str:
    """Render an ISO datetime like 'Monday, October 19, 2026 at 14:00 UTC'.

    Unparseable input is returned as-is.
    """
    if not date:
        return ""
    try:
        dt = datetime.fromisoformat(date)
    except ValueError:
        return date
    text = dt.strftime("%A, %B %d, %Y at %H:%M")
    tz = dt.tzname()
    return f"{text} {tz}" if tz else text


def _email_lead(kind: NotificationKind, title: str) -> str:
    if kind is NotificationKind.REMINDER:
        return f"<p>This is a reminder for: <strong>{title}</strong></p>"
    if kind is NotificationKind.INVITATION:
        return f"<p>You've been invited to: <strong>{title}</strong></p>"
    if kind is NotificationKind.UPDATE:
        return f"<p>There's an update for: <strong>{title}</strong></p>"
    raise ValueError(f"Unhandled notification kind: {kind!r}")


def email_html(recipient: NotificationRecipient, payload: NotificationPayload) -> str:
    greeting = f"Hi {escape(recipient.name)}!" if recipient.name else "Hi there!"

    parts = [f"<p>{greeting}</p>", _email_lead(payload.kind, escape(payload.title))]
    if payload.description:
        parts.append(f"<p>{escape(payload.description)}</p>")
    when = format_when(payload.date)
    if when:
        parts.append(f"<p><strong>When:</strong> {escape(when)}</p>")
    if payload.location:
        parts.append(f"<p><strong>Where:</strong> {escape(payload.location)}</p>")
    if payload.action_url:
        parts.append(
            f'<p><a href="{escape(payload.action_url, quote=True)}">View Invitation</a></p>'
        )
    return "\n".join(parts)


def sms_text(recipient: NotificationRecipient, payload: NotificationPayload) -> str:
    """Plain-text SMS body, kept short."""
    lines = [email_subject(payload)]
    if recipient.name:
        lines[0] = f"Hi {recipient.name}! {lines[0]}"
    if payload.description:
        lines.append(payload.description)
    when = format_when(payload.date)
    if when:
        lines.append(f"When: {when}")
    if payload.location:
        lines.append(f"Where: {payload.location}")
    if payload.action_url:
        lines.append(payload.action_url)
    return "\n".join(lines)
