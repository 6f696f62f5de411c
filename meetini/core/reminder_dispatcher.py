"""
Meetini Reminders — Reminder Dispatcher.

One dispatch run: select due, unsent reminders, resolve recipients fresh
from the current participant list, hand each reminder to the notification
gateway once, and mark it sent.

Reminders are processed concurrently (bounded by a semaphore) and each one
independently: a failure is logged, counted, and left unsent for the next
run. The store's conditional update guarantees the sent flag flips exactly
once even when two runs overlap. Store calls run in a worker thread so the
in-flight sends keep going while sqlite writes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from meetini.data.models import ParticipantStatus, ReminderType
from meetini.ports.notification_port import (
    GatewayUnavailable,
    NotificationKind,
    NotificationPayload,
    NotificationRecipient,
)

if TYPE_CHECKING:
    from meetini.data.db import InvitationDB
    from meetini.data.models import DueReminder, Invitation, Participant, Reminder
    from meetini.ports.notification_port import NotificationGateway

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Outcome types
# ---------------------------------------------------------------------------


class ReminderOutcome(Enum):
    SENT = "sent"
    SKIPPED = "skipped"            # nobody reachable; marked sent without delivery
    FAILED = "failed"              # gateway unavailable/timeout; retried next run
    ALREADY_SENT = "already_sent"  # a concurrent run marked it first


@dataclass
class ReminderResult:
    reminder_id: str
    outcome: ReminderOutcome
    recipients: int = 0
    skipped_recipients: int = 0
    failed_recipients: int = 0
    error: str = ""


@dataclass
class DispatchOutcome:
    """Structured result of one dispatch run."""

    results: list[ReminderResult] = field(default_factory=list)

    def _count(self, outcome: ReminderOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def sent(self) -> int:
        return self._count(ReminderOutcome.SENT)

    @property
    def skipped(self) -> int:
        return self._count(ReminderOutcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(ReminderOutcome.FAILED)

    @property
    def already_sent(self) -> int:
        return self._count(ReminderOutcome.ALREADY_SENT)

    @property
    def skipped_recipients(self) -> int:
        return sum(r.skipped_recipients for r in self.results)

    @property
    def partial_failures(self) -> int:
        """Reminders marked sent although some recipients failed."""
        return sum(
            1 for r in self.results
            if r.outcome is ReminderOutcome.SENT and r.failed_recipients
        )

    def as_dict(self) -> dict:
        return {
            "processed": len(self.results),
            "sent": self.sent,
            "skipped": self.skipped,
            "failed": self.failed,
            "already_sent": self.already_sent,
            "skipped_recipients": self.skipped_recipients,
            "partial_failures": self.partial_failures,
        }


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------


def reminder_description(reminder_type: ReminderType) -> str:
    if reminder_type is ReminderType.INVITATION:
        return "You have a pending invitation that needs your attention."
    if reminder_type is ReminderType.RESPONSE_NEEDED:
        return "Please respond to this invitation with your availability."
    if reminder_type is ReminderType.UPCOMING_MEETING:
        return "Your meeting is coming up soon."
    raise ValueError(f"Unhandled reminder type: {reminder_type!r}")


def notification_kind(reminder_type: ReminderType) -> NotificationKind:
    if reminder_type is ReminderType.UPCOMING_MEETING:
        return NotificationKind.REMINDER
    if reminder_type in (ReminderType.INVITATION, ReminderType.RESPONSE_NEEDED):
        return NotificationKind.UPDATE
    raise ValueError(f"Unhandled reminder type: {reminder_type!r}")


def build_payload(
    reminder: Reminder, invitation: Invitation, base_url: str,
) -> NotificationPayload:
    return NotificationPayload(
        kind=notification_kind(reminder.type),
        title=invitation.title,
        description=reminder_description(reminder.type),
        date=invitation.meeting_time.isoformat() if invitation.proposed_times else None,
        location=invitation.location,
        action_url=f"{base_url}/invitations/{invitation.id}",
    )


def resolve_recipients(
    reminder: Reminder, invitation: Invitation,
) -> tuple[list[Participant], list[Participant]]:
    """Split the reminder's audience into (reachable, unreachable) participants.

    response_needed goes only to participants who haven't answered yet;
    every other type goes to everyone.
    """
    if reminder.type is ReminderType.RESPONSE_NEEDED:
        audience = [p for p in invitation.participants if p.status is ParticipantStatus.PENDING]
    elif reminder.type in (ReminderType.INVITATION, ReminderType.UPCOMING_MEETING):
        audience = list(invitation.participants)
    else:
        raise ValueError(f"Unhandled reminder type: {reminder.type!r}")

    reachable = [p for p in audience if p.has_usable_channel]
    unreachable = [p for p in audience if not p.has_usable_channel]
    return reachable, unreachable


def _to_recipient(participant: Participant) -> NotificationRecipient:
    return NotificationRecipient(
        email=participant.email,
        phone_number=participant.phone_number,
        name=participant.name,
        notify_by_email=participant.notify_by_email,
        notify_by_sms=participant.notify_by_sms,
    )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


async def process_reminders(
    db: InvitationDB,
    gateway: NotificationGateway,
    now: datetime | None = None,
    concurrency: int | None = None,
    timeout: float | None = None,
    base_url: str | None = None,
) -> DispatchOutcome:
    """Run one dispatch pass over every due, unsent reminder.

    Args:
        db: Invitation store.
        gateway: Notification gateway used for delivery.
        now: Clock for this run (defaults to current UTC time). Reminders
            with scheduled_for <= now are due; sent_at is also taken from it.
        concurrency: Maximum reminders in flight at once.
        timeout: Deadline in seconds for each gateway call.
        base_url: Prefix of the actionUrl pointing back at the invitation.
    """
    if concurrency is None or timeout is None or base_url is None:
        from meetini.config import settings

        concurrency = concurrency or settings.DISPATCH_CONCURRENCY
        timeout = timeout if timeout is not None else settings.GATEWAY_TIMEOUT_SECONDS
        base_url = base_url if base_url is not None else settings.APP_BASE_URL
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    due = await asyncio.to_thread(db.get_due_reminders, now)
    outcome = DispatchOutcome()
    if not due:
        logger.info("No due reminders")
        return outcome

    logger.info("Processing %d due reminders", len(due))
    semaphore = asyncio.Semaphore(concurrency)

    async def _bounded(item: DueReminder) -> ReminderResult:
        async with semaphore:
            return await _process_one(db, gateway, item, now, timeout, base_url)

    results = await asyncio.gather(*(_bounded(item) for item in due), return_exceptions=True)
    for item, result in zip(due, results):
        if isinstance(result, BaseException):
            # Store errors while marking sent land here; the reminder stays unsent.
            logger.error("Reminder %s failed: %s", item.reminder.id, result)
            result = ReminderResult(
                reminder_id=item.reminder.id,
                outcome=ReminderOutcome.FAILED,
                error=str(result),
            )
        outcome.results.append(result)

    logger.info(
        "Dispatch run finished: %d sent, %d skipped, %d failed, %d already sent",
        outcome.sent, outcome.skipped, outcome.failed, outcome.already_sent,
    )
    return outcome


async def _process_one(
    db: InvitationDB,
    gateway: NotificationGateway,
    item: DueReminder,
    now: datetime,
    timeout: float,
    base_url: str,
) -> ReminderResult:
    reminder, invitation = item.reminder, item.invitation
    reachable, unreachable = resolve_recipients(reminder, invitation)

    for p in unreachable:
        logger.warning(
            "Participant %s of invitation %s has no usable channel; skipping",
            p.id, invitation.id,
        )

    result = ReminderResult(
        reminder_id=reminder.id,
        outcome=ReminderOutcome.SENT,
        recipients=len(reachable),
        skipped_recipients=len(unreachable),
    )

    if not reachable:
        logger.info(
            "Reminder %s (%s) has no reachable recipients",
            reminder.id, reminder.type.value,
        )
        result.outcome = ReminderOutcome.SKIPPED
    else:
        payload = build_payload(reminder, invitation, base_url)
        try:
            report = await asyncio.wait_for(
                gateway.send([_to_recipient(p) for p in reachable], payload),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Reminder %s: gateway timed out after %ss", reminder.id, timeout)
            result.outcome = ReminderOutcome.FAILED
            result.error = "timeout"
            return result
        except GatewayUnavailable as exc:
            logger.error("Reminder %s: gateway unavailable: %s", reminder.id, exc)
            result.outcome = ReminderOutcome.FAILED
            result.error = str(exc)
            return result
        except Exception as exc:
            logger.error("Reminder %s: delivery failed: %s", reminder.id, exc)
            result.outcome = ReminderOutcome.FAILED
            result.error = str(exc)
            return result

        result.failed_recipients = len(report.failures)
        result.skipped_recipients += len(report.skipped)
        for failure in report.failures:
            logger.warning(
                "Reminder %s: delivery to %s failed: %s",
                reminder.id,
                failure.recipient.email or failure.recipient.phone_number,
                failure.error,
            )

    if not await asyncio.to_thread(db.mark_reminder_sent, reminder.id, now):
        logger.info("Reminder %s was already marked sent by another run", reminder.id)
        result.outcome = ReminderOutcome.ALREADY_SENT
    return result
