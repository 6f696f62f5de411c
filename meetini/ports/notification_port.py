"""Notification port — abstract interface for delivering email/SMS notifications.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol


class GatewayUnavailable(Exception):
    """Raised when a notification gateway could not deliver anything at all.

    Individual recipient failures are reported in the DeliveryReport instead.
    """


class NotificationKind(str, Enum):
    """Which template family a notification is rendered with."""

    INVITATION = "invitation"
    REMINDER = "reminder"
    UPDATE = "update"


@dataclass
class NotificationRecipient:
    email: str | None = None
    phone_number: str | None = None
    name: str | None = None
    notify_by_email: bool = True
    notify_by_sms: bool = False


@dataclass
class NotificationPayload:
    kind: NotificationKind
    title: str
    description: str = ""
    date: str | None = None     # ISO datetime of the first proposed time
    location: str | None = None
    action_url: str | None = None

    def __post_init__(self) -> None:
        self.kind = NotificationKind(self.kind)


@dataclass
class RecipientResult:
    recipient: NotificationRecipient
    success: bool
    channels: list[str] = field(default_factory=list)  # channels that delivered
    error: str = ""
    skipped: bool = False  # no enabled channel; nothing attempted


@dataclass
class DeliveryReport:
    results: list[RecipientResult] = field(default_factory=list)

    @property
    def failures(self) -> list[RecipientResult]:
        return [r for r in self.results if not r.success]

    @property
    def skipped(self) -> list[RecipientResult]:
        return [r for r in self.results if r.skipped]

    @property
    def all_succeeded(self) -> bool:
        return not self.failures


class NotificationGateway(Protocol):
    """Abstract notification interface used by core modules."""

    async def send(
        self,
        recipients: list[NotificationRecipient],
        payload: NotificationPayload,
    ) -> DeliveryReport: ...
