"""Error taxonomy for the invitation and reminder subsystem."""

from __future__ import annotations


class ReminderError(Exception):
    """Base class for errors surfaced to synchronous callers."""


class NotFoundError(ReminderError):
    """A referenced invitation, participant or reminder does not exist."""


class InvalidStateError(ReminderError):
    """A precondition on the invitation's state was violated."""
