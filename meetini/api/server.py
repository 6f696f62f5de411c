"""
Meetini Reminders — HTTP API.

Thin FastAPI layer over the core modules:

  POST /api/cron/process-reminders   external cron trigger (X-Cron-Secret)
  POST /api/reminders                schedule reminders for an invitation
  POST /api/invitations              create an invitation
  GET  /api/invitations/{id}
  POST /api/invitations/{id}/finalize
  POST /api/invitations/{id}/cancel
  POST /api/participants/{id}/response
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from datetime import datetime

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from meetini.core.cleanup import cleanup_reminders
from meetini.core.errors import InvalidStateError, NotFoundError
from meetini.core.invitations import (
    cancel_invitation,
    create_invitation,
    finalize_time,
    record_response,
)
from meetini.core.reminder_dispatcher import process_reminders
from meetini.core.reminder_scheduler import schedule_reminders
from meetini.data.models import (
    DurationType,
    Invitation,
    LocationType,
    Participant,
    ParticipantStatus,
    Reminder,
    TimePreference,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ScheduleRequest(_CamelModel):
    invitation_id: str = Field(alias="invitationId")


class ParticipantIn(_CamelModel):
    email: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    name: str | None = None
    notify_by_email: bool = Field(default=True, alias="notifyByEmail")
    notify_by_sms: bool = Field(default=False, alias="notifyBySms")


class PreferencesIn(_CamelModel):
    time_preference: TimePreference | None = Field(default=None, alias="timePreference")
    duration_type: DurationType = Field(default=DurationType.ONE_HOUR, alias="durationType")
    location_type: LocationType | None = Field(default=None, alias="locationType")


class InvitationIn(_CamelModel):
    title: str
    proposed_times: list[datetime] = Field(alias="proposedTimes", min_length=1)
    created_by: str = Field(alias="createdBy")
    participants: list[ParticipantIn] = Field(min_length=1)
    location: str | None = None
    description: str | None = None
    preferences: PreferencesIn | None = None


class FinalizeRequest(_CamelModel):
    meeting_time: datetime = Field(alias="meetingTime")


class ResponseRequest(_CamelModel):
    status: ParticipantStatus


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _reminder_json(reminder: Reminder) -> dict:
    return {
        "id": reminder.id,
        "invitationId": reminder.invitation_id,
        "type": reminder.type.value,
        "scheduledFor": reminder.scheduled_for.isoformat(),
        "sent": reminder.sent,
        "sentAt": reminder.sent_at.isoformat() if reminder.sent_at else None,
    }


def _participant_json(participant: Participant) -> dict:
    return {
        "id": participant.id,
        "email": participant.email,
        "phoneNumber": participant.phone_number,
        "name": participant.name,
        "status": participant.status.value,
        "notifyByEmail": participant.notify_by_email,
        "notifyBySms": participant.notify_by_sms,
    }


def _invitation_json(invitation: Invitation) -> dict:
    prefs = invitation.preferences
    return {
        "id": invitation.id,
        "title": invitation.title,
        "location": invitation.location,
        "description": invitation.description,
        "proposedTimes": [t.isoformat() for t in invitation.proposed_times],
        "status": invitation.status.value,
        "createdBy": invitation.created_by,
        "calendarEventId": invitation.calendar_event_id,
        "participants": [_participant_json(p) for p in invitation.participants],
        "preferences": {
            "timePreference": prefs.time_preference.value if prefs.time_preference else None,
            "durationType": prefs.duration_type.value,
            "locationType": prefs.location_type.value if prefs.location_type else None,
        } if prefs else None,
    }


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(db=None, gateway=None, cron_secret: str | None = None) -> FastAPI:
    """Build the API app.

    The store and gateway are created once here and shared by every request;
    tests pass in their own.
    """
    if db is None:
        from meetini.data.db import InvitationDB

        db = InvitationDB()
    if gateway is None:
        from meetini.adapters.http_gateway import HttpNotificationGateway

        gateway = HttpNotificationGateway.from_settings()
    if cron_secret is None:
        from meetini.config import settings

        cron_secret = settings.CRON_SECRET

    app = FastAPI(title="Meetini Reminders")
    app.state.db = db
    app.state.gateway = gateway

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(InvalidStateError)
    async def _invalid_state(request: Request, exc: InvalidStateError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.post("/api/cron/process-reminders")
    async def cron_process_reminders(
        x_cron_secret: str | None = Header(default=None),
    ) -> JSONResponse:
        # Header values arrive latin-1 decoded; compare_digest rejects non-ASCII str.
        if not x_cron_secret or not secrets.compare_digest(
            x_cron_secret.encode("utf-8"), cron_secret.encode("utf-8"),
        ):
            logger.warning("Rejected cron trigger with bad secret")
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})

        try:
            dispatch = await process_reminders(app.state.db, app.state.gateway)
            cleanup = await asyncio.to_thread(cleanup_reminders, app.state.db)
        except Exception as exc:
            logger.error("Failed to process reminders: %s", exc)
            return JSONResponse(
                status_code=500, content={"error": "Failed to process reminders"},
            )

        if cleanup.errors:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Failed to clean up reminders",
                    "dispatch": dispatch.as_dict(),
                    "cleanup": cleanup.as_dict(),
                },
            )
        return JSONResponse(
            status_code=200,
            content={
                "message": "Successfully processed reminders",
                "dispatch": dispatch.as_dict(),
                "cleanup": cleanup.as_dict(),
            },
        )

    @app.post("/api/reminders")
    def schedule(body: ScheduleRequest) -> dict:
        created = schedule_reminders(app.state.db, body.invitation_id)
        return {"count": len(created), "reminders": [_reminder_json(r) for r in created]}

    @app.post("/api/invitations", status_code=201)
    def create(body: InvitationIn) -> dict:
        invitation = create_invitation(
            app.state.db,
            title=body.title,
            proposed_times=body.proposed_times,
            created_by=body.created_by,
            participants=[p.model_dump() for p in body.participants],
            location=body.location,
            description=body.description,
            preferences=body.preferences.model_dump() if body.preferences else None,
        )
        return _invitation_json(invitation)

    @app.get("/api/invitations/{invitation_id}")
    def get_invitation(invitation_id: str) -> dict:
        invitation = app.state.db.get_invitation(invitation_id)
        if invitation is None:
            raise HTTPException(status_code=404, detail="Invitation not found")
        return _invitation_json(invitation)

    @app.get("/api/invitations/{invitation_id}/reminders")
    def list_reminders(invitation_id: str) -> dict:
        if app.state.db.get_invitation(invitation_id) is None:
            raise HTTPException(status_code=404, detail="Invitation not found")
        reminders = app.state.db.list_reminders(invitation_id)
        return {"reminders": [_reminder_json(r) for r in reminders]}

    @app.post("/api/invitations/{invitation_id}/finalize")
    def finalize(invitation_id: str, body: FinalizeRequest) -> dict:
        return _invitation_json(finalize_time(app.state.db, invitation_id, body.meeting_time))

    @app.post("/api/invitations/{invitation_id}/cancel")
    def cancel(invitation_id: str) -> dict:
        return _invitation_json(cancel_invitation(app.state.db, invitation_id))

    @app.post("/api/participants/{participant_id}/response")
    def respond(participant_id: str, body: ResponseRequest) -> dict:
        return _participant_json(record_response(app.state.db, participant_id, body.status))

    return app
