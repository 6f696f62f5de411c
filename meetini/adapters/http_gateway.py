"""HTTP notification adapter — implements NotificationGateway.

Email goes out through the Resend REST API, SMS through the Twilio REST API.
Every recipient/channel pair is attempted concurrently; one failed delivery
never stops the others.

Gracefully degrades: SMS is skipped (with a log line) when Twilio is not
configured. GatewayUnavailable is raised only when every attempted delivery
failed.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from meetini.adapters.templates import email_html, email_subject, sms_text
from meetini.ports.notification_port import (
    DeliveryReport,
    GatewayUnavailable,
    NotificationPayload,
    NotificationRecipient,
    RecipientResult,
)

logger = logging.getLogger(__name__)

_RESEND_URL = "https://api.resend.com/emails"
_TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
_TIMEOUT_SECONDS = 10  # per HTTP request; from_settings uses GATEWAY_TIMEOUT_SECONDS


class HttpNotificationGateway:
    """Resend + Twilio implementation of NotificationGateway."""

    def __init__(
        self,
        resend_api_key: str = "",
        from_email: str = "",
        twilio_account_sid: str = "",
        twilio_auth_token: str = "",
        twilio_phone_number: str = "",
        timeout: float = _TIMEOUT_SECONDS,
    ) -> None:
        self._resend_api_key = resend_api_key
        self._from_email = from_email
        self._twilio_sid = twilio_account_sid
        self._twilio_token = twilio_auth_token
        self._twilio_from = twilio_phone_number
        self._timeout = timeout

    @classmethod
    def from_settings(cls) -> HttpNotificationGateway:
        from meetini.config import settings

        return cls(
            resend_api_key=settings.RESEND_API_KEY,
            from_email=settings.RESEND_FROM_EMAIL,
            twilio_account_sid=settings.TWILIO_ACCOUNT_SID,
            twilio_auth_token=settings.TWILIO_AUTH_TOKEN,
            twilio_phone_number=settings.TWILIO_PHONE_NUMBER,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        )

    @property
    def sms_enabled(self) -> bool:
        return bool(self._twilio_sid and self._twilio_token and self._twilio_from)

    async def send(
        self,
        recipients: list[NotificationRecipient],
        payload: NotificationPayload,
    ) -> DeliveryReport:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            outcomes = await asyncio.gather(
                *(self._deliver(client, r, payload) for r in recipients)
            )

        attempted = sum(n for _, n in outcomes)
        report = DeliveryReport(results=[result for result, _ in outcomes])
        delivered = sum(len(r.channels) for r in report.results)
        if attempted and not delivered:
            raise GatewayUnavailable(
                f"All {attempted} notification deliveries failed for '{payload.title}'"
            )
        return report

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        recipient: NotificationRecipient,
        payload: NotificationPayload,
    ) -> tuple[RecipientResult, int]:
        """Deliver to one recipient on every enabled channel.

        Returns the result and the number of channel attempts made.
        """
        result = RecipientResult(recipient=recipient, success=False)
        errors: list[str] = []
        attempts = 0

        if recipient.notify_by_email and recipient.email:
            attempts += 1
            try:
                await self._send_email(client, recipient, payload)
                result.channels.append("email")
            except Exception as exc:
                logger.warning("Email to %s failed: %s", recipient.email, exc)
                errors.append(f"email: {exc}")

        if recipient.notify_by_sms and recipient.phone_number:
            if not self.sms_enabled:
                logger.info("SMS notifications are disabled - Twilio credentials not configured")
            else:
                attempts += 1
                try:
                    await self._send_sms(client, recipient, payload)
                    result.channels.append("sms")
                except Exception as exc:
                    logger.warning("SMS to %s failed: %s", recipient.phone_number, exc)
                    errors.append(f"sms: {exc}")

        # Nothing attempted (SMS-only recipient, Twilio off) is a skip, not a failure.
        result.skipped = attempts == 0
        result.success = bool(result.channels) or result.skipped
        result.error = "; ".join(errors) if not result.success else ""
        return result, attempts

    async def _send_email(
        self,
        client: httpx.AsyncClient,
        recipient: NotificationRecipient,
        payload: NotificationPayload,
    ) -> None:
        if not self._resend_api_key:
            raise RuntimeError("Email notifications are disabled: Resend API key not configured")

        resp = await client.post(
            _RESEND_URL,
            json={
                "from": self._from_email,
                "to": recipient.email,
                "subject": email_subject(payload),
                "html": email_html(recipient, payload),
            },
            headers={"Authorization": f"Bearer {self._resend_api_key}"},
        )
        resp.raise_for_status()
        data = resp.json()
        if not data.get("id"):
            raise RuntimeError("Failed to send email - no confirmation ID received")
        logger.info("Email sent to %s (%s)", recipient.email, data["id"])

    async def _send_sms(
        self,
        client: httpx.AsyncClient,
        recipient: NotificationRecipient,
        payload: NotificationPayload,
    ) -> None:
        resp = await client.post(
            _TWILIO_URL.format(sid=self._twilio_sid),
            data={
                "To": recipient.phone_number,
                "From": self._twilio_from,
                "Body": sms_text(recipient, payload),
            },
            auth=(self._twilio_sid, self._twilio_token),
        )
        resp.raise_for_status()
        logger.info("SMS sent to %s", recipient.phone_number)
