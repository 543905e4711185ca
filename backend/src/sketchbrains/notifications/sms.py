"""SMS delivery through the Twilio Messages API."""

import httpx

from sketchbrains.logging_config import get_logger
from sketchbrains.settings import settings

logger = get_logger(__name__)


class SmsService:
    """SMS service using Twilio's REST API over httpx."""

    TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

    def __init__(self):
        self.account_sid = settings.twilio_account_sid
        self.auth_token = settings.twilio_auth_token
        self.from_number = settings.twilio_from_number
        self.enabled = bool(self.account_sid and self.auth_token and self.from_number)

        if not self.enabled:
            logger.warning("sms_service_disabled", reason="Twilio credentials not set")

    async def send(self, to_number: str, body: str) -> bool:
        """Send a text message.

        Returns:
            True if accepted by Twilio, False otherwise
        """
        if not self.enabled:
            logger.warning("sms_not_sent", reason="service_disabled")
            return False

        url = self.TWILIO_API_URL.format(sid=self.account_sid)
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    data={"To": to_number, "From": self.from_number, "Body": body},
                    auth=(self.account_sid, self.auth_token),
                    timeout=float(settings.request_timeout_seconds),
                )
        except httpx.RequestError as e:
            logger.error("sms_send_error", error=str(e))
            return False

        if response.status_code in (200, 201):
            logger.info("sms_sent", sid=response.json().get("sid"))
            return True

        logger.error("sms_send_failed", status=response.status_code, body=response.text[:200])
        return False
