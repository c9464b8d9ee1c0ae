import logging

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from orderflow.core.config import settings

logger = logging.getLogger(__name__)


def _whatsapp(number: str) -> str:
    # Twilio requires the "whatsapp:" prefix
    return number if number.startswith("whatsapp:") else f"whatsapp:{number}"


class NotificationService:
    """WhatsApp status messages to customers. A no-op unless Twilio credentials are set."""

    def __init__(self, client=None):
        self.client = client
        self.enabled = client is not None

        if self.client is None and settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN:
            try:
                self.client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
                self.enabled = bool(settings.TWILIO_FROM_NUMBER)
                logger.info("✅ NotificationService: Twilio Client Initialized")
            except TwilioException as e:
                logger.error(f"❌ Failed to initialize Twilio Client: {e}")
        elif self.client is None:
            logger.info("⚠️ NotificationService: Credentials missing in .env. Notifications disabled.")

    def notify_customer_status(self, phone: str, order_number: str, status: str, message: str) -> bool:
        if not self.enabled or not phone:
            return False

        body = (
            f"🛵 *Order {order_number}*\n"
            f"{message}\n\n"
            f"Status: {status}"
        )
        try:
            self.client.messages.create(
                from_=_whatsapp(settings.TWILIO_FROM_NUMBER or ""),
                body=body,
                to=_whatsapp(phone),
            )
            logger.info(f"✅ Status notification for {order_number} sent to {phone}")
            return True
        except TwilioException as e:
            logger.error(f"❌ Failed to send status notification for {order_number}: {e}")
            return False
