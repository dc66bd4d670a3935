"""
SMS Providers - Deliver token and expiration messages to phones.

Each provider talks to its HTTP API with httpx and raises SmsDeliveryError
on any failure. The console provider is the demo mode used when no
provider credentials are configured.
"""

from dataclasses import dataclass
from typing import Protocol

import httpx

from app.config import Settings
from app.exceptions import SmsDeliveryError
from app.observability.logging import get_logger, mask_phone
from app.observability.metrics import metrics

logger = get_logger(__name__)


def token_message(code: str, duration: str) -> str:
    """Body of the SMS carrying a freshly issued token."""
    return (
        f"Your Wi-Fi access token is: {code}. Valid for {duration}. "
        "Enter this on the Wi-Fi portal to connect."
    )


def expiration_message(code: str) -> str:
    """Body of the SMS sent after a token's window closes."""
    return (
        f"Your Wi-Fi access token {code} has expired. "
        "Purchase a new token to reconnect."
    )


@dataclass(frozen=True)
class SmsReceipt:
    """Provider acknowledgement of an accepted message."""

    provider: str
    message_id: str | None = None


class SmsProvider(Protocol):
    """Protocol every SMS adapter implements."""

    name: str

    async def send(self, phone_number: str, body: str) -> SmsReceipt:
        """
        Send a text message.

        Raises:
            SmsDeliveryError: Provider rejected or failed to send
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...


class _HttpSmsProvider:
    """Shared httpx client handling for HTTP-based providers."""

    name = "http"

    def __init__(self, timeout: float, http_client: httpx.AsyncClient | None = None) -> None:
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _fail(self, phone_number: str, message: str) -> SmsDeliveryError:
        metrics.record_sms(self.name, success=False)
        logger.warning(
            "sms_send_failed",
            provider=self.name,
            phone_number=mask_phone(phone_number),
            error=message,
        )
        return SmsDeliveryError(self.name, message)


class TwilioSmsProvider(_HttpSmsProvider):
    """Twilio Programmable Messaging REST API."""

    name = "twilio"
    API_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout, http_client)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number

    async def send(self, phone_number: str, body: str) -> SmsReceipt:
        url = self.API_URL.format(account_sid=self.account_sid)
        try:
            response = await self.http_client.post(
                url,
                data={"To": phone_number, "From": self.from_number, "Body": body},
                auth=(self.account_sid, self.auth_token),
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise self._fail(
                phone_number, f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise self._fail(phone_number, str(e) or type(e).__name__) from e

        metrics.record_sms(self.name, success=True)
        logger.info(
            "sms_sent",
            provider=self.name,
            phone_number=mask_phone(phone_number),
            message_id=payload.get("sid"),
        )
        return SmsReceipt(provider=self.name, message_id=payload.get("sid"))


class AfricasTalkingSmsProvider(_HttpSmsProvider):
    """Africa's Talking bulk messaging API."""

    name = "africastalking"
    API_URL = "https://api.africastalking.com/version1/messaging"
    SANDBOX_URL = "https://api.sandbox.africastalking.com/version1/messaging"

    def __init__(
        self,
        username: str,
        api_key: str,
        sender_id: str = "",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout, http_client)
        self.username = username
        self.api_key = api_key
        self.sender_id = sender_id

    @property
    def api_url(self) -> str:
        return self.SANDBOX_URL if self.username == "sandbox" else self.API_URL

    async def send(self, phone_number: str, body: str) -> SmsReceipt:
        data = {"username": self.username, "to": phone_number, "message": body}
        if self.sender_id:
            data["from"] = self.sender_id

        try:
            response = await self.http_client.post(
                self.api_url,
                data=data,
                headers={"apiKey": self.api_key, "Accept": "application/json"},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise self._fail(
                phone_number, f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise self._fail(phone_number, str(e) or type(e).__name__) from e

        recipients = payload.get("SMSMessageData", {}).get("Recipients", [])
        if not recipients:
            message = payload.get("SMSMessageData", {}).get("Message", "No recipients accepted")
            raise self._fail(phone_number, message)

        recipient = recipients[0]
        if recipient.get("status") != "Success":
            raise self._fail(phone_number, recipient.get("status", "Rejected"))

        metrics.record_sms(self.name, success=True)
        logger.info(
            "sms_sent",
            provider=self.name,
            phone_number=mask_phone(phone_number),
            message_id=recipient.get("messageId"),
        )
        return SmsReceipt(provider=self.name, message_id=recipient.get("messageId"))


class ConsoleSmsProvider:
    """Demo mode: log the message instead of sending it."""

    name = "console"

    async def send(self, phone_number: str, body: str) -> SmsReceipt:
        metrics.record_sms(self.name, success=True)
        logger.info(
            "sms_demo_mode",
            provider=self.name,
            phone_number=mask_phone(phone_number),
            body=body,
        )
        return SmsReceipt(provider=self.name)

    async def close(self) -> None:
        return None


def build_sms_provider(settings: Settings) -> SmsProvider:
    """
    Select the SMS provider from configuration.

    ``auto`` picks Twilio, then Africa's Talking, by whichever has
    credentials, and falls back to the console provider.
    """
    twilio_ready = bool(
        settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_phone_number
    )
    africastalking_ready = bool(
        settings.africastalking_username and settings.africastalking_api_key
    )

    choice = settings.sms_provider
    if choice == "auto":
        if twilio_ready:
            choice = "twilio"
        elif africastalking_ready:
            choice = "africastalking"
        else:
            choice = "console"

    if choice == "twilio" and twilio_ready:
        provider: SmsProvider = TwilioSmsProvider(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_phone_number,
            timeout=settings.sms_timeout_seconds,
        )
    elif choice == "africastalking" and africastalking_ready:
        provider = AfricasTalkingSmsProvider(
            username=settings.africastalking_username,
            api_key=settings.africastalking_api_key,
            sender_id=settings.africastalking_sender_id,
            timeout=settings.sms_timeout_seconds,
        )
    else:
        if choice != "console":
            logger.warning("sms_provider_not_configured", requested=choice)
        provider = ConsoleSmsProvider()

    logger.info("sms_provider_selected", provider=provider.name)
    return provider
