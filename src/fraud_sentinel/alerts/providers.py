"""Notification providers for SMS, rich message (WhatsApp) and voice."""

import itertools
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from xml.sax.saxutils import escape

import httpx

from fraud_sentinel.alerts.schema import AlertChannel, ProviderReceipt
from fraud_sentinel.common.config import Config
from fraud_sentinel.common.constants import AlertConstants
from fraud_sentinel.common.exceptions import (
    PermanentUpstreamError,
    TransientUpstreamError,
    classify_http_status,
)
from fraud_sentinel.core.types import Language

logger = logging.getLogger(__name__)


class NotificationProvider(ABC):
    """A single notification channel.

    ``send`` makes exactly one delivery attempt. It raises
    TransientUpstreamError for failures worth retrying and
    PermanentUpstreamError for everything else.
    """

    channel: AlertChannel
    simulated: bool = False

    @abstractmethod
    def send(self, destination: str, message: str, language: Language = Language.ENGLISH) -> ProviderReceipt:
        """Deliver a rendered message to a destination address."""


_SIM_PREFIXES = {
    AlertChannel.SMS: "SIM_SMS",
    AlertChannel.RICH_MESSAGE: "SIM_WA",
    AlertChannel.VOICE: "SIM_CALL",
}


class SimulatedProvider(NotificationProvider):
    """Logs the message instead of sending it."""

    simulated = True

    def __init__(self, channel: AlertChannel):
        self.channel = channel
        self._seq = itertools.count(1)

    def send(self, destination: str, message: str, language: Language = Language.ENGLISH) -> ProviderReceipt:
        ref = f"{_SIM_PREFIXES[self.channel]}_{int(time.time() * 1000)}_{next(self._seq)}"
        logger.info(f"[SIM {self.channel.value} -> {destination}]: {message[:80]}")
        return ProviderReceipt(provider_ref=ref, status="simulated", simulated=True)


class TwilioClient:
    """Minimal Twilio REST client over httpx (Messages and Calls resources)."""

    SERVICE = "twilio"
    BASE_URL = "https://api.twilio.com"
    API_VERSION = "2010-04-01"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        timeout: float = AlertConstants.REQUEST_TIMEOUT_SECONDS,
        base_url: str = BASE_URL,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not (account_sid and auth_token):
            raise PermanentUpstreamError("Twilio credentials are not configured", self.SERVICE)
        self.account_sid = account_sid
        self._client = httpx.Client(
            base_url=base_url,
            auth=(account_sid, auth_token),
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def create(self, resource: str, data: Dict[str, Any], service: str) -> Dict[str, Any]:
        """POST a form to ``/Accounts/<sid>/<resource>.json``."""
        path = f"/{self.API_VERSION}/Accounts/{self.account_sid}/{resource}.json"
        try:
            response = self._client.post(path, data=data)
        except httpx.TimeoutException as e:
            raise TransientUpstreamError(f"{service} request timed out: {e}", service) from e
        except httpx.TransportError as e:
            raise TransientUpstreamError(f"{service} unreachable: {e}", service) from e

        if not response.is_success:
            raise classify_http_status(response.status_code, service, response.text)

        try:
            body = response.json()
        except ValueError as e:
            raise TransientUpstreamError(
                f"{service} returned invalid JSON: {e}", service, status_code=response.status_code,
            ) from e
        if not body.get("sid"):
            raise PermanentUpstreamError(f"{service} response has no sid", service)
        return body


class TwilioSmsProvider(NotificationProvider):
    channel = AlertChannel.SMS

    def __init__(self, client: TwilioClient, from_number: str):
        self.client = client
        self.from_number = from_number

    def send(self, destination: str, message: str, language: Language = Language.ENGLISH) -> ProviderReceipt:
        body = self.client.create(
            "Messages",
            {"To": destination, "From": self.from_number, "Body": message},
            service="twilio:sms",
        )
        logger.info(f"SMS sent to {destination}: {body.get('sid')}")
        return ProviderReceipt(provider_ref=body["sid"], status=body.get("status", "queued"))


class TwilioWhatsAppProvider(NotificationProvider):
    """Rich message channel over WhatsApp (``whatsapp:`` addresses)."""

    channel = AlertChannel.RICH_MESSAGE

    def __init__(self, client: TwilioClient, from_number: str):
        self.client = client
        self.from_number = from_number

    @staticmethod
    def _address(number: str) -> str:
        return number if number.startswith("whatsapp:") else f"whatsapp:{number}"

    def send(self, destination: str, message: str, language: Language = Language.ENGLISH) -> ProviderReceipt:
        body = self.client.create(
            "Messages",
            {
                "To": self._address(destination),
                "From": self._address(self.from_number),
                "Body": message,
            },
            service="twilio:whatsapp",
        )
        logger.info(f"WhatsApp sent to {destination}: {body.get('sid')}")
        return ProviderReceipt(provider_ref=body["sid"], status=body.get("status", "queued"))


# Twilio <Say> voice per template language
_VOICES = {
    Language.ENGLISH: ("Polly.Aditi", "en-IN"),
    Language.HINDI: ("Polly.Aditi", "hi-IN"),
    Language.MARATHI: ("Polly.Aditi", "mr-IN"),
    Language.HINGLISH: ("Polly.Aditi", "en-IN"),
}

VOICE_CLOSING = (
    "This is an automated message from SecureBank. Please contact us immediately "
    "if you did not initiate this activity."
)


def build_twiml(message: str, language: Language = Language.ENGLISH) -> str:
    """TwiML that speaks the message, pauses, then reads a closing line."""
    voice, lang = _VOICES.get(language, _VOICES[Language.ENGLISH])
    attrs = {'"': "&quot;", "'": "&apos;"}
    say = f'<Say voice="{voice}" language="{lang}">'
    return (
        f"<Response>{say}{escape(message, attrs)}</Say>"
        f'<Pause length="1"/>{say}{escape(VOICE_CLOSING, attrs)}</Say></Response>'
    )


class TwilioVoiceProvider(NotificationProvider):
    channel = AlertChannel.VOICE

    def __init__(self, client: TwilioClient, from_number: str):
        self.client = client
        self.from_number = from_number

    def send(self, destination: str, message: str, language: Language = Language.ENGLISH) -> ProviderReceipt:
        body = self.client.create(
            "Calls",
            {"To": destination, "From": self.from_number, "Twiml": build_twiml(message, language)},
            service="twilio:voice",
        )
        logger.info(f"Voice call to {destination}: {body.get('sid')}")
        return ProviderReceipt(provider_ref=body["sid"], status=body.get("status", "queued"))


def build_providers(config: Config, transport: Optional[httpx.BaseTransport] = None) -> Dict[AlertChannel, NotificationProvider]:
    """Twilio providers when configured, simulated ones otherwise."""
    if not config.twilio_configured:
        logger.info("Twilio not configured, alerts will be simulated")
        return {channel: SimulatedProvider(channel) for channel in AlertChannel}

    client = TwilioClient(
        config.twilio_account_sid,
        config.twilio_auth_token,
        timeout=config.alert_timeout_seconds,
        transport=transport,
    )
    whatsapp_from = config.twilio_whatsapp_number or config.twilio_phone_number
    return {
        AlertChannel.SMS: TwilioSmsProvider(client, config.twilio_phone_number),
        AlertChannel.RICH_MESSAGE: TwilioWhatsAppProvider(client, whatsapp_from),
        AlertChannel.VOICE: TwilioVoiceProvider(client, config.twilio_phone_number),
    }
