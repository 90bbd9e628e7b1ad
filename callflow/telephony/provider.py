"""
Twilio number provisioning.

Search, purchase, release and webhook configuration of phone numbers. The
Twilio SDK is synchronous, so calls run in the default executor.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar

import structlog
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioSyncClient

from ..config import TwilioConfig, get_settings
from ..exceptions import TelephonyError

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class NumberSearchCriteria:
    """Criteria for searching available numbers."""
    country_code: str = "US"
    area_code: Optional[str] = None
    contains: Optional[str] = None
    voice_enabled: bool = True
    sms_enabled: bool = False
    limit: int = 20


@dataclass
class AvailableNumber:
    """Available number from search."""
    phone_number: str
    friendly_name: str
    locality: str = ""
    region: str = ""
    country_code: str = "US"
    capabilities: Dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phone_number": self.phone_number,
            "friendly_name": self.friendly_name,
            "locality": self.locality,
            "region": self.region,
            "country_code": self.country_code,
            "capabilities": self.capabilities,
        }


@dataclass
class ProvisionedNumber:
    """A number purchased at the provider."""
    sid: str
    phone_number: str
    friendly_name: str = ""
    capabilities: Dict[str, bool] = field(default_factory=dict)


@dataclass
class WebhookUrls:
    """Callback URLs registered on a number."""
    voice_url: str
    sms_url: Optional[str] = None
    status_callback: Optional[str] = None

    def to_params(self) -> Dict[str, str]:
        """Keyword arguments for the Twilio number resource."""
        params = {"voice_url": self.voice_url, "voice_method": "POST"}
        if self.sms_url:
            params["sms_url"] = self.sms_url
            params["sms_method"] = "POST"
        if self.status_callback:
            params["status_callback"] = self.status_callback
            params["status_callback_method"] = "POST"
        return params


class TelephonyProvider(ABC):
    """Abstract telephony provider."""

    @abstractmethod
    async def search_numbers(self, criteria: NumberSearchCriteria) -> List[AvailableNumber]:
        """Search for available numbers."""
        pass

    @abstractmethod
    async def purchase_number(self, phone_number: str, webhooks: WebhookUrls) -> ProvisionedNumber:
        """Purchase a phone number."""
        pass

    @abstractmethod
    async def release_number(self, sid: str) -> None:
        """Release a phone number."""
        pass

    @abstractmethod
    async def update_webhooks(self, sid: str, webhooks: WebhookUrls) -> None:
        """Point a number's webhooks at this service."""
        pass


def describe_purchase_error(error: TwilioRestException) -> str:
    """Translate a Twilio purchase error into a message safe to show users."""
    text = (error.msg or "").lower()
    if "not available" in text:
        return "This phone number is no longer available. Please select a different number."
    if "invalid" in text:
        return "The selected phone number format is invalid."
    if "insufficient" in text:
        return "There was an issue with the payment method. Please contact support."
    return "Failed to purchase phone number. Please try a different number or contact support."


class TwilioProvider(TelephonyProvider):
    """Twilio telephony provider."""

    def __init__(self, config: Optional[TwilioConfig] = None, client: Optional[TwilioSyncClient] = None):
        self.config = config or get_settings().twilio
        if client is not None:
            self._client = client
        elif self.config.account_sid and self.config.auth_token:
            self._client = TwilioSyncClient(self.config.account_sid, self.config.auth_token)
        else:
            self._client = None
        self.logger = logger.bind(component="twilio_provider")

    @property
    def client(self) -> TwilioSyncClient:
        if self._client is None:
            raise TelephonyError("Telephony provider is not configured.", code="provider_not_configured")
        return self._client

    async def _run(self, func: Callable[[], T]) -> T:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, func)

    async def search_numbers(self, criteria: NumberSearchCriteria) -> List[AvailableNumber]:
        """Search Twilio for available local numbers."""
        params: Dict[str, Any] = {
            "voice_enabled": criteria.voice_enabled,
            "limit": criteria.limit,
        }
        if criteria.sms_enabled:
            params["sms_enabled"] = True
        if criteria.area_code:
            params["area_code"] = criteria.area_code
        if criteria.contains:
            params["contains"] = criteria.contains

        try:
            records = await self._run(
                lambda: self.client.available_phone_numbers(criteria.country_code).local.list(**params)
            )
        except TwilioRestException as e:
            self.logger.error("Twilio search error", error=str(e), code=e.code)
            raise TelephonyError(
                "Unable to search for phone numbers right now.",
                provider_message=e.msg,
            ) from e

        return [
            AvailableNumber(
                phone_number=r.phone_number,
                friendly_name=r.friendly_name or r.phone_number,
                locality=r.locality or "",
                region=r.region or "",
                country_code=r.iso_country or criteria.country_code,
                capabilities=dict(r.capabilities or {}),
            )
            for r in records
        ]

    async def purchase_number(self, phone_number: str, webhooks: WebhookUrls) -> ProvisionedNumber:
        """
        Purchase a number, retrying transport failures with linear backoff.

        Raises:
            TelephonyError: If Twilio rejects the purchase or stays unreachable
        """
        attempts = self.config.purchase_attempts

        for attempt in range(1, attempts + 1):
            try:
                record = await self._run(
                    lambda: self.client.incoming_phone_numbers.create(
                        phone_number=phone_number,
                        **webhooks.to_params(),
                    )
                )
                break
            except TwilioRestException as e:
                self.logger.error(
                    "Twilio purchase error",
                    error=str(e),
                    code=e.code,
                    phone_number=phone_number,
                )
                raise TelephonyError(
                    describe_purchase_error(e),
                    code="purchase_failed",
                    provider_message=e.msg,
                ) from e
            except OSError as e:
                self.logger.warning(
                    "Twilio unreachable during purchase",
                    attempt=attempt,
                    error=str(e),
                )
                if attempt >= attempts:
                    raise TelephonyError(
                        f"Failed to connect to Twilio after {attempts} attempts",
                        code="provider_unreachable",
                        provider_message=str(e),
                    ) from e
                await asyncio.sleep(self.config.retry_backoff_s * attempt)

        self.logger.info("Number purchased", phone_number=record.phone_number, sid=record.sid)
        return ProvisionedNumber(
            sid=record.sid,
            phone_number=record.phone_number,
            friendly_name=record.friendly_name or "",
            capabilities=dict(record.capabilities or {}),
        )

    async def release_number(self, sid: str) -> None:
        """Release number from Twilio."""
        try:
            await self._run(lambda: self.client.incoming_phone_numbers(sid).delete())
        except TwilioRestException as e:
            self.logger.error("Twilio release error", error=str(e), code=e.code, sid=sid)
            raise TelephonyError(
                "Failed to release phone number from provider.",
                code="release_failed",
                provider_message=e.msg,
            ) from e
        self.logger.info("Number released", sid=sid)

    async def update_webhooks(self, sid: str, webhooks: WebhookUrls) -> None:
        """Update Twilio number webhooks."""
        try:
            await self._run(
                lambda: self.client.incoming_phone_numbers(sid).update(**webhooks.to_params())
            )
        except TwilioRestException as e:
            self.logger.error("Twilio webhook update error", error=str(e), code=e.code, sid=sid)
            raise TelephonyError(
                "Failed to update number webhooks.",
                code="webhook_update_failed",
                provider_message=e.msg,
            ) from e
