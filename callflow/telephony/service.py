"""
Phone number lifecycle.

Purchase is a two-step operation across two systems: buy at the provider,
then record locally. If the local record cannot be written the provider
purchase is undone, so a user is never billed for a number they cannot see.
"""

import uuid
from typing import List, Optional

import structlog

from ..config import Settings, get_settings
from ..exceptions import NotFoundError, NumberRecordError, PermissionDeniedError, TelephonyError
from ..models import PhoneNumber
from ..persistence.store import FlowStore, NumberStore
from ..plans import EntitlementStore, can_purchase_number
from .formatting import validate_e164
from .provider import (
    AvailableNumber,
    NumberSearchCriteria,
    TelephonyProvider,
    WebhookUrls,
)

logger = structlog.get_logger()


class PhoneNumberService:
    """Purchase, release and configure phone numbers for users."""

    def __init__(
        self,
        provider: TelephonyProvider,
        numbers: NumberStore,
        flows: FlowStore,
        entitlements: EntitlementStore,
        settings: Optional[Settings] = None,
    ):
        self.provider = provider
        self.numbers = numbers
        self.flows = flows
        self.entitlements = entitlements
        self.settings = settings or get_settings()
        self.logger = logger.bind(component="phone_number_service")

    def webhook_urls(self) -> WebhookUrls:
        base = self.settings.webhook_base_url
        return WebhookUrls(
            voice_url=f"{base}/voice/incoming",
            status_callback=f"{base}/voice/status",
        )

    async def search(self, criteria: NumberSearchCriteria) -> List[AvailableNumber]:
        return await self.provider.search_numbers(criteria)

    async def list_numbers(self, user_id: str) -> List[PhoneNumber]:
        return await self.numbers.list_for_user(user_id)

    async def get_owned(self, user_id: str, number_id: str) -> PhoneNumber:
        number = await self.numbers.get(number_id)
        if number is None or number.user_id != user_id:
            raise NotFoundError("Phone number", number_id)
        return number

    async def purchase(
        self,
        user_id: str,
        phone_number: str,
        friendly_name: Optional[str] = None,
    ) -> PhoneNumber:
        """
        Buy a number and record it for the user.

        Args:
            user_id: Buyer
            phone_number: E.164 number picked from a search
            friendly_name: Display name

        Returns:
            The recorded number

        Raises:
            TelephonyError: If the provider rejects the purchase
            PermissionDeniedError: If the plan does not allow another number
            NumberRecordError: If the number was bought but could neither be
                recorded nor released
        """
        if not validate_e164(phone_number):
            raise TelephonyError("Invalid phone number format", code="invalid_number")

        if await self.numbers.get_by_phone(phone_number) is not None:
            raise TelephonyError("This number is already owned.", code="number_owned")

        entitlement = await self.entitlements.get(user_id)
        owned = await self.numbers.count_for_user(user_id)
        if not can_purchase_number(entitlement, owned):
            raise PermissionDeniedError(
                "Number limit reached for your plan. Please upgrade to add more numbers."
            )

        provisioned = await self.provider.purchase_number(phone_number, self.webhook_urls())

        record = PhoneNumber(
            id=str(uuid.uuid4()),
            user_id=user_id,
            phone_number=provisioned.phone_number,
            twilio_sid=provisioned.sid,
            friendly_name=friendly_name or provisioned.friendly_name or provisioned.phone_number,
            capabilities=provisioned.capabilities,
        )

        try:
            await self.numbers.add(record)
        except Exception as e:
            self.logger.error(
                "Failed to record purchased number, releasing",
                phone_number=provisioned.phone_number,
                sid=provisioned.sid,
                error=str(e),
            )
            await self._rollback_purchase(provisioned.phone_number, provisioned.sid)
            raise TelephonyError(
                "Failed to save number information. The purchase was cancelled.",
                code="number_save_failed",
            ) from e

        self.logger.info(
            "Number purchased",
            user_id=user_id,
            phone_number=record.phone_number,
            number_id=record.id,
        )
        return record

    async def _rollback_purchase(self, phone_number: str, sid: str) -> None:
        try:
            await self.provider.release_number(sid)
        except Exception as e:
            self.logger.critical(
                "Purchased number could not be released",
                phone_number=phone_number,
                sid=sid,
                error=str(e),
            )
            raise NumberRecordError(phone_number, provider_sid=sid) from e
        self.logger.info("Purchase rolled back", phone_number=phone_number, sid=sid)

    async def release(self, user_id: str, number_id: str) -> None:
        """Release at the provider first, then drop the number and its flows."""
        number = await self.get_owned(user_id, number_id)

        await self.provider.release_number(number.twilio_sid)

        removed = await self.flows.delete_for_number(number.id)
        await self.numbers.delete(number.id)

        self.logger.info(
            "Number released",
            user_id=user_id,
            phone_number=number.phone_number,
            flows_removed=removed,
        )

    async def sync_webhooks(self, number: PhoneNumber) -> bool:
        """
        Re-point a number's webhooks at this service.

        Failures are logged and reported as False, never raised.
        """
        try:
            await self.provider.update_webhooks(number.twilio_sid, self.webhook_urls())
        except TelephonyError as e:
            self.logger.warning(
                "Webhook update failed",
                phone_number=number.phone_number,
                error=e.message,
            )
            return False
        return True
