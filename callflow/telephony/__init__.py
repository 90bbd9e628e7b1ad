"""
Telephony provider integration: number search, purchase, release and webhooks.
"""

from .formatting import format_e164, validate_e164
from .provider import (
    AvailableNumber,
    NumberSearchCriteria,
    ProvisionedNumber,
    TelephonyProvider,
    TwilioProvider,
    WebhookUrls,
)
from .service import PhoneNumberService

__all__ = [
    "format_e164",
    "validate_e164",
    "AvailableNumber",
    "NumberSearchCriteria",
    "ProvisionedNumber",
    "TelephonyProvider",
    "TwilioProvider",
    "WebhookUrls",
    "PhoneNumberService",
]
