"""
Plan limits and entitlement checks.

Billing itself is owned by the external billing provider; this module only
holds the per-plan limits and answers yes/no questions against them.
"""

from dataclasses import dataclass
from typing import Dict, Optional

import structlog

from .config import PlanType
from .exceptions import PermissionDeniedError
from .models import PhoneNumber

logger = structlog.get_logger()


@dataclass(frozen=True)
class PlanLimits:
    """Limits of one subscription plan."""

    max_numbers: int
    monthly_minutes: Optional[int]  # None = unlimited


PLAN_LIMITS: Dict[PlanType, PlanLimits] = {
    PlanType.STARTER: PlanLimits(max_numbers=1, monthly_minutes=500),
    PlanType.BUSINESS: PlanLimits(max_numbers=5, monthly_minutes=2000),
    PlanType.ENTERPRISE: PlanLimits(max_numbers=25, monthly_minutes=None),
}


@dataclass
class Entitlement:
    """A user's subscription as reported by the billing provider."""

    user_id: str
    plan: PlanType = PlanType.STARTER
    active: bool = True
    minutes_used: int = 0

    @property
    def limits(self) -> PlanLimits:
        return PLAN_LIMITS[self.plan]


def can_purchase_number(entitlement: Optional[Entitlement], owned_count: int) -> bool:
    """Whether the user may buy one more number."""
    if entitlement is None or not entitlement.active:
        return False
    return owned_count < entitlement.limits.max_numbers


def can_manage_flows(
    entitlement: Optional[Entitlement],
    number: Optional[PhoneNumber],
    owned_count: int,
) -> bool:
    """
    Whether the user may create or edit flows for a number.

    Requires an active subscription, ownership of the number, and a number
    count within the plan (a downgraded plan freezes flow editing until the
    user releases numbers).
    """
    if entitlement is None or not entitlement.active or number is None:
        return False
    if number.user_id != entitlement.user_id:
        return False
    return owned_count <= entitlement.limits.max_numbers


def has_minutes_left(entitlement: Optional[Entitlement]) -> bool:
    if entitlement is None or not entitlement.active:
        return False
    allowance = entitlement.limits.monthly_minutes
    return allowance is None or entitlement.minutes_used < allowance


class EntitlementStore:
    """
    Entitlements cached from the billing provider.

    Users without a record get ``default_plan`` (or nothing, when it is None).
    """

    def __init__(self, default_plan: Optional[PlanType] = PlanType.STARTER):
        self.default_plan = default_plan
        self._entitlements: Dict[str, Entitlement] = {}

    async def get(self, user_id: str) -> Optional[Entitlement]:
        entitlement = self._entitlements.get(user_id)
        if entitlement is None and self.default_plan is not None:
            entitlement = Entitlement(user_id=user_id, plan=self.default_plan)
            self._entitlements[user_id] = entitlement
        return entitlement

    async def set(self, entitlement: Entitlement) -> None:
        self._entitlements[entitlement.user_id] = entitlement

    async def add_minutes(self, user_id: str, minutes: int) -> None:
        entitlement = await self.get(user_id)
        if entitlement is not None:
            entitlement.minutes_used += minutes
            logger.debug("Usage recorded", user_id=user_id, minutes=minutes, total=entitlement.minutes_used)

    async def require_flow_access(self, user_id: str, number: Optional[PhoneNumber], owned_count: int) -> None:
        """
        Raises:
            PermissionDeniedError: If the user may not manage flows for the number
        """
        entitlement = await self.get(user_id)
        if not can_manage_flows(entitlement, number, owned_count):
            raise PermissionDeniedError(
                "Your plan does not allow managing call flows for this number."
            )
