"""Unit tests for plan limits and entitlement checks."""

import pytest

from callflow.config import PlanType
from callflow.exceptions import PermissionDeniedError
from callflow.models import PhoneNumber
from callflow.plans import (
    PLAN_LIMITS,
    Entitlement,
    EntitlementStore,
    can_manage_flows,
    can_purchase_number,
    has_minutes_left,
)
from callflow.telephony.formatting import format_e164, validate_e164


def number_for(user_id: str) -> PhoneNumber:
    return PhoneNumber(id="num_1", user_id=user_id, phone_number="+15550001111", twilio_sid="PN1")


class TestPlanLimits:
    """Tests for the plan table."""

    def test_limits(self):
        assert PLAN_LIMITS[PlanType.STARTER].max_numbers == 1
        assert PLAN_LIMITS[PlanType.BUSINESS].max_numbers == 5
        assert PLAN_LIMITS[PlanType.ENTERPRISE].max_numbers == 25
        assert PLAN_LIMITS[PlanType.ENTERPRISE].monthly_minutes is None

    @pytest.mark.parametrize(
        "plan,owned,allowed",
        [
            (PlanType.STARTER, 0, True),
            (PlanType.STARTER, 1, False),
            (PlanType.BUSINESS, 4, True),
            (PlanType.BUSINESS, 5, False),
        ],
    )
    def test_can_purchase_number(self, plan, owned, allowed):
        assert can_purchase_number(Entitlement(user_id="u", plan=plan), owned) is allowed

    def test_inactive_subscription_denies_everything(self):
        entitlement = Entitlement(user_id="u", plan=PlanType.ENTERPRISE, active=False)

        assert can_purchase_number(entitlement, 0) is False
        assert can_manage_flows(entitlement, number_for("u"), 1) is False
        assert has_minutes_left(entitlement) is False

    def test_manage_flows_requires_ownership(self):
        entitlement = Entitlement(user_id="u")

        assert can_manage_flows(entitlement, number_for("u"), 1) is True
        assert can_manage_flows(entitlement, number_for("someone_else"), 1) is False
        assert can_manage_flows(entitlement, None, 1) is False

    def test_downgraded_plan_freezes_flow_editing(self):
        """Test owning more numbers than the plan allows blocks flow edits."""
        entitlement = Entitlement(user_id="u", plan=PlanType.STARTER)

        assert can_manage_flows(entitlement, number_for("u"), 3) is False

    def test_minutes(self):
        assert has_minutes_left(Entitlement(user_id="u", minutes_used=499)) is True
        assert has_minutes_left(Entitlement(user_id="u", minutes_used=500)) is False
        assert has_minutes_left(Entitlement(user_id="u", plan=PlanType.ENTERPRISE, minutes_used=10**6)) is True
        assert has_minutes_left(None) is False


class TestEntitlementStore:
    """Tests for the entitlement cache."""

    @pytest.mark.asyncio
    async def test_default_plan(self):
        store = EntitlementStore()

        entitlement = await store.get("new_user")

        assert entitlement.plan == PlanType.STARTER
        assert entitlement.active is True

    @pytest.mark.asyncio
    async def test_no_default_plan(self):
        store = EntitlementStore(default_plan=None)

        assert await store.get("new_user") is None

    @pytest.mark.asyncio
    async def test_add_minutes(self):
        store = EntitlementStore()

        await store.add_minutes("u", 3)
        await store.add_minutes("u", 2)

        assert (await store.get("u")).minutes_used == 5

    @pytest.mark.asyncio
    async def test_require_flow_access_raises(self):
        store = EntitlementStore()
        await store.set(Entitlement(user_id="u", active=False))

        with pytest.raises(PermissionDeniedError):
            await store.require_flow_access("u", number_for("u"), 1)


class TestPhoneFormatting:
    """Tests for E.164 helpers."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("(415) 555-0100", "+14155550100"),
            ("1-415-555-0100", "+14155550100"),
            ("+44 20 7946 0958", "+442079460958"),
        ],
    )
    def test_format_e164(self, raw, expected):
        assert format_e164(raw) == expected

    def test_validate_e164(self):
        assert validate_e164("+14155550100") is True
        assert validate_e164("4155550100") is False
        assert validate_e164("+04155550100") is False
