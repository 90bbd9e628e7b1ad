"""Shared pytest fixtures for testing."""

from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from callflow.api.dependencies import Services, build_services
from callflow.config import Settings
from callflow.models import PhoneNumber
from callflow.telephony.provider import AvailableNumber, ProvisionedNumber


# =============================================================================
# Settings and Services
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with a public base URL so callback URLs are absolute."""
    return Settings(public_base_url="https://calls.example.com", debug=False)


@pytest.fixture
def provider() -> MagicMock:
    """Telephony provider double; no network traffic."""
    provider = MagicMock()
    provider.search_numbers = AsyncMock(
        return_value=[
            AvailableNumber(
                phone_number="+14155550100",
                friendly_name="(415) 555-0100",
                locality="San Francisco",
                region="CA",
                capabilities={"voice": True, "sms": True},
            )
        ]
    )
    provider.purchase_number = AsyncMock(
        return_value=ProvisionedNumber(
            sid="PN_test_purchased",
            phone_number="+14155550100",
            friendly_name="(415) 555-0100",
            capabilities={"voice": True, "sms": True},
        )
    )
    provider.release_number = AsyncMock(return_value=None)
    provider.update_webhooks = AsyncMock(return_value=None)
    return provider


@pytest.fixture
def services(settings: Settings, provider: MagicMock) -> Services:
    return build_services(settings, provider=provider)


@pytest.fixture
def user_id() -> str:
    return "usr_test123"


@pytest_asyncio.fixture
async def phone_number(services: Services, user_id: str) -> PhoneNumber:
    """A number already owned by the test user."""
    number = PhoneNumber(
        id="num_test1",
        user_id=user_id,
        phone_number="+15550001111",
        twilio_sid="PN_test_owned",
        friendly_name="Main line",
        capabilities={"voice": True},
    )
    await services.number_store.add(number)
    return number


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def app(settings: Settings, services: Services) -> FastAPI:
    """Create test FastAPI application."""
    from callflow.main import create_app

    return create_app(settings, services)


@pytest_asyncio.fixture
async def client(app: FastAPI, user_id: str) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client authenticated as the test user."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        ac.headers["X-User-ID"] = user_id
        yield ac
