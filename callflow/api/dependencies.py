"""Service wiring and request dependencies."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from ..canvas.sessions import EditorSessionRegistry
from ..canvas.validator import FlowValidator
from ..compiler.engine import FlowCompiler
from ..config import Settings, StorageBackend
from ..flows.service import FlowService
from ..persistence.database import (
    DatabaseFlowStore,
    DatabaseNumberStore,
    create_engine,
    create_session_factory,
)
from ..persistence.memory import InMemoryFlowStore, InMemoryNumberStore
from ..persistence.store import FlowStore, NumberStore
from ..plans import EntitlementStore
from ..telephony.provider import TelephonyProvider, TwilioProvider
from ..telephony.service import PhoneNumberService


@dataclass
class Services:
    """Everything a request handler may need, built once at startup."""

    settings: Settings
    flow_store: FlowStore
    number_store: NumberStore
    entitlements: EntitlementStore
    provider: TelephonyProvider
    numbers: PhoneNumberService
    flows: FlowService
    compiler: FlowCompiler
    sessions: EditorSessionRegistry
    engine: Optional[AsyncEngine] = None


def build_services(
    settings: Settings,
    provider: Optional[TelephonyProvider] = None,
    flow_store: Optional[FlowStore] = None,
    number_store: Optional[NumberStore] = None,
    entitlements: Optional[EntitlementStore] = None,
) -> Services:
    """Wire the service graph for the configured storage backend."""
    engine = None
    if flow_store is None or number_store is None:
        if settings.storage.backend == StorageBackend.DATABASE:
            engine = create_engine(settings.storage.database_url, echo=settings.debug)
            session_factory = create_session_factory(engine)
            flow_store = flow_store or DatabaseFlowStore(session_factory)
            number_store = number_store or DatabaseNumberStore(session_factory)
        else:
            flow_store = flow_store or InMemoryFlowStore()
            number_store = number_store or InMemoryNumberStore()

    entitlements = entitlements or EntitlementStore()
    provider = provider or TwilioProvider(settings.twilio)

    numbers = PhoneNumberService(provider, number_store, flow_store, entitlements, settings)
    flows = FlowService(
        flow_store,
        number_store,
        entitlements,
        number_service=numbers,
        validator=FlowValidator(settings),
    )

    return Services(
        settings=settings,
        flow_store=flow_store,
        number_store=number_store,
        entitlements=entitlements,
        provider=provider,
        numbers=numbers,
        flows=flows,
        compiler=FlowCompiler(settings),
        sessions=EditorSessionRegistry(settings.canvas),
        engine=engine,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_user_id(x_user_id: str = Header(..., alias="X-User-ID")) -> str:
    """Authenticated user id, injected by the auth gateway in front of us."""
    return x_user_id
