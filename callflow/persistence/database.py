"""Database models and SQLAlchemy-backed repositories."""

from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    JSON,
    String,
    delete,
    select,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.sql import func

from ..config import NumberStatus
from ..models import Flow, PhoneNumber
from .store import FlowStore, NumberStore


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class PhoneNumberRecord(Base):
    """Purchased phone number."""
    __tablename__ = "twilio_numbers"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    phone_number = Column(String(20), nullable=False, unique=True)
    friendly_name = Column(String(255), nullable=True)
    twilio_sid = Column(String(64), nullable=False)
    capabilities = Column(JSON, default=dict)
    status = Column(String(20), default=NumberStatus.ACTIVE.value)
    created_at = Column(DateTime, server_default=func.now())


class CallFlowRecord(Base):
    """Saved call flow."""
    __tablename__ = "call_flows"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    flow_name = Column(String(255), nullable=False)
    flow_config = Column(JSON, nullable=False)
    twilio_number_id = Column(
        String(36),
        ForeignKey("twilio_numbers.id", ondelete="CASCADE"),
        nullable=True,
    )
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_call_flows_number_active", "twilio_number_id", "is_active"),
    )


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, upgrading plain sqlite URLs to aiosqlite."""
    if database_url.startswith("sqlite://"):
        database_url = database_url.replace("sqlite://", "sqlite+aiosqlite://")
    return create_async_engine(database_url, echo=echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _to_flow(record: CallFlowRecord) -> Flow:
    return Flow(
        id=record.id,
        user_id=record.user_id,
        flow_name=record.flow_name,
        flow_config=record.flow_config,
        twilio_number_id=record.twilio_number_id,
        is_active=bool(record.is_active),
        created_at=record.created_at,
        updated_at=record.updated_at or record.created_at,
    )


def _to_number(record: PhoneNumberRecord) -> PhoneNumber:
    return PhoneNumber(
        id=record.id,
        user_id=record.user_id,
        phone_number=record.phone_number,
        twilio_sid=record.twilio_sid,
        friendly_name=record.friendly_name,
        capabilities=record.capabilities or {},
        status=NumberStatus(record.status),
        created_at=record.created_at,
    )


class DatabaseFlowStore(FlowStore):
    """Flows stored through SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get(self, flow_id: str) -> Optional[Flow]:
        async with self._session_factory() as session:
            record = await session.get(CallFlowRecord, flow_id)
            return _to_flow(record) if record else None

    async def list_for_user(self, user_id: str) -> List[Flow]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CallFlowRecord)
                .where(CallFlowRecord.user_id == user_id)
                .order_by(CallFlowRecord.created_at.desc())
            )
            return [_to_flow(r) for r in result.scalars()]

    async def list_for_number(self, twilio_number_id: str) -> List[Flow]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CallFlowRecord).where(CallFlowRecord.twilio_number_id == twilio_number_id)
            )
            return [_to_flow(r) for r in result.scalars()]

    async def save(self, flow: Flow) -> Flow:
        async with self._session_factory() as session:
            try:
                await session.merge(
                    CallFlowRecord(
                        id=flow.id,
                        user_id=flow.user_id,
                        flow_name=flow.flow_name,
                        flow_config=flow.flow_config,
                        twilio_number_id=flow.twilio_number_id,
                        is_active=flow.is_active,
                        created_at=flow.created_at,
                        updated_at=flow.updated_at,
                    )
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        return flow

    async def delete(self, flow_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(delete(CallFlowRecord).where(CallFlowRecord.id == flow_id))
            await session.commit()
            return result.rowcount > 0


class DatabaseNumberStore(NumberStore):
    """Phone numbers stored through SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get(self, number_id: str) -> Optional[PhoneNumber]:
        async with self._session_factory() as session:
            record = await session.get(PhoneNumberRecord, number_id)
            return _to_number(record) if record else None

    async def get_by_phone(self, phone_number: str) -> Optional[PhoneNumber]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PhoneNumberRecord).where(PhoneNumberRecord.phone_number == phone_number)
            )
            record = result.scalar_one_or_none()
            return _to_number(record) if record else None

    async def list_for_user(self, user_id: str) -> List[PhoneNumber]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PhoneNumberRecord).where(PhoneNumberRecord.user_id == user_id)
            )
            return [_to_number(r) for r in result.scalars()]

    async def add(self, number: PhoneNumber) -> PhoneNumber:
        async with self._session_factory() as session:
            try:
                session.add(
                    PhoneNumberRecord(
                        id=number.id,
                        user_id=number.user_id,
                        phone_number=number.phone_number,
                        friendly_name=number.friendly_name,
                        twilio_sid=number.twilio_sid,
                        capabilities=number.capabilities,
                        status=number.status.value,
                        created_at=number.created_at,
                    )
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        return number

    async def delete(self, number_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(delete(PhoneNumberRecord).where(PhoneNumberRecord.id == number_id))
            await session.commit()
            return result.rowcount > 0
