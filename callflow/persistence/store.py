"""
Repository interfaces for flows and phone numbers.

Storage is the only asynchronous boundary of the core. Writes are whole-record
upserts; two sessions saving the same flow resolve as last writer wins.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models import Flow, PhoneNumber


class FlowStore(ABC):
    """Persistent storage for flows."""

    @abstractmethod
    async def get(self, flow_id: str) -> Optional[Flow]:
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[Flow]:
        """Flows owned by a user, newest first."""
        pass

    @abstractmethod
    async def list_for_number(self, twilio_number_id: str) -> List[Flow]:
        pass

    @abstractmethod
    async def save(self, flow: Flow) -> Flow:
        """Insert or replace a flow."""
        pass

    @abstractmethod
    async def delete(self, flow_id: str) -> bool:
        pass

    async def get_active_for_number(self, twilio_number_id: str) -> Optional[Flow]:
        """The number's active flow; the most recently saved one if several are."""
        active = [f for f in await self.list_for_number(twilio_number_id) if f.is_active]
        if not active:
            return None
        return max(active, key=lambda f: f.updated_at)

    async def delete_for_number(self, twilio_number_id: str) -> int:
        flows = await self.list_for_number(twilio_number_id)
        for flow in flows:
            await self.delete(flow.id)
        return len(flows)


class NumberStore(ABC):
    """Persistent storage for purchased phone numbers."""

    @abstractmethod
    async def get(self, number_id: str) -> Optional[PhoneNumber]:
        pass

    @abstractmethod
    async def get_by_phone(self, phone_number: str) -> Optional[PhoneNumber]:
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[PhoneNumber]:
        pass

    @abstractmethod
    async def add(self, number: PhoneNumber) -> PhoneNumber:
        pass

    @abstractmethod
    async def delete(self, number_id: str) -> bool:
        pass

    async def count_for_user(self, user_id: str) -> int:
        return len(await self.list_for_user(user_id))
