"""In-memory repositories (replace with the database backend in production)."""

import copy
from typing import Dict, List, Optional

from ..models import Flow, PhoneNumber
from .store import FlowStore, NumberStore


class InMemoryFlowStore(FlowStore):
    """Flows kept in a dict. Records are copied in and out."""

    def __init__(self):
        self._flows: Dict[str, Flow] = {}

    async def get(self, flow_id: str) -> Optional[Flow]:
        flow = self._flows.get(flow_id)
        return copy.deepcopy(flow) if flow else None

    async def list_for_user(self, user_id: str) -> List[Flow]:
        flows = [f for f in self._flows.values() if f.user_id == user_id]
        flows.sort(key=lambda f: f.created_at, reverse=True)
        return [copy.deepcopy(f) for f in flows]

    async def list_for_number(self, twilio_number_id: str) -> List[Flow]:
        return [
            copy.deepcopy(f)
            for f in self._flows.values()
            if f.twilio_number_id == twilio_number_id
        ]

    async def save(self, flow: Flow) -> Flow:
        self._flows[flow.id] = copy.deepcopy(flow)
        return flow

    async def delete(self, flow_id: str) -> bool:
        return self._flows.pop(flow_id, None) is not None


class InMemoryNumberStore(NumberStore):
    """Phone numbers kept in a dict."""

    def __init__(self):
        self._numbers: Dict[str, PhoneNumber] = {}

    async def get(self, number_id: str) -> Optional[PhoneNumber]:
        return self._numbers.get(number_id)

    async def get_by_phone(self, phone_number: str) -> Optional[PhoneNumber]:
        for number in self._numbers.values():
            if number.phone_number == phone_number:
                return number
        return None

    async def list_for_user(self, user_id: str) -> List[PhoneNumber]:
        return [n for n in self._numbers.values() if n.user_id == user_id]

    async def add(self, number: PhoneNumber) -> PhoneNumber:
        self._numbers[number.id] = number
        return number

    async def delete(self, number_id: str) -> bool:
        return self._numbers.pop(number_id, None) is not None
