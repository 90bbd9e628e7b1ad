"""
Flow Service.

Saves, loads and retires call flows. Saving validates the graph, checks the
plan gate, serializes the graph into a versioned document, and keeps at most
one active flow per phone number.
"""

from datetime import datetime
from typing import Iterable, List, Optional
import uuid

import structlog

from ..canvas.editor import EditorSession
from ..canvas.validator import FlowValidator
from ..exceptions import NotFoundError
from ..models import Block, Flow, ValidationResult
from ..persistence.document import deserialize, document_voice, serialize
from ..persistence.store import FlowStore, NumberStore
from ..plans import EntitlementStore
from ..telephony.service import PhoneNumberService

logger = structlog.get_logger()


class FlowService:
    """
    Manages the flow lifecycle.

    Features:
    - Flow CRUD operations
    - Saving straight from an editor session
    - One active flow per phone number
    - Webhook sync after save
    """

    def __init__(
        self,
        flows: FlowStore,
        numbers: NumberStore,
        entitlements: EntitlementStore,
        number_service: Optional[PhoneNumberService] = None,
        validator: Optional[FlowValidator] = None,
    ):
        self.flows = flows
        self.numbers = numbers
        self.entitlements = entitlements
        self.number_service = number_service
        self.validator = validator or FlowValidator()
        self.logger = logger.bind(component="flow_service")

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_flow(self, user_id: str, flow_id: str) -> Flow:
        """
        Get a flow owned by the user.

        Raises:
            NotFoundError: If the flow does not exist or belongs to someone else
        """
        flow = await self.flows.get(flow_id)
        if flow is None or flow.user_id != user_id:
            raise NotFoundError("Flow", flow_id)
        return flow

    async def list_flows(self, user_id: str) -> List[Flow]:
        return await self.flows.list_for_user(user_id)

    async def active_flow_for_number(self, twilio_number_id: str) -> Optional[Flow]:
        return await self.flows.get_active_for_number(twilio_number_id)

    def blocks_of(self, flow: Flow) -> List[Block]:
        """Blocks of a stored flow, upgraded from older formats as needed."""
        return deserialize(flow.flow_config)

    async def validate_flow(self, user_id: str, flow_id: str) -> ValidationResult:
        flow = await self.get_flow(user_id, flow_id)
        return self.validator.validate_for_save(
            flow.flow_name,
            flow.twilio_number_id,
            self.blocks_of(flow),
        )

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_flow(
        self,
        user_id: str,
        flow_name: str,
        twilio_number_id: Optional[str],
        blocks: Iterable[Block],
        voice: str = "alice",
        is_active: bool = True,
    ) -> Flow:
        """
        Create a new flow.

        Args:
            user_id: Owner
            flow_name: Display name
            twilio_number_id: Number the flow answers
            blocks: Flow graph, entry block first
            voice: Voice for spoken verbs
            is_active: Whether the flow answers calls right away

        Returns:
            Created Flow

        Raises:
            FlowValidationError: If the flow cannot be saved as given
            PermissionDeniedError: If the plan does not allow it
        """
        return await self._persist(
            user_id=user_id,
            flow=None,
            flow_name=flow_name,
            twilio_number_id=twilio_number_id,
            blocks=list(blocks),
            voice=voice,
            is_active=is_active,
        )

    async def update_flow(
        self,
        user_id: str,
        flow_id: str,
        flow_name: Optional[str] = None,
        twilio_number_id: Optional[str] = None,
        blocks: Optional[Iterable[Block]] = None,
        voice: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Flow:
        """Update a flow; omitted fields keep their stored values."""
        flow = await self.get_flow(user_id, flow_id)
        return await self._persist(
            user_id=user_id,
            flow=flow,
            flow_name=flow_name if flow_name is not None else flow.flow_name,
            twilio_number_id=twilio_number_id or flow.twilio_number_id,
            blocks=list(blocks) if blocks is not None else self.blocks_of(flow),
            voice=voice or document_voice(flow.flow_config),
            is_active=flow.is_active if is_active is None else is_active,
        )

    async def save_session(
        self,
        user_id: str,
        session: EditorSession,
        flow_name: Optional[str] = None,
        twilio_number_id: Optional[str] = None,
        voice: Optional[str] = None,
    ) -> Flow:
        """Save an editor session as a new flow or over the flow it was loaded from."""
        if flow_name is not None:
            session.flow_name = flow_name
        if twilio_number_id is not None:
            session.twilio_number_id = twilio_number_id
        if voice is not None:
            session.voice = voice

        existing = None
        if session.current_flow is not None:
            existing = await self.get_flow(user_id, session.current_flow.id)

        saved = await self._persist(
            user_id=user_id,
            flow=existing,
            flow_name=session.flow_name,
            twilio_number_id=session.twilio_number_id,
            blocks=session.blocks,
            voice=session.voice,
            is_active=existing.is_active if existing else True,
        )
        session.current_flow = saved
        return saved

    async def load_into_session(self, user_id: str, flow_id: str, session: EditorSession) -> Flow:
        flow = await self.get_flow(user_id, flow_id)
        session.load(
            self.blocks_of(flow),
            flow_name=flow.flow_name,
            twilio_number_id=flow.twilio_number_id,
            voice=document_voice(flow.flow_config),
            flow=flow,
        )
        return flow

    async def delete_flow(self, user_id: str, flow_id: str) -> None:
        await self.get_flow(user_id, flow_id)
        await self.flows.delete(flow_id)
        self.logger.info("Deleted flow", flow_id=flow_id, user_id=user_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _persist(
        self,
        user_id: str,
        flow: Optional[Flow],
        flow_name: str,
        twilio_number_id: Optional[str],
        blocks: List[Block],
        voice: str,
        is_active: bool,
    ) -> Flow:
        self.validator.ensure_valid(flow_name, twilio_number_id, blocks)

        number = await self.numbers.get(twilio_number_id)
        owned = await self.numbers.count_for_user(user_id)
        await self.entitlements.require_flow_access(user_id, number, owned)

        now = datetime.utcnow()
        document = serialize(flow_name, voice, blocks)

        if flow is None:
            flow = Flow(
                id=str(uuid.uuid4()),
                user_id=user_id,
                flow_name=flow_name.strip(),
                flow_config=document,
                twilio_number_id=twilio_number_id,
                is_active=is_active,
                created_at=now,
                updated_at=now,
            )
        else:
            flow.flow_name = flow_name.strip()
            flow.flow_config = document
            flow.twilio_number_id = twilio_number_id
            flow.is_active = is_active
            flow.updated_at = now

        await self.flows.save(flow)
        if flow.is_active:
            await self._deactivate_others(flow)

        self.logger.info(
            "Saved flow",
            flow_id=flow.id,
            flow_name=flow.flow_name,
            blocks=len(blocks),
            active=flow.is_active,
        )

        if self.number_service is not None:
            await self.number_service.sync_webhooks(number)

        return flow

    async def _deactivate_others(self, flow: Flow) -> None:
        for other in await self.flows.list_for_number(flow.twilio_number_id):
            if other.id != flow.id and other.is_active:
                other.is_active = False
                other.updated_at = datetime.utcnow()
                await self.flows.save(other)
                self.logger.info(
                    "Deactivated flow",
                    flow_id=other.id,
                    twilio_number_id=flow.twilio_number_id,
                )
