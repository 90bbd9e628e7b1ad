"""Flow CRUD routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from ..models import (
    Block,
    BlockPayload,
    Flow,
    FlowListResponse,
    FlowResponse,
    SaveFlowRequest,
    UpdateFlowRequest,
    ValidateFlowResponse,
)
from ..persistence.document import document_voice
from .dependencies import Services, get_services, get_user_id

router = APIRouter(prefix="/flows", tags=["flows"])


def to_blocks(payloads: List[BlockPayload]) -> List[Block]:
    return [
        Block.from_dict({
            "id": p.id,
            "type": p.type,
            "config": p.config,
            "position": p.position.model_dump() if p.position else None,
            "connections": p.connections,
        })
        for p in payloads
    ]


def to_response(flow: Flow) -> FlowResponse:
    data = flow.to_dict()
    return FlowResponse(
        id=data["id"],
        flow_name=data["flow_name"],
        flow_config=data["flow_config"],
        twilio_number_id=data["twilio_number_id"],
        is_active=data["is_active"],
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )


@router.get("", response_model=FlowListResponse)
async def list_flows(
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> FlowListResponse:
    """List the caller's flows."""
    flows = await services.flows.list_flows(user_id)
    return FlowListResponse(flows=[to_response(f) for f in flows], total=len(flows))


@router.post("", response_model=FlowResponse, status_code=201)
async def create_flow(
    request: SaveFlowRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> FlowResponse:
    """Create a flow from a full block graph."""
    flow = await services.flows.create_flow(
        user_id=user_id,
        flow_name=request.flow_name,
        twilio_number_id=request.twilio_number_id,
        blocks=to_blocks(request.blocks),
        voice=request.voice,
        is_active=request.is_active,
    )
    return to_response(flow)


@router.get("/{flow_id}", response_model=FlowResponse)
async def get_flow(
    flow_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> FlowResponse:
    """Get a flow by ID."""
    return to_response(await services.flows.get_flow(user_id, flow_id))


@router.put("/{flow_id}", response_model=FlowResponse)
async def update_flow(
    flow_id: str,
    request: UpdateFlowRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> FlowResponse:
    """Update a flow."""
    flow = await services.flows.update_flow(
        user_id=user_id,
        flow_id=flow_id,
        flow_name=request.flow_name,
        twilio_number_id=request.twilio_number_id,
        blocks=to_blocks(request.blocks) if request.blocks is not None else None,
        voice=request.voice,
        is_active=request.is_active,
    )
    return to_response(flow)


@router.delete("/{flow_id}", status_code=204)
async def delete_flow(
    flow_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> Response:
    """Delete a flow."""
    await services.flows.delete_flow(user_id, flow_id)
    return Response(status_code=204)


@router.post("/{flow_id}/validate", response_model=ValidateFlowResponse)
async def validate_flow(
    flow_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> ValidateFlowResponse:
    """Validate a saved flow."""
    result = await services.flows.validate_flow(user_id, flow_id)
    return ValidateFlowResponse(
        valid=result.valid,
        errors=[i.to_dict() for i in result.errors],
        warnings=[i.to_dict() for i in result.warnings],
    )


@router.get("/{flow_id}/twiml")
async def preview_twiml(
    flow_id: str,
    entry: Optional[str] = Query(default=None, description="Block to start from"),
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> Response:
    """Compile a saved flow the way an inbound call would see it."""
    flow = await services.flows.get_flow(user_id, flow_id)
    twiml = services.compiler.compile(
        services.flows.blocks_of(flow),
        entry_id=entry,
        voice=document_voice(flow.flow_config),
    )
    return Response(content=twiml, media_type="application/xml")
