"""Editor session routes.

Each route is a thin wrapper over one EditorSession operation; unknown block
ids are accepted and reported back through the returned snapshot.
"""

from fastapi import APIRouter, Depends, Response

from ..canvas.editor import EditorSession
from ..exceptions import NotFoundError
from ..flows.catalog import default_config, preset_blocks
from ..models import (
    AddBlockRequest,
    Block,
    ConnectingFromRequest,
    ConnectRequest,
    CreateSessionRequest,
    FlowResponse,
    Position,
    PositionModel,
    SaveSessionRequest,
    SessionResponse,
    UpdateBlockRequest,
)
from .dependencies import Services, get_services, get_user_id
from .flows import to_response

router = APIRouter(prefix="/editor/sessions", tags=["editor"])


def snapshot(session_id: str, session: EditorSession) -> SessionResponse:
    return SessionResponse(session_id=session_id, **session.to_dict())


@router.post("", response_model=SessionResponse, status_code=201)
async def open_session(
    request: CreateSessionRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> SessionResponse:
    """Open an editor, empty or loaded from a saved flow or preset."""
    blocks = None
    if request.preset_id:
        blocks = preset_blocks(request.preset_id)
        if blocks is None:
            raise NotFoundError("Preset", request.preset_id)

    session_id, session = services.sessions.open(user_id)

    if request.flow_id:
        try:
            await services.flows.load_into_session(user_id, request.flow_id, session)
        except Exception:
            services.sessions.close(session_id, user_id)
            raise
    elif blocks is not None:
        session.load(blocks)

    return snapshot(session_id, session)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> SessionResponse:
    return snapshot(session_id, services.sessions.get(session_id, user_id))


@router.delete("/{session_id}", status_code=204)
async def close_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> Response:
    services.sessions.close(session_id, user_id)
    return Response(status_code=204)


@router.post("/{session_id}/blocks", response_model=SessionResponse, status_code=201)
async def add_block(
    session_id: str,
    request: AddBlockRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> SessionResponse:
    """Add a block from the palette; request config overrides palette defaults."""
    session = services.sessions.get(session_id, user_id)
    config = {**default_config(request.type), **(request.config or {})}
    block = Block.create(request.type, config=config, block_id=request.id)
    position = Position(x=request.position.x, y=request.position.y) if request.position else None
    session.add_block(block, position=position)
    return snapshot(session_id, session)


@router.patch("/{session_id}/blocks/{block_id}", response_model=SessionResponse)
async def update_block(
    session_id: str,
    block_id: str,
    request: UpdateBlockRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> SessionResponse:
    session = services.sessions.get(session_id, user_id)
    session.update_block(block_id, request.config)
    return snapshot(session_id, session)


@router.put("/{session_id}/blocks/{block_id}/position", response_model=SessionResponse)
async def move_block(
    session_id: str,
    block_id: str,
    request: PositionModel,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> SessionResponse:
    session = services.sessions.get(session_id, user_id)
    session.move_block(block_id, request.x, request.y)
    return snapshot(session_id, session)


@router.delete("/{session_id}/blocks/{block_id}", response_model=SessionResponse)
async def delete_block(
    session_id: str,
    block_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> SessionResponse:
    session = services.sessions.get(session_id, user_id)
    session.delete_block(block_id)
    return snapshot(session_id, session)


@router.post("/{session_id}/blocks/{block_id}/click", response_model=SessionResponse)
async def click_block(
    session_id: str,
    block_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> SessionResponse:
    session = services.sessions.get(session_id, user_id)
    session.click_block(block_id)
    return snapshot(session_id, session)


@router.post("/{session_id}/connections", response_model=SessionResponse)
async def connect_blocks(
    session_id: str,
    request: ConnectRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> SessionResponse:
    session = services.sessions.get(session_id, user_id)
    session.connect_blocks(request.source_id, request.target_id)
    return snapshot(session_id, session)


@router.delete("/{session_id}/connections", response_model=SessionResponse)
async def disconnect_blocks(
    session_id: str,
    request: ConnectRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> SessionResponse:
    session = services.sessions.get(session_id, user_id)
    session.disconnect_blocks(request.source_id, request.target_id)
    return snapshot(session_id, session)


@router.put("/{session_id}/connecting-from", response_model=SessionResponse)
async def set_connecting_from(
    session_id: str,
    request: ConnectingFromRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> SessionResponse:
    session = services.sessions.get(session_id, user_id)
    session.set_connecting_from(request.block_id)
    return snapshot(session_id, session)


@router.post("/{session_id}/reset", response_model=SessionResponse)
async def reset_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> SessionResponse:
    session = services.sessions.get(session_id, user_id)
    session.reset_editor()
    return snapshot(session_id, session)


@router.post("/{session_id}/save", response_model=FlowResponse)
async def save_session(
    session_id: str,
    request: SaveSessionRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> FlowResponse:
    """Save the session as a flow."""
    session = services.sessions.get(session_id, user_id)
    flow = await services.flows.save_session(
        user_id,
        session,
        flow_name=request.flow_name,
        twilio_number_id=request.twilio_number_id,
        voice=request.voice,
    )
    return to_response(flow)
