"""
Twilio voice webhooks.

Every voice route answers HTTP 200 with TwiML, whatever happens: an error
status would make the provider play its own generic failure message.
"""

import math
from typing import Any, Dict, Optional, Tuple

import structlog
from fastapi import APIRouter, Depends, Query, Request, Response

from ..models import Flow, PhoneNumber
from ..persistence.document import document_voice
from ..plans import has_minutes_left
from .dependencies import Services, get_services

logger = structlog.get_logger()

router = APIRouter(prefix="/voice", tags=["voice"])

NUMBER_NOT_CONFIGURED = "This number is not configured."
MINUTES_EXHAUSTED = "Your monthly minute limit has been reached. Please upgrade your plan."


def twiml(content: str) -> Response:
    return Response(content=content, media_type="application/xml")


async def _routing(services: Services, to_number: Optional[str]) -> Tuple[Optional[PhoneNumber], Optional[Flow]]:
    number = await services.number_store.get_by_phone(to_number) if to_number else None
    if number is None:
        return None, None
    return number, await services.flows.active_flow_for_number(number.id)


@router.post("/incoming")
async def incoming_call(
    request: Request,
    services: Services = Depends(get_services),
) -> Response:
    """Answer an inbound call with the number's active flow."""
    form_data = await request.form()
    data: Dict[str, Any] = dict(form_data)
    compiler = services.compiler

    logger.info(
        "Incoming call",
        call_sid=data.get("CallSid"),
        from_number=data.get("From"),
        to_number=data.get("To"),
    )

    try:
        number, flow = await _routing(services, data.get("To"))
        if number is None:
            logger.warning("Call to unknown number", to_number=data.get("To"))
            return twiml(compiler.error_response(message=NUMBER_NOT_CONFIGURED))

        entitlement = await services.entitlements.get(number.user_id)
        if not has_minutes_left(entitlement):
            logger.info("Call rejected, no minutes left", user_id=number.user_id)
            return twiml(compiler.error_response(message=MINUTES_EXHAUSTED))

        if flow is None:
            return twiml(compiler.default_greeting())

        return twiml(compiler.compile_document(flow.flow_config))
    except Exception as e:
        logger.exception("Failed to answer call", error=str(e))
        return twiml(compiler.error_response())


@router.post("/gather")
async def gather_input(
    request: Request,
    block_id: str = Query(default="", alias="blockId"),
    attempt: int = Query(default=0, ge=0),
    services: Services = Depends(get_services),
) -> Response:
    """Route digits collected by a gather block."""
    form_data = await request.form()
    data: Dict[str, Any] = dict(form_data)
    compiler = services.compiler

    try:
        _, flow = await _routing(services, data.get("To"))
        if flow is None:
            logger.warning("Gather input without an active flow", to_number=data.get("To"))
            return twiml(compiler.error_response(message=NUMBER_NOT_CONFIGURED))

        return twiml(
            compiler.compile_gather_input(
                services.flows.blocks_of(flow),
                block_id=block_id,
                digits=data.get("Digits"),
                attempt=attempt,
                voice=document_voice(flow.flow_config),
            )
        )
    except Exception as e:
        logger.exception("Failed to route gather input", block_id=block_id, error=str(e))
        return twiml(compiler.error_response())


@router.post("/record")
async def record_complete(
    request: Request,
    block_id: str = Query(default="", alias="blockId"),
    services: Services = Depends(get_services),
) -> Response:
    """Continue the flow after a record block has taken its message."""
    form_data = await request.form()
    data: Dict[str, Any] = dict(form_data)
    compiler = services.compiler

    logger.info(
        "Recording finished",
        call_sid=data.get("CallSid"),
        block_id=block_id,
        recording_url=data.get("RecordingUrl"),
        duration=data.get("RecordingDuration"),
    )

    try:
        _, flow = await _routing(services, data.get("To"))
        if flow is None:
            logger.warning("Recording without an active flow", to_number=data.get("To"))
            return twiml(compiler.error_response(message=NUMBER_NOT_CONFIGURED))

        return twiml(
            compiler.compile_after(
                services.flows.blocks_of(flow),
                block_id=block_id,
                voice=document_voice(flow.flow_config),
            )
        )
    except Exception as e:
        logger.exception("Failed to continue after recording", block_id=block_id, error=str(e))
        return twiml(compiler.error_response())


@router.post("/voicemail")
async def voicemail_complete(
    request: Request,
    services: Services = Depends(get_services),
) -> Response:
    """End the call once the forwarding fallback has taken a voicemail."""
    form_data = await request.form()
    data: Dict[str, Any] = dict(form_data)
    compiler = services.compiler

    logger.info(
        "Voicemail left",
        call_sid=data.get("CallSid"),
        recording_url=data.get("RecordingUrl"),
        duration=data.get("RecordingDuration"),
    )

    try:
        _, flow = await _routing(services, data.get("To"))
        voice = document_voice(flow.flow_config) if flow is not None else None
    except Exception as e:
        logger.exception("Failed to look up flow voice", error=str(e))
        voice = None
    return twiml(compiler.voicemail_complete(voice))


@router.post("/status")
async def call_status(
    request: Request,
    services: Services = Depends(get_services),
) -> Dict[str, str]:
    """Record usage when a call completes."""
    form_data = await request.form()
    data: Dict[str, Any] = dict(form_data)

    logger.info(
        "Call status callback",
        call_sid=data.get("CallSid"),
        status=data.get("CallStatus"),
        duration=data.get("CallDuration"),
    )

    if data.get("CallStatus") != "completed":
        return {"status": "ok"}

    try:
        seconds = int(data.get("CallDuration") or 0)
    except ValueError:
        logger.warning("Unparseable call duration", duration=data.get("CallDuration"))
        return {"status": "ok"}

    number = await services.number_store.get_by_phone(data.get("To") or "")
    if number is not None and seconds > 0:
        await services.entitlements.add_minutes(number.user_id, math.ceil(seconds / 60))

    return {"status": "ok"}


@router.post("/recording")
async def recording_status(request: Request) -> Dict[str, str]:
    form_data = await request.form()
    data: Dict[str, Any] = dict(form_data)
    logger.info(
        "Recording status",
        call_sid=data.get("CallSid"),
        recording_sid=data.get("RecordingSid"),
        recording_url=data.get("RecordingUrl"),
        status=data.get("RecordingStatus"),
    )
    return {"status": "ok"}


@router.post("/transcription")
async def transcription(request: Request) -> Dict[str, str]:
    form_data = await request.form()
    data: Dict[str, Any] = dict(form_data)
    logger.info(
        "Transcription received",
        call_sid=data.get("CallSid"),
        recording_sid=data.get("RecordingSid"),
        status=data.get("TranscriptionStatus"),
        text=data.get("TranscriptionText"),
    )
    return {"status": "ok"}
