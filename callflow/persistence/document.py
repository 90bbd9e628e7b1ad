"""
Flow document serialization.

Stored documents carry an explicit schema version. Reading a document first
determines its version, then runs one upgrader per historical version until
the document is current, then parses the blocks.

Version history:
    1.0  Pre-graph shape: {greeting, menu, forward, voicemail}, no blocks.
    2.0  Block graph: {voice, blocks, version}.
"""

import copy
from typing import Any, Callable, Dict, Iterable, List, Optional

import structlog

from ..exceptions import FlowFormatError
from ..models import Block

logger = structlog.get_logger()

CURRENT_VERSION = "2.0"
LEGACY_VERSION = "1.0"

DEFAULT_VOICE = "alice"
LEGACY_VOICEMAIL_PROMPT = "Please leave a message after the beep."


def serialize(flow_name: Optional[str], voice: Optional[str], blocks: Iterable[Block]) -> Dict[str, Any]:
    """
    Build the stored flow document.

    The flow name lives on the flow record itself, not in the document.
    """
    return {
        "voice": voice or DEFAULT_VOICE,
        "blocks": [block.to_dict() for block in blocks],
        "version": CURRENT_VERSION,
    }


def detect_version(document: Dict[str, Any]) -> str:
    """Determine the schema version of a stored document."""
    version = document.get("version")
    if version is not None:
        return str(version)
    if "blocks" in document:
        # Early graph documents were written without a version tag
        return CURRENT_VERSION
    return LEGACY_VERSION


def _upgrade_from_v1(document: Dict[str, Any]) -> Dict[str, Any]:
    """Turn the pre-graph shape into a linear stack of unconnected blocks."""
    blocks: List[Dict[str, Any]] = []
    y = 100

    def stack(block_id: str, block_type: str, config: Dict[str, Any]) -> None:
        nonlocal y
        blocks.append({
            "id": block_id,
            "type": block_type,
            "config": config,
            "position": {"x": 100, "y": y},
            "connections": [],
        })
        y += 100

    greeting = document.get("greeting")
    if greeting:
        stack("1", "say", {"text": greeting})

    menu = document.get("menu")
    if menu:
        stack("2", "gather", {
            "prompt": menu.get("prompt", ""),
            "options": [
                {**option, "blockId": ""}
                for option in (menu.get("options") or [])
            ],
        })

    forward = document.get("forward")
    if forward and forward.get("number"):
        stack("3", "forward", {"number": forward["number"], "timeout": 30})

    voicemail = document.get("voicemail")
    if voicemail:
        stack("4", "record", {
            "prompt": voicemail.get("prompt") or LEGACY_VOICEMAIL_PROMPT,
            "maxLength": 300,
            "finishOnKey": "#",
        })

    return {
        "voice": document.get("voice") or DEFAULT_VOICE,
        "blocks": blocks,
        "version": "2.0",
    }


# Upgrader per historical version; each returns the next version's shape
UPGRADERS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    LEGACY_VERSION: _upgrade_from_v1,
}


def upgrade_document(document: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Bring a stored document up to the current schema version.

    Args:
        document: Stored flow_config, in any known version

    Returns:
        A new document at CURRENT_VERSION; the input is not modified

    Raises:
        FlowFormatError: If the document is not a mapping or its version
            is unknown
    """
    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise FlowFormatError(f"Flow document must be an object, got {type(document).__name__}")

    upgraded = copy.deepcopy(document)
    version = detect_version(upgraded)

    while version != CURRENT_VERSION:
        upgrader = UPGRADERS.get(version)
        if upgrader is None:
            raise FlowFormatError(f"Unsupported flow document version: {version}", version=version)
        upgraded = upgrader(upgraded)
        logger.info("Upgraded flow document", from_version=version, to_version=detect_version(upgraded))
        version = detect_version(upgraded)

    upgraded.setdefault("voice", DEFAULT_VOICE)
    upgraded.setdefault("blocks", [])
    upgraded["version"] = CURRENT_VERSION
    return upgraded


def deserialize(document: Optional[Dict[str, Any]]) -> List[Block]:
    """
    Parse the blocks of a stored document, upgrading it first if needed.

    Raises:
        FlowFormatError: For unknown versions or malformed blocks
    """
    current = upgrade_document(document)
    blocks = current["blocks"]
    if not isinstance(blocks, list):
        raise FlowFormatError("Flow document 'blocks' must be a list")
    return [Block.from_dict(item) for item in blocks]


def document_voice(document: Optional[Dict[str, Any]]) -> str:
    if isinstance(document, dict) and document.get("voice"):
        return str(document["voice"])
    return DEFAULT_VOICE
