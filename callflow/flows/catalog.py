"""
Block palette and flow presets.
"""

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config import BlockType
from ..models import Block


@dataclass
class BlockDefinition:
    """Palette entry for a block type."""

    type: BlockType
    label: str
    description: str
    default_config: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "label": self.label,
            "description": self.description,
            "default_config": copy.deepcopy(self.default_config),
        }


BLOCK_DEFINITIONS: List[BlockDefinition] = [
    BlockDefinition(
        type=BlockType.SAY,
        label="Say Text",
        description="Speak a message to the caller",
        default_config={"text": "Hello! Welcome to our service.", "speed": 1.0},
    ),
    BlockDefinition(
        type=BlockType.GATHER,
        label="Menu/Gather",
        description="Present options and gather input",
        default_config={
            "prompt": "Press 1 for option A, or 2 for option B.",
            "maxRetries": 3,
            "retryMessage": "Sorry, I didn't understand. Please try again.",
            "goodbyeMessage": "Thank you for calling. Goodbye!",
            "options": [
                {"digit": "1", "action": "say", "text": "You selected option A", "blockId": ""},
                {"digit": "2", "action": "say", "text": "You selected option B", "blockId": ""},
            ],
        },
    ),
    BlockDefinition(
        type=BlockType.FORWARD,
        label="Forward Call",
        description="Transfer call to another number",
        default_config={"number": "", "timeout": 30},
    ),
    BlockDefinition(
        type=BlockType.MULTI_FORWARD,
        label="Multi-Forward",
        description="Ring several numbers simultaneously, in order, or by priority",
        default_config={
            "numbers": [],
            "forwardStrategy": "simultaneous",
            "ringTimeout": 20,
        },
    ),
    BlockDefinition(
        type=BlockType.RECORD,
        label="Record Message",
        description="Record caller's voicemail",
        default_config={
            "prompt": "Please leave your message after the beep.",
            "maxLength": 300,
            "finishOnKey": "#",
        },
    ),
    BlockDefinition(
        type=BlockType.PAUSE,
        label="Pause/Wait",
        description="Add a pause in the flow",
        default_config={"duration": 2},
    ),
    BlockDefinition(
        type=BlockType.PLAY,
        label="Play Audio",
        description="Play an audio file",
        default_config={"url": ""},
    ),
    BlockDefinition(
        type=BlockType.HOLD,
        label="Hold Music",
        description="Play music while the caller waits",
        default_config={
            "message": "Please hold while we connect you.",
            "musicType": "preset",
            "presetMusic": "classical",
            "musicUrl": "",
            "holdMusicLoop": 10,
        },
    ),
    BlockDefinition(
        type=BlockType.SMS,
        label="Send SMS",
        description="Text the caller",
        default_config={"message": "Thanks for calling! We'll be in touch."},
    ),
    BlockDefinition(
        type=BlockType.HANGUP,
        label="End Call",
        description="Hang up the call",
        default_config={},
    ),
]

_DEFINITIONS_BY_TYPE = {d.type: d for d in BLOCK_DEFINITIONS}


def default_config(block_type: BlockType) -> Dict[str, Any]:
    """Palette defaults for a new block of the given type."""
    return copy.deepcopy(_DEFINITIONS_BY_TYPE[block_type].default_config)


# =============================================================================
# Presets
# =============================================================================


PRESETS: List[Dict[str, Any]] = [
    {
        "id": "business-hours",
        "name": "Business Hours",
        "description": "Professional greeting with business hours info",
        "blocks": [
            {
                "id": "1",
                "type": "say",
                "config": {
                    "text": "Thank you for calling! Our business hours are Monday through Friday, 9 AM to 5 PM.",
                },
                "position": {"x": 100, "y": 100},
                "connections": ["2"],
            },
            {
                "id": "2",
                "type": "gather",
                "config": {
                    "prompt": "Press 1 to leave a message, or press 2 to hear our address.",
                    "options": [
                        {"digit": "1", "action": "record", "text": "Leave Message", "blockId": "3"},
                        {"digit": "2", "action": "say", "text": "Our address is 123 Main Street, Anytown USA."},
                    ],
                },
                "position": {"x": 400, "y": 100},
                "connections": [],
            },
            {
                "id": "3",
                "type": "record",
                "config": {"prompt": "Please leave your message after the beep."},
                "position": {"x": 700, "y": 100},
                "connections": [],
            },
        ],
    },
    {
        "id": "customer-support",
        "name": "Customer Support",
        "description": "Multi-level support menu with escalation",
        "blocks": [
            {
                "id": "1",
                "type": "say",
                "config": {"text": "Welcome to customer support! Your call is important to us."},
                "position": {"x": 100, "y": 100},
                "connections": ["2"],
            },
            {
                "id": "2",
                "type": "gather",
                "config": {
                    "prompt": "Press 1 for technical support, 2 for billing, 3 for sales, or 0 for an operator.",
                    "options": [
                        {"digit": "1", "action": "forward", "text": "Technical Support"},
                        {"digit": "2", "action": "forward", "text": "Billing Department"},
                        {"digit": "3", "action": "forward", "text": "Sales Team"},
                        {"digit": "0", "action": "multi_forward", "text": "Operator", "blockId": "3"},
                    ],
                },
                "position": {"x": 400, "y": 100},
                "connections": [],
            },
            {
                "id": "3",
                "type": "multi_forward",
                "config": {"numbers": [], "forwardStrategy": "sequential", "ringTimeout": 20},
                "position": {"x": 700, "y": 100},
                "connections": [],
            },
        ],
    },
    {
        "id": "test-call-flow",
        "name": "Test Call Flow",
        "description": "Simple flow to check a number end to end",
        "blocks": [
            {
                "id": "1",
                "type": "say",
                "config": {"text": "Hello! This is a test call flow. Press 1 to continue or 2 to end the call."},
                "position": {"x": 100, "y": 100},
                "connections": ["2"],
            },
            {
                "id": "2",
                "type": "gather",
                "config": {
                    "prompt": "Press 1 to hear a message, or press 2 to end the call.",
                    "options": [
                        {"digit": "1", "action": "say", "text": "Great! The call flow is working perfectly."},
                        {"digit": "2", "action": "hangup", "text": "Goodbye!", "blockId": "3"},
                    ],
                },
                "position": {"x": 400, "y": 100},
                "connections": [],
            },
            {
                "id": "3",
                "type": "say",
                "config": {"text": "Thank you for testing. Goodbye!"},
                "position": {"x": 700, "y": 100},
                "connections": ["4"],
            },
            {
                "id": "4",
                "type": "hangup",
                "config": {},
                "position": {"x": 1000, "y": 100},
                "connections": [],
            },
        ],
    },
]


def list_presets() -> List[Dict[str, Any]]:
    return [
        {"id": p["id"], "name": p["name"], "description": p["description"], "block_count": len(p["blocks"])}
        for p in PRESETS
    ]


def preset_blocks(preset_id: str) -> Optional[List[Block]]:
    """Fresh blocks for a preset, or None if the preset does not exist."""
    preset = next((p for p in PRESETS if p["id"] == preset_id), None)
    if preset is None:
        return None
    return [Block.from_dict(copy.deepcopy(b)) for b in preset["blocks"]]
