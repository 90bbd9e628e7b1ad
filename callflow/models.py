"""
Data Models for the Call Flow service.

Block configs form a tagged union: one dataclass per BlockType, looked up
through CONFIG_TYPES. The wire format (what the editor sends and what is
stored in flow documents) uses camelCase keys; attributes are snake_case.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type, Union, get_args, get_origin, get_type_hints
import copy
import uuid

from pydantic import BaseModel, Field

from .config import BlockType, EdgeKind, ForwardStrategy, MusicType, NumberStatus
from .exceptions import FlowFormatError


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _dump(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_dump(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


def _load(hint: Any, value: Any, key: str) -> Any:
    """Coerce a wire value to the annotated attribute type."""
    if get_origin(hint) is Union:
        if value is None:
            return None
        hint = next(arg for arg in get_args(hint) if arg is not type(None))

    try:
        if get_origin(hint) in (list, List):
            (item_hint,) = get_args(hint)
            if value is None:
                return []
            if isinstance(value, str) and item_hint is str:
                # Comma-separated form, as submitted by plain HTML forms
                value = [part for part in (p.strip() for p in value.split(",")) if part]
            if not isinstance(value, (list, tuple)):
                raise FlowFormatError(f"Invalid value for '{key}': expected a list, got {value!r}")
            return [_load(item_hint, item, key) for item in value]
        if isinstance(hint, type) and issubclass(hint, Enum):
            return hint(value)
        if hint is MenuOption:
            return MenuOption.from_dict(value)
        if hint is bool:
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if hint in (int, float):
            return hint(value)
        if hint is str:
            return "" if value is None else str(value)
    except (TypeError, ValueError) as e:
        raise FlowFormatError(f"Invalid value for '{key}': {value!r}") from e
    return value


# =============================================================================
# Block Config Variants
# =============================================================================


@dataclass
class MenuOption:
    """A digit choice inside a gather block."""

    digit: str
    text: str = ""
    action: str = ""
    block_id: str = ""  # Empty means "no connection"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "digit": self.digit,
            "text": self.text,
            "action": self.action,
            "blockId": self.block_id,
        }

    @classmethod
    def from_dict(cls, data: Union["MenuOption", Dict[str, Any]]) -> "MenuOption":
        if isinstance(data, MenuOption):
            return data
        if not isinstance(data, dict):
            raise FlowFormatError(f"Invalid menu option: {data!r}")
        block_id = data.get("blockId", data.get("block_id"))
        return cls(
            digit=str(data.get("digit", "")).strip(),
            text=str(data.get("text") or ""),
            action=str(data.get("action") or ""),
            block_id=str(block_id) if block_id else "",
        )


@dataclass
class BlockConfig:
    """Base class for per-type block configuration."""

    block_type: ClassVar[BlockType]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            data[_camel(f.name)] = _dump(value)
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]] = None) -> "BlockConfig":
        """Build a config from wire-named or attribute-named keys."""
        data = data or {}
        hints = get_type_hints(cls)
        kwargs = {}
        for f in fields(cls):
            for key in (_camel(f.name), f.name):
                if key in data:
                    if data[key] is not None:  # null falls back to the default
                        kwargs[f.name] = _load(hints[f.name], data[key], key)
                    break
        return cls(**kwargs)

    def merged(self, updates: Dict[str, Any]) -> "BlockConfig":
        """Return a copy with the given updates applied on top."""
        normalized = {_camel(key): value for key, value in updates.items()}
        return type(self).from_dict({**self.to_dict(), **normalized})


@dataclass
class SayConfig(BlockConfig):
    block_type: ClassVar[BlockType] = BlockType.SAY

    text: str = ""
    speed: float = 1.0


@dataclass
class GatherConfig(BlockConfig):
    block_type: ClassVar[BlockType] = BlockType.GATHER

    prompt: str = ""
    max_retries: int = 3
    retry_message: str = "Sorry, I didn't understand. Please try again."
    goodbye_message: str = "Thank you for calling. Goodbye!"
    options: List[MenuOption] = field(default_factory=list)

    def option_for(self, digit: str) -> Optional[MenuOption]:
        for option in self.options:
            if option.digit == digit:
                return option
        return None


@dataclass
class ForwardConfig(BlockConfig):
    block_type: ClassVar[BlockType] = BlockType.FORWARD

    number: str = ""
    timeout: int = 30
    hold_music_url: Optional[str] = None
    hold_music_loop: int = 1


@dataclass
class MultiForwardConfig(BlockConfig):
    block_type: ClassVar[BlockType] = BlockType.MULTI_FORWARD

    numbers: List[str] = field(default_factory=list)
    forward_strategy: ForwardStrategy = ForwardStrategy.SIMULTANEOUS
    ring_timeout: int = 20

    @property
    def dialable_numbers(self) -> List[str]:
        return [n.strip() for n in self.numbers if n and n.strip()]


@dataclass
class RecordConfig(BlockConfig):
    block_type: ClassVar[BlockType] = BlockType.RECORD

    prompt: str = "Please leave a message after the beep."
    max_length: int = 300
    finish_on_key: str = "#"
    transcribe: bool = True


@dataclass
class PauseConfig(BlockConfig):
    block_type: ClassVar[BlockType] = BlockType.PAUSE

    duration: int = 2


@dataclass
class PlayConfig(BlockConfig):
    block_type: ClassVar[BlockType] = BlockType.PLAY

    url: str = ""
    loop: int = 1


@dataclass
class HangupConfig(BlockConfig):
    block_type: ClassVar[BlockType] = BlockType.HANGUP


@dataclass
class SmsConfig(BlockConfig):
    block_type: ClassVar[BlockType] = BlockType.SMS

    message: str = ""
    to: Optional[str] = None  # Defaults to the caller


@dataclass
class HoldConfig(BlockConfig):
    block_type: ClassVar[BlockType] = BlockType.HOLD

    message: str = "Please hold while we connect you."
    music_type: MusicType = MusicType.PRESET
    preset_music: str = "classical"
    music_url: str = ""
    hold_music_loop: int = 10


CONFIG_TYPES: Dict[BlockType, Type[BlockConfig]] = {
    cls.block_type: cls
    for cls in (
        SayConfig,
        GatherConfig,
        ForwardConfig,
        MultiForwardConfig,
        RecordConfig,
        PauseConfig,
        PlayConfig,
        HangupConfig,
        SmsConfig,
        HoldConfig,
    )
}


# =============================================================================
# Graph Models
# =============================================================================


@dataclass
class Position:
    """Editor coordinates. Presentation only."""

    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Position":
        data = data or {}
        if not isinstance(data, dict):
            raise FlowFormatError(f"Invalid block position: {data!r}")
        try:
            return cls(x=float(data.get("x", 0)), y=float(data.get("y", 0)))
        except (TypeError, ValueError) as e:
            raise FlowFormatError(f"Invalid block position: {data!r}") from e


@dataclass
class Block:
    """A node in the call flow graph."""

    id: str
    type: BlockType
    config: BlockConfig = None
    position: Position = field(default_factory=Position)
    connections: List[str] = field(default_factory=list)  # Ordered set

    def __post_init__(self):
        if not isinstance(self.type, BlockType):
            try:
                self.type = BlockType(self.type)
            except ValueError as e:
                raise FlowFormatError(f"Unknown block type: {self.type!r}") from e

        config_cls = CONFIG_TYPES[self.type]
        if self.config is None or isinstance(self.config, dict):
            self.config = config_cls.from_dict(self.config)
        elif not isinstance(self.config, config_cls):
            raise FlowFormatError(
                f"Block '{self.id}' of type {self.type.value} cannot carry "
                f"{type(self.config).__name__}"
            )

        if isinstance(self.position, dict):
            self.position = Position.from_dict(self.position)
        if isinstance(self.connections, str):
            self.connections = [self.connections]
        if not isinstance(self.connections, (list, tuple)):
            raise FlowFormatError(f"Block '{self.id}' connections must be a list: {self.connections!r}")
        self.connections = list(dict.fromkeys(str(c) for c in self.connections if c))

    @classmethod
    def create(
        cls,
        block_type: Union[BlockType, str],
        config: Optional[Union[BlockConfig, Dict[str, Any]]] = None,
        block_id: Optional[str] = None,
        position: Optional[Position] = None,
    ) -> "Block":
        return cls(
            id=block_id or str(uuid.uuid4()),
            type=block_type,
            config=config,
            position=position or Position(),
        )

    @property
    def option_targets(self) -> List[str]:
        if isinstance(self.config, GatherConfig):
            return [o.block_id for o in self.config.options if o.block_id]
        return []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "config": self.config.to_dict(),
            "position": self.position.to_dict(),
            "connections": list(self.connections),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Block":
        if not isinstance(data, dict) or "type" not in data:
            raise FlowFormatError(f"Malformed block: {data!r}")
        block_id = data.get("id")
        return cls(
            id=str(block_id) if block_id not in (None, "") else str(uuid.uuid4()),
            type=data["type"],
            config=copy.copy(data.get("config") or {}),
            position=Position.from_dict(data.get("position")),
            connections=data.get("connections") or [],
        )


@dataclass(frozen=True)
class Edge:
    """A typed edge in the flow graph."""

    source_id: str
    target_id: str
    kind: EdgeKind = EdgeKind.NEXT
    digit: Optional[str] = None  # Option edges only

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "target_id": self.target_id,
            "kind": self.kind.value,
            "digit": self.digit,
        }


# =============================================================================
# Stored Records
# =============================================================================


@dataclass
class Flow:
    """A saved call flow bound to one phone number."""

    id: str
    user_id: str
    flow_name: str
    flow_config: Dict[str, Any]
    twilio_number_id: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "flow_name": self.flow_name,
            "flow_config": self.flow_config,
            "twilio_number_id": self.twilio_number_id,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class PhoneNumber:
    """A purchased phone number owned by a user."""

    id: str
    user_id: str
    phone_number: str  # E.164
    twilio_sid: str
    friendly_name: Optional[str] = None
    capabilities: Dict[str, bool] = field(default_factory=dict)
    status: NumberStatus = NumberStatus.ACTIVE
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "phone_number": self.phone_number,
            "twilio_sid": self.twilio_sid,
            "friendly_name": self.friendly_name,
            "capabilities": self.capabilities,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# Validation Models
# =============================================================================


@dataclass
class ValidationIssue:
    """A validation issue found in a flow."""

    severity: str  # error, warning, info
    message: str
    block_id: Optional[str] = None
    property_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity,
            "message": self.message,
            "block_id": self.block_id,
            "property_name": self.property_name,
        }


@dataclass
class ValidationResult:
    """Result of flow validation."""

    valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)
    checked_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]


# =============================================================================
# API Request/Response Models
# =============================================================================


class PositionModel(BaseModel):
    x: float
    y: float


class BlockPayload(BaseModel):
    """A block as sent by the editor."""

    id: Optional[str] = None
    type: BlockType
    config: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[PositionModel] = None
    connections: List[str] = Field(default_factory=list)


class SaveFlowRequest(BaseModel):
    """Request to create a flow."""

    flow_name: str = ""
    twilio_number_id: Optional[str] = None
    voice: str = "alice"
    blocks: List[BlockPayload] = Field(default_factory=list)
    is_active: bool = True


class UpdateFlowRequest(BaseModel):
    """Request to update a flow."""

    flow_name: Optional[str] = None
    twilio_number_id: Optional[str] = None
    voice: Optional[str] = None
    blocks: Optional[List[BlockPayload]] = None
    is_active: Optional[bool] = None


class FlowResponse(BaseModel):
    """Response with flow data."""

    id: str
    flow_name: str
    flow_config: Dict[str, Any]
    twilio_number_id: Optional[str]
    is_active: bool
    created_at: str
    updated_at: str


class FlowListResponse(BaseModel):
    """Response with list of flows."""

    flows: List[FlowResponse]
    total: int


class ValidateFlowResponse(BaseModel):
    """Response from flow validation."""

    valid: bool
    errors: List[Dict[str, Any]]
    warnings: List[Dict[str, Any]]


class CreateSessionRequest(BaseModel):
    """Open an editor session, optionally from a saved flow or preset."""

    flow_id: Optional[str] = None
    preset_id: Optional[str] = None


class AddBlockRequest(BaseModel):
    type: BlockType
    id: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    position: Optional[PositionModel] = None


class UpdateBlockRequest(BaseModel):
    config: Dict[str, Any]


class ConnectRequest(BaseModel):
    source_id: str
    target_id: str


class ConnectingFromRequest(BaseModel):
    block_id: Optional[str] = None


class SaveSessionRequest(BaseModel):
    flow_name: Optional[str] = None
    twilio_number_id: Optional[str] = None
    voice: Optional[str] = None


class SessionResponse(BaseModel):
    """Snapshot of an editor session."""

    session_id: str
    mode: str
    connecting_from: Optional[str]
    selected_block_id: Optional[str]
    flow_id: Optional[str]
    flow_name: str
    twilio_number_id: Optional[str]
    voice: str
    blocks: List[Dict[str, Any]]


class PurchaseNumberRequest(BaseModel):
    phone_number: str = Field(..., pattern=r"^\+[1-9]\d{1,14}$")
    friendly_name: Optional[str] = None


class PhoneNumberResponse(BaseModel):
    id: str
    phone_number: str
    friendly_name: Optional[str]
    twilio_sid: str
    capabilities: Dict[str, bool]
    status: str
    created_at: str


__all__ = [
    # Configs
    "MenuOption",
    "BlockConfig",
    "SayConfig",
    "GatherConfig",
    "ForwardConfig",
    "MultiForwardConfig",
    "RecordConfig",
    "PauseConfig",
    "PlayConfig",
    "HangupConfig",
    "SmsConfig",
    "HoldConfig",
    "CONFIG_TYPES",
    # Graph
    "Position",
    "Block",
    "Edge",
    # Records
    "Flow",
    "PhoneNumber",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # API
    "PositionModel",
    "BlockPayload",
    "SaveFlowRequest",
    "UpdateFlowRequest",
    "FlowResponse",
    "FlowListResponse",
    "ValidateFlowResponse",
    "CreateSessionRequest",
    "AddBlockRequest",
    "UpdateBlockRequest",
    "ConnectRequest",
    "ConnectingFromRequest",
    "SaveSessionRequest",
    "SessionResponse",
    "PurchaseNumberRequest",
    "PhoneNumberResponse",
]
