"""
Editor session: the in-memory graph of one flow being edited.

Every mutation leaves the graph referentially closed: no connection and no
gather option ever points at a block that is not in the session. Unknown
ids are ignored rather than raised, since calls arrive straight from UI
events.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import structlog

from ..config import BlockType, CanvasConfig, get_settings
from ..exceptions import DuplicateBlockError
from ..models import Block, BlockConfig, Flow, GatherConfig, Position
from .graph import FlowGraph

logger = structlog.get_logger()


class EditorMode(str, Enum):
    """Pending-connection interaction state."""

    IDLE = "idle"
    CONNECTING = "connecting"


class EditorSession:
    """
    Owns the block collection and connection topology for one flow.

    A session has a single owner; nothing here is shared between sessions.
    """

    def __init__(self, canvas: Optional[CanvasConfig] = None):
        self.canvas = canvas or get_settings().canvas
        self.logger = logger.bind(component="editor_session")

        self._blocks: Dict[str, Block] = {}
        self.selected_block_id: Optional[str] = None
        self.mode = EditorMode.IDLE
        self._connecting_from: Optional[str] = None

        # Save metadata
        self.current_flow: Optional[Flow] = None
        self.flow_name = ""
        self.twilio_number_id: Optional[str] = None
        self.voice = "alice"

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def blocks(self) -> List[Block]:
        return list(self._blocks.values())

    @property
    def connecting_from(self) -> Optional[str]:
        return self._connecting_from if self.mode == EditorMode.CONNECTING else None

    def get_block(self, block_id: str) -> Optional[Block]:
        return self._blocks.get(block_id)

    def connection_count(self, block_id: str) -> int:
        block = self._blocks.get(block_id)
        return len(block.connections) if block else 0

    def graph(self) -> FlowGraph:
        return FlowGraph(self._blocks.values())

    # =========================================================================
    # Mutations
    # =========================================================================

    def add_block(
        self,
        block: Union[Block, BlockType, str],
        config: Optional[Union[BlockConfig, Dict[str, Any]]] = None,
        position: Optional[Position] = None,
    ) -> Block:
        """
        Insert a block.

        Args:
            block: A ready Block, or the type of block to create
            config: Config for a newly created block
            position: Explicit placement; overrides auto-placement

        Returns:
            The inserted block, now selected

        Raises:
            DuplicateBlockError: If the block id is already in the session
        """
        if not isinstance(block, Block):
            block = Block.create(block, config=config)

        if block.id in self._blocks:
            raise DuplicateBlockError(block.id)

        source = self._blocks.get(self._connecting_from) if self.connecting_from else None

        if position is not None:
            block.position = position
        elif source is not None:
            block.position = Position(
                x=source.position.x + self.canvas.column_spacing,
                y=source.position.y,
            )
        else:
            block.position = self._find_free_position()

        # Only references that resolve survive insertion
        block.connections = [c for c in block.connections if c in self._blocks]
        self._clear_dangling_options(block)
        self._blocks[block.id] = block

        if source is not None:
            self._link(source, block.id)
            self._set_idle()

        self.selected_block_id = block.id
        self.logger.debug("Block added", block_id=block.id, block_type=block.type.value)
        return block

    def update_block(self, block_id: str, partial_config: Dict[str, Any]) -> Optional[Block]:
        """Merge config updates into a block. Returns None for unknown ids."""
        block = self._blocks.get(block_id)
        if block is None:
            return None

        block.config = block.config.merged(partial_config)
        self._clear_dangling_options(block)
        return block

    def move_block(self, block_id: str, x: float, y: float) -> Optional[Block]:
        block = self._blocks.get(block_id)
        if block is not None:
            block.position = Position(x=x, y=y)
        return block

    def delete_block(self, block_id: str) -> bool:
        """Remove a block and every reference to it."""
        if self._blocks.pop(block_id, None) is None:
            return False

        for block in self._blocks.values():
            if block_id in block.connections:
                block.connections.remove(block_id)
            if isinstance(block.config, GatherConfig):
                for option in block.config.options:
                    if option.block_id == block_id:
                        option.block_id = ""

        if self.selected_block_id == block_id:
            self.selected_block_id = None
        if self._connecting_from == block_id:
            self._set_idle()

        self.logger.debug("Block deleted", block_id=block_id)
        return True

    def connect_blocks(self, from_id: str, to_id: str) -> bool:
        source = self._blocks.get(from_id)
        if source is None or to_id not in self._blocks:
            return False
        return self._link(source, to_id)

    def disconnect_blocks(self, from_id: str, to_id: str) -> bool:
        source = self._blocks.get(from_id)
        if source is None or to_id not in source.connections:
            return False
        source.connections.remove(to_id)
        return True

    def set_option_target(self, gather_id: str, digit: str, target_id: Optional[str]) -> bool:
        """Point a gather option at a block, or clear it with None."""
        block = self._blocks.get(gather_id)
        if block is None or not isinstance(block.config, GatherConfig):
            return False
        if target_id and target_id not in self._blocks:
            return False

        option = block.config.option_for(digit)
        if option is None:
            return False
        option.block_id = target_id or ""
        return True

    def set_connecting_from(self, block_id: Optional[str]) -> None:
        if block_id and block_id in self._blocks:
            self.mode = EditorMode.CONNECTING
            self._connecting_from = block_id
        else:
            self._set_idle()

    def click_block(self, block_id: str) -> Optional[Block]:
        """Select a block, completing a pending connection to it."""
        block = self._blocks.get(block_id)
        if block is None:
            return None

        if self.mode == EditorMode.CONNECTING:
            source = self._blocks.get(self._connecting_from)
            if source is not None and source.id != block_id:
                self._link(source, block_id)
            self._set_idle()

        self.selected_block_id = block_id
        return block

    def reset_editor(self) -> None:
        self._blocks.clear()
        self.selected_block_id = None
        self._set_idle()
        self.current_flow = None
        self.flow_name = ""
        self.twilio_number_id = None
        self.voice = "alice"

    def load(
        self,
        blocks: Iterable[Block],
        flow_name: str = "",
        twilio_number_id: Optional[str] = None,
        voice: str = "alice",
        flow: Optional[Flow] = None,
    ) -> None:
        """Replace the session contents, dropping references that do not resolve."""
        self.reset_editor()

        for block in blocks:
            if block.id in self._blocks:
                raise DuplicateBlockError(block.id)
            self._blocks[block.id] = block

        dropped = 0
        for block in self._blocks.values():
            kept = [c for c in block.connections if c in self._blocks]
            dropped += len(block.connections) - len(kept)
            block.connections = kept
            dropped += self._clear_dangling_options(block)

        if dropped:
            self.logger.warning("Dropped dangling references on load", count=dropped)

        self.current_flow = flow
        self.flow_name = flow_name
        self.twilio_number_id = twilio_number_id
        self.voice = voice

    # =========================================================================
    # Helpers
    # =========================================================================

    def _link(self, source: Block, target_id: str) -> bool:
        if target_id in source.connections:
            return False
        source.connections.append(target_id)
        return True

    def _set_idle(self) -> None:
        self.mode = EditorMode.IDLE
        self._connecting_from = None

    def _clear_dangling_options(self, block: Block) -> int:
        cleared = 0
        if isinstance(block.config, GatherConfig):
            for option in block.config.options:
                if option.block_id and option.block_id not in self._blocks and option.block_id != block.id:
                    option.block_id = ""
                    cleared += 1
        return cleared

    def _is_occupied(self, x: float, y: float) -> bool:
        return any(
            abs(b.position.x - x) < self.canvas.block_width
            and abs(b.position.y - y) < self.canvas.block_height
            for b in self._blocks.values()
        )

    def _find_free_position(self) -> Position:
        """Scan the placement grid row by row for the first free slot."""
        row = 0
        while True:
            for col in range(self.canvas.max_columns):
                x, y = self._grid_slot(row, col)
                if not self._is_occupied(x, y):
                    return Position(x=x, y=y)
            row += 1

    def _grid_slot(self, row: int, col: int) -> Tuple[float, float]:
        return (
            self.canvas.grid_origin_x + col * self.canvas.column_spacing,
            self.canvas.grid_origin_y + row * self.canvas.row_spacing,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "connecting_from": self.connecting_from,
            "selected_block_id": self.selected_block_id,
            "flow_id": self.current_flow.id if self.current_flow else None,
            "flow_name": self.flow_name,
            "twilio_number_id": self.twilio_number_id,
            "voice": self.voice,
            "blocks": [b.to_dict() for b in self._blocks.values()],
        }
