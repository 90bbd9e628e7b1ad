"""
Flow lifecycle: saving, loading, presets and the block palette.
"""

from .catalog import BLOCK_DEFINITIONS, PRESETS, default_config, list_presets, preset_blocks
from .service import FlowService

__all__ = [
    "BLOCK_DEFINITIONS",
    "PRESETS",
    "default_config",
    "list_presets",
    "preset_blocks",
    "FlowService",
]
