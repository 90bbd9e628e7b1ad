"""
Flow editor canvas: the editable graph, its read-only view, and validation.
"""

from .editor import EditorMode, EditorSession
from .graph import FlowGraph
from .sessions import EditorSessionRegistry
from .validator import FlowValidator

__all__ = [
    "EditorMode",
    "EditorSession",
    "FlowGraph",
    "FlowValidator",
    "EditorSessionRegistry",
]
