"""
Flow persistence: document serialization and repositories.
"""

from .document import (
    CURRENT_VERSION,
    LEGACY_VERSION,
    deserialize,
    detect_version,
    document_voice,
    serialize,
    upgrade_document,
)
from .memory import InMemoryFlowStore, InMemoryNumberStore
from .store import FlowStore, NumberStore

__all__ = [
    "CURRENT_VERSION",
    "LEGACY_VERSION",
    "serialize",
    "deserialize",
    "detect_version",
    "document_voice",
    "upgrade_document",
    "FlowStore",
    "NumberStore",
    "InMemoryFlowStore",
    "InMemoryNumberStore",
]
