"""
TwiML compiler for call flows.
"""

from .engine import FlowCompiler, speech_rate
from .forwarding import MultiForwardRenderer, append_voicemail_fallback

__all__ = [
    "FlowCompiler",
    "speech_rate",
    "MultiForwardRenderer",
    "append_voicemail_fallback",
]
