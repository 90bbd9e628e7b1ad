"""
Call Flow Studio.

Visual call flow editing, versioned flow storage, and TwiML compilation for
inbound calls on purchased phone numbers.
"""

__version__ = "1.0.0"
