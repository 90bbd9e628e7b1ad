"""
HTTP API: editor, flows, numbers, catalog, and Twilio voice webhooks.
"""

from .dependencies import Services, build_services, get_services, get_user_id

__all__ = [
    "Services",
    "build_services",
    "get_services",
    "get_user_id",
]
