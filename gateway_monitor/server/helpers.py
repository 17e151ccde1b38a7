"""
Shared helpers for server route modules.
"""

from __future__ import annotations

from flask import current_app, g

from ..context import MonitorContext

EXTENSION_KEY = "gateway_monitor"


def monitor() -> MonitorContext:
    """The monitor context bound to the running app."""
    return current_app.extensions[EXTENSION_KEY]


def request_id() -> str:
    return getattr(g, "request_id", "")
