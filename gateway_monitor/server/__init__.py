"""
Server Module — Flask surface for health and metrics.
"""

from .app import create_app, run_server

__all__ = ["create_app", "run_server"]
