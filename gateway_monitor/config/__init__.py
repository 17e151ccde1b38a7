"""
Config Module — Monitor settings and dependency definitions.
"""

from .loader import MonitorSettings, load_settings
from .models import DependencyTarget, HealthPolicy, MonitorFileConfig

__all__ = [
    "MonitorSettings",
    "load_settings",
    "DependencyTarget",
    "HealthPolicy",
    "MonitorFileConfig",
]
