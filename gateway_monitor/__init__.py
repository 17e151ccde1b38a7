"""
DaorsAgro Gateway Monitor — dependency health roll-up and metrics export.
"""

__version__ = "1.0.0"
