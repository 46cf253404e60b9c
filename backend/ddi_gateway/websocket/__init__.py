"""
WebSocket module for real-time health updates
"""

from .manager import HealthBroadcaster

__all__ = ["HealthBroadcaster"]
