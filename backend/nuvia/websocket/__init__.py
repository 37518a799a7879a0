"""
WebSocket module for real-time project collaboration.

This module provides:
- Project session tracking (join, leave, disconnect, inactivity sweep)
- Relaying of code edits and cursor moves between participants
- Socket.IO transport and per-connection ordered delivery
"""

from .connection_manager import ConnectionManager
from .coordinator import CollaborationCoordinator, JoinResult, EditAck, ProjectStatus
from .events import CollaborationEvent, EventType
from .rooms import ProjectSession
from .server import CollaborationServer

__all__ = [
    "ConnectionManager",
    "CollaborationCoordinator",
    "JoinResult",
    "EditAck",
    "ProjectStatus",
    "CollaborationEvent",
    "EventType",
    "ProjectSession",
    "CollaborationServer"
]
