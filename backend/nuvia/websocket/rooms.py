"""
Per-project collaboration session state.
"""

from typing import Dict, Set, Any
from datetime import datetime, timedelta
from dataclasses import dataclass, field

from .events import room_name, isoformat


@dataclass
class ProjectSession:
    """Connections currently editing one shared project."""

    project_id: str
    created_at: datetime
    last_activity: datetime
    participants: Set[str] = field(default_factory=set)

    # Statistics
    total_joins: int = 0
    total_edits: int = 0
    total_cursor_moves: int = 0

    @property
    def room_name(self) -> str:
        return room_name(self.project_id)

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    def has_participant(self, connection_id: str) -> bool:
        return connection_id in self.participants

    def add_participant(self, connection_id: str) -> bool:
        """
        Add a connection to the session.

        Returns:
            bool: True if the connection was not already a participant
        """
        if connection_id in self.participants:
            return False
        self.participants.add(connection_id)
        self.total_joins += 1
        return True

    def remove_participant(self, connection_id: str) -> bool:
        """
        Remove a connection from the session.

        Returns:
            bool: True if the connection was a participant
        """
        if connection_id not in self.participants:
            return False
        self.participants.discard(connection_id)
        return True

    def others(self, connection_id: str) -> list:
        """Participants other than ``connection_id``, in a stable order."""
        return sorted(cid for cid in self.participants if cid != connection_id)

    def touch(self, now: datetime):
        """Refresh last activity. Never moves backwards."""
        if now > self.last_activity:
            self.last_activity = now

    def is_empty(self) -> bool:
        return not self.participants

    def is_stale(self, now: datetime, timeout: timedelta) -> bool:
        return now - self.last_activity > timeout

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "roomName": self.room_name,
            "participantCount": self.participant_count,
            "createdAt": isoformat(self.created_at),
            "lastActivity": isoformat(self.last_activity),
            "stats": {
                "totalJoins": self.total_joins,
                "totalEdits": self.total_edits,
                "totalCursorMoves": self.total_cursor_moves
            }
        }
