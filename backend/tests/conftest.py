"""
Pytest configuration and shared fixtures for collaboration tests.
"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Any, Tuple

from nuvia.websocket.coordinator import CollaborationCoordinator
from nuvia.websocket.events import CollaborationEvent


class RecordingTransport:
    """Transport double that records every hand-off instead of delivering it."""

    def __init__(self):
        self.sent: List[Tuple[str, CollaborationEvent]] = []
        self.offline: set = set()

    def send(self, connection_id: str, event: CollaborationEvent) -> bool:
        if connection_id in self.offline:
            return False
        self.sent.append((connection_id, event))
        return True

    def events_for(self, connection_id: str, name: str = None) -> List[Dict[str, Any]]:
        return [
            event.data for cid, event in self.sent
            if cid == connection_id and (name is None or event.name == name)
        ]

    def names_for(self, connection_id: str) -> List[str]:
        return [event.name for cid, event in self.sent if cid == connection_id]

    def clear(self):
        self.sent.clear()


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def coordinator(transport, clock):
    return CollaborationCoordinator(
        transport,
        session_timeout=timedelta(minutes=30),
        sweep_interval=timedelta(minutes=15),
        cursor_refreshes_activity=True,
        max_content_size=1024,
        clock=clock
    )
