"""
Collaboration coordinator: tracks which connections edit which project and
relays edit and cursor events between them.
"""

import asyncio
import threading
from typing import Dict, Optional, Any, List, Callable
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass

from ..core.config import get_settings, get_session_timeout, get_sweep_interval
from ..core.error_handlers import InvalidRequest, NotJoined
from ..core.logging_config import get_logger
from .events import (
    CollaborationEvent, isoformat,
    create_joined_project_event, create_user_joined_event, create_user_left_event,
    create_code_update_event, create_cursor_update_event
)
from .rooms import ProjectSession

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class JoinResult:
    project_id: str
    room_name: str
    participant_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "roomName": self.room_name,
            "participantCount": self.participant_count
        }


@dataclass
class EditAck:
    project_id: str
    file_path: str
    timestamp: datetime
    delivered_to: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "filePath": self.file_path,
            "timestamp": isoformat(self.timestamp),
            "deliveredTo": self.delivered_to
        }


@dataclass
class ProjectStatus:
    project_id: str
    is_active: bool
    participant_count: int
    last_activity: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "isActive": self.is_active,
            "participantCount": self.participant_count,
            "lastActivity": isoformat(self.last_activity)
        }


class CollaborationCoordinator:
    """
    Owns the ``project_id -> ProjectSession`` registry.

    Every mutation runs under one lock and never awaits. Outbound events are
    handed to ``transport.send(connection_id, event)``, which must enqueue
    and return without waiting for delivery.
    """

    def __init__(
        self,
        transport,
        session_timeout: Optional[timedelta] = None,
        sweep_interval: Optional[timedelta] = None,
        cursor_refreshes_activity: Optional[bool] = None,
        max_content_size: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        settings = get_settings()

        self.transport = transport
        self.session_timeout = session_timeout if session_timeout is not None else get_session_timeout()
        self.sweep_interval = sweep_interval if sweep_interval is not None else get_sweep_interval()
        self.cursor_refreshes_activity = (
            settings.cursor_refreshes_activity
            if cursor_refreshes_activity is None else cursor_refreshes_activity
        )
        self.max_content_size = (
            settings.max_content_size if max_content_size is None else max_content_size
        )
        self.clock = clock

        self.sessions: Dict[str, ProjectSession] = {}
        self._lock = threading.RLock()

        # Background sweeper
        self.sweep_task: Optional[asyncio.Task] = None

        # Statistics
        self.stats = {
            "sessions_created": 0,
            "sessions_closed": 0,
            "sessions_evicted": 0,
            "total_joins": 0,
            "total_leaves": 0,
            "total_edits": 0,
            "total_cursor_moves": 0,
            "rejected_events": 0
        }

    # Operations

    def join(self, connection_id: str, project_id: str) -> JoinResult:
        """
        Add a connection to a project's session, creating it if needed.

        A connection belongs to one project at a time: it is removed from any
        other session first. Others in the session get ``user-joined``; the
        joining connection gets ``joined-project``.
        """
        with self._lock:
            if not isinstance(project_id, str) or not project_id.strip():
                raise self._reject("projectId is required")

            now = self.clock()

            for previous in self._sessions_of(connection_id):
                if previous.project_id != project_id:
                    self._remove_participant(previous, connection_id)

            session = self.sessions.get(project_id)
            if session is None:
                session = ProjectSession(project_id=project_id, created_at=now, last_activity=now)
                self.sessions[project_id] = session
                self.stats["sessions_created"] += 1
                logger.bind(project_id=project_id).info("Session created")

            added = session.add_participant(connection_id)
            session.touch(now)
            count = session.participant_count

            self._send(connection_id, create_joined_project_event(project_id, count))

            if added:
                self.stats["total_joins"] += 1
                self._broadcast(
                    session, connection_id,
                    create_user_joined_event(connection_id, project_id, count)
                )
                logger.bind(project_id=project_id, connection_id=connection_id).info(
                    f"Joined ({count} participants)"
                )

            return JoinResult(project_id=project_id, room_name=session.room_name, participant_count=count)

    def leave(self, connection_id: str, project_id: str):
        """Remove a connection from a project. No-op if it is not a member."""
        with self._lock:
            session = self.sessions.get(project_id)
            if session is None or not session.has_participant(connection_id):
                return
            self._remove_participant(session, connection_id)

    def disconnect(self, connection_id: str):
        """Remove a vanished connection from every session that still lists it."""
        with self._lock:
            for session in self._sessions_of(connection_id):
                self._remove_participant(session, connection_id)

    def broadcast_edit(
        self,
        connection_id: str,
        project_id: str,
        file_path: str,
        new_content: str,
        cursor_position: Optional[int] = None,
        user_id: Optional[str] = None
    ) -> EditAck:
        """
        Relay a file's new content to the other participants.

        Last write wins: no merging or conflict resolution is attempted.
        """
        with self._lock:
            if not file_path:
                raise self._reject("filePath is required")
            if new_content is None:
                raise self._reject("newContent is required")
            if len(new_content.encode("utf-8")) > self.max_content_size:
                raise self._reject(f"newContent exceeds {self.max_content_size} bytes")

            session = self._require_participant(connection_id, project_id)
            now = self.clock()
            session.touch(now)
            session.total_edits += 1
            self.stats["total_edits"] += 1

            delivered = self._broadcast(
                session, connection_id,
                create_code_update_event(
                    connection_id=connection_id,
                    file_path=file_path,
                    new_content=new_content,
                    timestamp=now,
                    cursor_position=cursor_position,
                    user_id=user_id
                )
            )
            logger.bind(project_id=project_id, connection_id=connection_id).debug(
                f"Edit of {file_path} relayed to {delivered}"
            )

            return EditAck(project_id=project_id, file_path=file_path, timestamp=now, delivered_to=delivered)

    def broadcast_cursor(
        self,
        connection_id: str,
        project_id: str,
        file_path: str,
        cursor_position: int,
        selection: Optional[Dict[str, int]] = None,
        user_id: Optional[str] = None
    ):
        """Relay a cursor or selection move to the other participants."""
        with self._lock:
            if not file_path:
                raise self._reject("filePath is required")
            if cursor_position is None:
                raise self._reject("cursorPosition is required")

            session = self._require_participant(connection_id, project_id)
            now = self.clock()
            if self.cursor_refreshes_activity:
                session.touch(now)
            session.total_cursor_moves += 1
            self.stats["total_cursor_moves"] += 1

            self._broadcast(
                session, connection_id,
                create_cursor_update_event(
                    connection_id=connection_id,
                    file_path=file_path,
                    cursor_position=cursor_position,
                    timestamp=now,
                    selection=selection,
                    user_id=user_id
                )
            )

    def get_status(self, project_id: str) -> ProjectStatus:
        with self._lock:
            if not isinstance(project_id, str) or not project_id.strip():
                raise self._reject("projectId is required")
            session = self.sessions.get(project_id)
            if session is None:
                return ProjectStatus(project_id=project_id, is_active=False, participant_count=0, last_activity=None)
            return ProjectStatus(
                project_id=project_id,
                is_active=True,
                participant_count=session.participant_count,
                last_activity=session.last_activity
            )

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """
        Evict sessions idle for longer than the session timeout.

        Eviction ignores the participant count and notifies nobody.

        Returns:
            list: ids of the evicted projects
        """
        with self._lock:
            now = now or self.clock()
            evicted = [
                project_id for project_id, session in self.sessions.items()
                if session.is_stale(now, self.session_timeout)
            ]

            for project_id in evicted:
                session = self.sessions.pop(project_id)
                self.stats["sessions_evicted"] += 1
                logger.bind(project_id=project_id).info(
                    f"Evicted inactive session ({session.participant_count} participants, "
                    f"last activity {isoformat(session.last_activity)})"
                )

            return evicted

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "totalSessions": len(self.sessions),
                "totalParticipants": sum(s.participant_count for s in self.sessions.values()),
                "projects": [session.to_dict() for session in self.sessions.values()],
                "counters": dict(self.stats)
            }

    # Internals

    def _sessions_of(self, connection_id: str) -> List[ProjectSession]:
        # Scan everything rather than trust a reverse index
        return [s for s in self.sessions.values() if s.has_participant(connection_id)]

    def _require_participant(self, connection_id: str, project_id: str) -> ProjectSession:
        session = self.sessions.get(project_id)
        if session is None or not session.has_participant(connection_id):
            self.stats["rejected_events"] += 1
            raise NotJoined(connection_id, project_id)
        return session

    def _reject(self, message: str) -> InvalidRequest:
        with self._lock:
            self.stats["rejected_events"] += 1
        return InvalidRequest(message)

    def _remove_participant(self, session: ProjectSession, connection_id: str):
        if not session.remove_participant(connection_id):
            return

        self.stats["total_leaves"] += 1
        count = session.participant_count

        if session.is_empty():
            del self.sessions[session.project_id]
            self.stats["sessions_closed"] += 1
            logger.bind(project_id=session.project_id).info("Session closed")
        else:
            self._broadcast(
                session, connection_id,
                create_user_left_event(connection_id, session.project_id, count)
            )
            logger.bind(project_id=session.project_id, connection_id=connection_id).info(
                f"Left ({count} participants)"
            )

    def _broadcast(self, session: ProjectSession, origin: str, event: CollaborationEvent) -> int:
        delivered = 0
        for connection_id in session.others(origin):
            if self._send(connection_id, event):
                delivered += 1
        return delivered

    def _send(self, connection_id: str, event: CollaborationEvent) -> bool:
        return self.transport.send(connection_id, event)

    # Background sweeper

    def start(self):
        """Start the periodic sweeper on the running event loop."""
        if self.sweep_task is None or self.sweep_task.done():
            self.sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(
                f"Session sweeper started (every {self.sweep_interval}, timeout {self.session_timeout})"
            )

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.sweep_interval.total_seconds())
            try:
                evicted = self.sweep()
                if evicted:
                    logger.info(f"Sweeper evicted {len(evicted)} inactive sessions")
            except Exception as e:
                logger.error(f"Error in session sweeper: {e}")

    async def shutdown(self):
        """Stop the sweeper and drop all sessions."""
        if self.sweep_task:
            self.sweep_task.cancel()
            try:
                await self.sweep_task
            except asyncio.CancelledError:
                pass
            self.sweep_task = None

        with self._lock:
            self.sessions.clear()
