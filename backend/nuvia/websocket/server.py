"""
Socket.IO server for real-time project collaboration.
"""

from typing import Dict, Any, Optional, Callable
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI
import socketio

from ..core.config import Settings, get_settings
from ..core.error_handlers import CollaborationError
from ..core.logging_config import get_logger
from .connection_manager import ConnectionManager
from .coordinator import CollaborationCoordinator
from .events import (
    EventType, CodeChangeRequest, CursorChangeRequest,
    parse_payload, parse_project_request,
    create_error_event, create_pong_event, create_project_status_event
)

logger = get_logger(__name__)


class CollaborationServer:
    """Decodes Socket.IO events and forwards them to the coordinator."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        # Core components
        self.connection_manager = ConnectionManager()
        self.coordinator = CollaborationCoordinator(
            self.connection_manager,
            session_timeout=timedelta(minutes=self.settings.session_timeout_minutes),
            sweep_interval=timedelta(minutes=self.settings.sweep_interval_minutes),
            cursor_refreshes_activity=self.settings.cursor_refreshes_activity,
            max_content_size=self.settings.max_content_size
        )

        origins = self.settings.allowed_origins
        self.sio = socketio.AsyncServer(
            async_mode='asgi',
            cors_allowed_origins="*" if "*" in origins else origins,
            logger=False,
            engineio_logger=False,
            ping_timeout=self.settings.ping_timeout,
            ping_interval=self.settings.ping_interval
        )

        # Event handler registry
        self.handlers: Dict[EventType, Callable[[str, Any], Dict[str, Any]]] = {
            EventType.JOIN_PROJECT: self.handle_join_project,
            EventType.LEAVE_PROJECT: self.handle_leave_project,
            EventType.CODE_CHANGE: self.handle_code_change,
            EventType.CURSOR_CHANGE: self.handle_cursor_change,
            EventType.GET_PROJECT_STATUS: self.handle_get_project_status,
            EventType.PING: self.handle_ping,
        }

        # Server statistics
        self.stats = {
            "started_at": datetime.now(timezone.utc),
            "total_connections": 0,
            "total_events_processed": 0,
            "total_errors": 0
        }

        self._setup_socketio_handlers()

    def _setup_socketio_handlers(self):
        """Setup Socket.IO event handlers."""

        @self.sio.event
        async def connect(sid, environ, auth=None):
            await self.connection_manager.connect(
                sid,
                sender=self._sender_for(sid),
                metadata={"remote_addr": environ.get("REMOTE_ADDR")}
            )
            self.stats["total_connections"] += 1
            logger.bind(connection_id=sid).info("Client connected")

        @self.sio.event
        async def disconnect(sid, reason=None):
            # Coordinator first so the remaining participants still get user-left
            self.coordinator.disconnect(sid)
            await self.connection_manager.disconnect(sid, reason=str(reason or "disconnect"))
            logger.bind(connection_id=sid).info(f"Client disconnected ({reason})")

        for event_type, handler in self.handlers.items():
            self.sio.on(event_type.value, handler=self._wrap(event_type, handler))

    def _sender_for(self, sid: str):
        async def send(event: str, data: Dict[str, Any]):
            await self.sio.emit(event, data, to=sid)
        return send

    def _wrap(self, event_type: EventType, handler: Callable[[str, Any], Dict[str, Any]]):
        async def on_event(sid, data=None):
            return self.dispatch(sid, event_type, handler, data)
        return on_event

    def dispatch(self, sid: str, event_type: EventType, handler, data: Any) -> Dict[str, Any]:
        """
        Run one handler. Collaboration errors go back to the caller as an
        ``error`` event and an error acknowledgement; nobody else sees them.
        """
        try:
            result = handler(sid, data)
            self.stats["total_events_processed"] += 1
            return result
        except CollaborationError as e:
            self.stats["total_errors"] += 1
            logger.bind(connection_id=sid).warning(f"{event_type.value} rejected: {e.message}")
            self.connection_manager.send(sid, create_error_event(e.message, e.error_code))
            return {"error": e.message, "code": e.error_code}
        except Exception as e:
            self.stats["total_errors"] += 1
            logger.bind(connection_id=sid).exception(f"Unexpected error handling {event_type.value}: {e}")
            self.connection_manager.send(sid, create_error_event("Internal server error", "INTERNAL_ERROR"))
            return {"error": "Internal server error", "code": "INTERNAL_ERROR"}

    # Handlers

    def handle_join_project(self, sid: str, data: Any) -> Dict[str, Any]:
        request = parse_project_request(data)
        result = self.coordinator.join(sid, request.project_id)
        return {"status": "joined", **result.to_dict()}

    def handle_leave_project(self, sid: str, data: Any) -> Dict[str, Any]:
        request = parse_project_request(data)
        self.coordinator.leave(sid, request.project_id)
        return {"status": "left", "projectId": request.project_id}

    def handle_code_change(self, sid: str, data: Any) -> Dict[str, Any]:
        request = parse_payload(CodeChangeRequest, data)
        ack = self.coordinator.broadcast_edit(
            sid,
            request.project_id,
            request.file_path,
            request.new_content,
            cursor_position=request.cursor_position,
            user_id=request.user_id
        )
        return {"status": "relayed", **ack.to_dict()}

    def handle_cursor_change(self, sid: str, data: Any) -> Dict[str, Any]:
        request = parse_payload(CursorChangeRequest, data)
        self.coordinator.broadcast_cursor(
            sid,
            request.project_id,
            request.file_path,
            request.cursor_position,
            selection=request.selection.model_dump() if request.selection else None,
            user_id=request.user_id
        )
        return {"status": "relayed", "projectId": request.project_id}

    def handle_get_project_status(self, sid: str, data: Any) -> Dict[str, Any]:
        request = parse_project_request(data)
        status = self.coordinator.get_status(request.project_id).to_dict()
        self.connection_manager.send(sid, create_project_status_event(status))
        return status

    def handle_ping(self, sid: str, data: Any = None) -> Dict[str, Any]:
        self.connection_manager.send(sid, create_pong_event())
        return {"status": "pong"}

    # HTTP

    def setup_routes(self, app: FastAPI):
        """Setup HTTP routes exposing collaboration state."""

        @app.get("/api/collaboration/stats", tags=["collaboration"])
        async def get_collaboration_stats():
            """Get active session and connection statistics."""
            return {
                "server": self.get_server_stats(),
                "sessions": self.coordinator.get_statistics(),
                "connections": self.connection_manager.get_statistics()
            }

        @app.get("/api/collaboration/projects/{project_id}", tags=["collaboration"])
        async def get_project_status(project_id: str):
            """Get the live collaboration status of a project."""
            return self.coordinator.get_status(project_id).to_dict()

    def get_server_stats(self) -> Dict[str, Any]:
        started_at = self.stats["started_at"]
        return {
            **self.stats,
            "started_at": started_at.isoformat(),
            "uptime_seconds": (datetime.now(timezone.utc) - started_at).total_seconds()
        }

    # Lifecycle

    async def start_background_tasks(self):
        self.coordinator.start()
        logger.info("Collaboration server background tasks started")

    async def shutdown(self):
        """Shutdown the collaboration server gracefully."""
        logger.info("Shutting down collaboration server...")
        await self.coordinator.shutdown()
        await self.connection_manager.shutdown()
        logger.info("Collaboration server shutdown complete")

    def asgi_app(self, other_asgi_app: Optional[FastAPI] = None) -> socketio.ASGIApp:
        """Wrap ``other_asgi_app`` so Socket.IO traffic is served alongside it."""
        return socketio.ASGIApp(
            self.sio,
            other_asgi_app=other_asgi_app,
            socketio_path=self.settings.socketio_path
        )
