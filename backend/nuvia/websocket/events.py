"""
Collaboration event definitions: inbound payload schemas and outbound event factories.
"""

from datetime import datetime, timezone
from typing import Dict, Any, Optional, Union
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.error_handlers import InvalidRequest


class EventType(Enum):
    """Socket.IO event names used by the collaboration protocol."""

    # Inbound
    JOIN_PROJECT = "join-project"
    LEAVE_PROJECT = "leave-project"
    CODE_CHANGE = "code-change"
    CURSOR_CHANGE = "cursor-change"
    GET_PROJECT_STATUS = "get-project-status"
    PING = "ping"

    # Outbound
    JOINED_PROJECT = "joined-project"
    USER_JOINED = "user-joined"
    USER_LEFT = "user-left"
    CODE_UPDATE = "code-update"
    CURSOR_UPDATE = "cursor-update"
    PROJECT_STATUS = "project-status"
    ERROR = "error"
    PONG = "pong"


def room_name(project_id: str) -> str:
    """Room identifier reported to clients for a project."""
    return f"project-{project_id}"


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


@dataclass
class CollaborationEvent:
    """An outbound event addressed to one connection."""

    event_type: EventType
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.event_type.value

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, "data": self.data}


# Inbound payload schemas

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ProjectRequest(_Payload):
    """Payload of join-project, leave-project and get-project-status."""
    project_id: str = Field(alias="projectId", min_length=1)

    @field_validator("project_id")
    @classmethod
    def _strip(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("projectId must not be blank")
        return value


class Selection(_Payload):
    start: int = Field(ge=0)
    end: int = Field(ge=0)


class CodeChangeRequest(_Payload):
    project_id: str = Field(alias="projectId", min_length=1)
    file_path: str = Field(alias="filePath", min_length=1)
    # Empty string is a cleared file, not a missing value
    new_content: str = Field(alias="newContent")
    cursor_position: Optional[int] = Field(default=None, alias="cursorPosition", ge=0)
    user_id: Optional[str] = Field(default=None, alias="userId")


class CursorChangeRequest(_Payload):
    project_id: str = Field(alias="projectId", min_length=1)
    file_path: str = Field(alias="filePath", min_length=1)
    cursor_position: int = Field(alias="cursorPosition", ge=0)
    selection: Optional[Selection] = None
    user_id: Optional[str] = Field(default=None, alias="userId")


def parse_project_request(data: Union[str, Dict[str, Any], None]) -> ProjectRequest:
    """
    Parse a project-scoped request.

    Clients may send either ``{"projectId": ...}`` or the bare project id string.
    """
    if isinstance(data, str):
        data = {"projectId": data}
    return parse_payload(ProjectRequest, data)


def parse_payload(model: type, data: Any):
    """Validate an inbound payload, raising InvalidRequest on failure."""
    if not isinstance(data, dict):
        raise InvalidRequest("Payload must be an object")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidRequest.from_validation_error(exc) from exc


# Outbound event factories

def create_joined_project_event(project_id: str, participant_count: int) -> CollaborationEvent:
    """Create the join confirmation sent to the joining connection only."""
    return CollaborationEvent(
        event_type=EventType.JOINED_PROJECT,
        data={
            "projectId": project_id,
            "roomName": room_name(project_id),
            "participantCount": participant_count
        }
    )


def create_user_joined_event(connection_id: str, project_id: str, participant_count: int) -> CollaborationEvent:
    return CollaborationEvent(
        event_type=EventType.USER_JOINED,
        data={
            "connectionId": connection_id,
            "projectId": project_id,
            "participantCount": participant_count
        }
    )


def create_user_left_event(connection_id: str, project_id: str, participant_count: int) -> CollaborationEvent:
    return CollaborationEvent(
        event_type=EventType.USER_LEFT,
        data={
            "connectionId": connection_id,
            "projectId": project_id,
            "participantCount": participant_count
        }
    )


def create_code_update_event(
    connection_id: str,
    file_path: str,
    new_content: str,
    timestamp: datetime,
    cursor_position: Optional[int] = None,
    user_id: Optional[str] = None
) -> CollaborationEvent:
    """Create a relayed edit. Optional fields are omitted when absent."""
    data = {
        "filePath": file_path,
        "newContent": new_content,
        "connectionId": connection_id,
        "userId": user_id or connection_id,
        "timestamp": isoformat(timestamp)
    }

    if cursor_position is not None:
        data["cursorPosition"] = cursor_position

    return CollaborationEvent(event_type=EventType.CODE_UPDATE, data=data)


def create_cursor_update_event(
    connection_id: str,
    file_path: str,
    cursor_position: int,
    timestamp: datetime,
    selection: Optional[Dict[str, int]] = None,
    user_id: Optional[str] = None
) -> CollaborationEvent:
    data = {
        "filePath": file_path,
        "cursorPosition": cursor_position,
        "connectionId": connection_id,
        "userId": user_id or connection_id,
        "timestamp": isoformat(timestamp)
    }

    if selection is not None:
        data["selection"] = selection

    return CollaborationEvent(event_type=EventType.CURSOR_UPDATE, data=data)


def create_project_status_event(status: Dict[str, Any]) -> CollaborationEvent:
    return CollaborationEvent(event_type=EventType.PROJECT_STATUS, data=status)


def create_error_event(message: str, code: Optional[str] = None) -> CollaborationEvent:
    data = {"message": message}
    if code:
        data["code"] = code
    return CollaborationEvent(event_type=EventType.ERROR, data=data)


def create_pong_event() -> CollaborationEvent:
    return CollaborationEvent(
        event_type=EventType.PONG,
        data={"serverTime": datetime.now(timezone.utc).isoformat()}
    )
