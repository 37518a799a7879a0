"""
Inbound payload validation and outbound event shape tests.
"""

import pytest

from nuvia.core.error_handlers import InvalidRequest
from nuvia.websocket.events import (
    EventType, CodeChangeRequest, CursorChangeRequest,
    parse_payload, parse_project_request,
    create_code_update_event, create_error_event, create_joined_project_event
)


class TestProjectRequest:

    def test_accepts_object_payload(self):
        assert parse_project_request({"projectId": "proj1"}).project_id == "proj1"

    def test_accepts_bare_string(self):
        assert parse_project_request("proj1").project_id == "proj1"

    @pytest.mark.parametrize("payload", [None, {}, {"projectId": ""}, "", "  ", 42, ["proj1"]])
    def test_rejects_missing_project_id(self, payload):
        with pytest.raises(InvalidRequest) as exc_info:
            parse_project_request(payload)

        assert exc_info.value.error_code == "INVALID_REQUEST"
        assert exc_info.value.status_code == 400


class TestCodeChangeRequest:

    def test_empty_content_is_distinct_from_missing(self):
        request = parse_payload(CodeChangeRequest, {
            "projectId": "proj1", "filePath": "main.ts", "newContent": ""
        })
        assert request.new_content == ""
        assert request.cursor_position is None

        with pytest.raises(InvalidRequest) as exc_info:
            parse_payload(CodeChangeRequest, {"projectId": "proj1", "filePath": "main.ts"})
        assert "newContent" in exc_info.value.message

    def test_optional_fields(self):
        request = parse_payload(CodeChangeRequest, {
            "projectId": "proj1",
            "filePath": "main.ts",
            "newContent": "x",
            "cursorPosition": 1,
            "userId": "alice",
            "unknown": "ignored"
        })
        assert request.cursor_position == 1
        assert request.user_id == "alice"

    def test_rejects_negative_cursor(self):
        with pytest.raises(InvalidRequest):
            parse_payload(CodeChangeRequest, {
                "projectId": "proj1", "filePath": "main.ts", "newContent": "x", "cursorPosition": -1
            })


class TestCursorChangeRequest:

    def test_requires_cursor_position(self):
        with pytest.raises(InvalidRequest):
            parse_payload(CursorChangeRequest, {"projectId": "proj1", "filePath": "main.ts"})

    def test_parses_selection(self):
        request = parse_payload(CursorChangeRequest, {
            "projectId": "proj1",
            "filePath": "main.ts",
            "cursorPosition": 4,
            "selection": {"start": 1, "end": 4}
        })
        assert request.selection.model_dump() == {"start": 1, "end": 4}


class TestOutboundEvents:

    def test_joined_project_event(self):
        event = create_joined_project_event("proj1", 3)

        assert event.event_type is EventType.JOINED_PROJECT
        assert event.to_dict() == {
            "event": "joined-project",
            "data": {"projectId": "proj1", "roomName": "project-proj1", "participantCount": 3}
        }

    def test_code_update_defaults_user_id_to_connection(self, clock):
        event = create_code_update_event("sid1", "a.py", "print()", clock.now)

        assert event.name == "code-update"
        assert event.data["userId"] == "sid1"
        assert event.data["timestamp"] == clock.now.isoformat()
        assert "cursorPosition" not in event.data

    def test_error_event(self):
        assert create_error_event("boom", "NOT_JOINED").data == {"message": "boom", "code": "NOT_JOINED"}
        assert create_error_event("boom").data == {"message": "boom"}
