from __future__ import annotations

from typing import Any, Dict


class OrbError(Exception):
    """Base class of every recoverable error raised by the conversation core."""

    code = "orb_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class IllegalTransition(OrbError):
    code = "illegal_transition"

    def __init__(self, state: Any, event: Any) -> None:
        self.state = state
        self.event = event
        super().__init__(f"event '{_value(event)}' is not allowed in state '{_value(state)}'")


class MalformedVisualPayload(OrbError):
    code = "malformed_visual_payload"

    def __init__(self, kind: Any, reason: str) -> None:
        self.kind = kind
        self.reason = reason
        super().__init__(f"invalid {_value(kind)} payload: {reason}")


class AiCallFailed(OrbError):
    code = "ai_call_failed"


class CaptureFailed(OrbError):
    code = "capture_failed"


class NotFound(OrbError):
    code = "not_found"

    def __init__(self, plan_id: str) -> None:
        self.plan_id = plan_id
        super().__init__(f"no action plan with id '{plan_id}'")


class DuplicateId(OrbError):
    code = "duplicate_id"

    def __init__(self, plan_id: str) -> None:
        self.plan_id = plan_id
        super().__init__(f"action plan id '{plan_id}' already registered")


class AlreadyConfirmed(OrbError):
    code = "already_confirmed"

    def __init__(self, plan_id: str) -> None:
        self.plan_id = plan_id
        super().__init__(f"action plan '{plan_id}' is already confirmed")


class TimestampRegression(OrbError):
    code = "timestamp_regression"

    def __init__(self, previous: int, received: int) -> None:
        self.previous = previous
        self.received = received
        super().__init__(f"timestamp {received} is older than the last entry ({previous})")


def _value(item: Any) -> str:
    return str(getattr(item, "value", item))


def error_response(code: str, message: str, *, details: Any | None = None, trace_id: str | None = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
        }
    }
    if details is not None:
        payload["error"]["details"] = details
    if trace_id is not None:
        payload["error"]["trace_id"] = trace_id
    return payload
