from __future__ import annotations

from typing import Any, Dict, Optional


class StudioError(Exception):
    """Base class for failures that end a single workflow.

    ``message`` is meant for logs, ``user_message`` is what the caller sees.
    """

    status_code: int = 500
    err_type: str = "studio_error"

    def __init__(self, message: str, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message

    def to_payload(self) -> Dict[str, Any]:
        return error_payload(self.err_type, self.status_code, self.user_message)


def error_payload(err_type: str, code: int, message: str) -> Dict[str, Any]:
    return {"error": {"type": err_type, "code": code, "message": message}}


class TransportError(StudioError):
    """Network failure or non-success HTTP status from a collaborator"""

    status_code = 502
    err_type = "transport_error"

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        upstream_status: Optional[int] = None,
    ) -> None:
        super().__init__(message, user_message)
        self.upstream_status = upstream_status


class ReadinessError(StudioError):
    """The remote model never reported ready, or reported a hard failure"""

    status_code = 504
    err_type = "readiness_failure"


class MalformedResponseError(StudioError):
    """A collaborator answered, but not in the expected shape"""

    status_code = 502
    err_type = "malformed_response"

    def __init__(
        self, message: str, user_message: Optional[str] = None, payload: Any = None
    ) -> None:
        super().__init__(message, user_message)
        self.payload = payload


class InputValidationError(StudioError):
    """User input is out of bounds"""

    status_code = 422
    err_type = "validation_error"


def err_text_too_long(limit: int) -> InputValidationError:
    return InputValidationError(f"Input exceeds {limit} characters")


def err_empty_input(field: str) -> InputValidationError:
    return InputValidationError(f"'{field}' must not be empty")


def err_unknown_provider(name: str) -> InputValidationError:
    return InputValidationError(f"Unknown OCR provider '{name}'")
