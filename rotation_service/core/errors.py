# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Error taxonomy for the rotation service.

Validation, not-found and conflict errors are correctness errors: they are
raised before anything is written and always reach the caller. Transient
delivery errors come from the notification and wake-signal paths after the
retry policy is exhausted.
"""

from typing import Any, Optional


class RotationError(Exception):
    """Base exception for all rotation-service errors."""

    status_code: int = 500
    code: str = "rotation_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": False,
            "error": self.code,
            "detail": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


# ── Validation (400) ──

class ValidationError(RotationError):
    status_code = 400
    code = "validation_error"


class InvalidInterval(ValidationError):
    code = "invalid_interval"


class InvalidOverrideRange(ValidationError):
    code = "invalid_override_range"

    def __init__(self, start_at: Any, end_at: Any):
        super().__init__(
            "Invalid override range: start_at must be before end_at",
            {"start_at": str(start_at), "end_at": str(end_at)},
        )


class InvalidPosition(ValidationError):
    code = "invalid_position"


# ── Not found (404) ──

class NotFoundError(RotationError):
    status_code = 404
    code = "not_found"

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = resource_type
        if resource_id:
            message += f" '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class RotationNotFound(NotFoundError):
    code = "rotation_not_found"

    def __init__(self, rotation_id: str):
        super().__init__("Rotation", rotation_id)


class OverrideNotFound(NotFoundError):
    code = "override_not_found"

    def __init__(self, override_id: str):
        super().__init__("Override", override_id)


class MemberNotFound(NotFoundError):
    code = "member_not_found"

    def __init__(self, assignee_id: str):
        super().__init__("Rotation member", assignee_id)


# ── Conflict (409) ──

class ConflictError(RotationError):
    status_code = 409
    code = "conflict"


class RotationInUse(ConflictError):
    code = "rotation_in_use"

    def __init__(self, rotation_id: str, bindings: int):
        super().__init__(
            "Cannot delete rotation: it is used in an entry point",
            {"rotation_id": rotation_id, "bindings": bindings},
        )


class AlreadyBound(ConflictError):
    code = "already_bound"


# ── Delivery (502 / 503) ──

class TransientDeliveryError(RotationError):
    status_code = 502
    code = "delivery_failed"


class NotificationDeliveryError(TransientDeliveryError):
    code = "notification_failed"


class WakeDeliveryError(TransientDeliveryError):
    """The edit is persisted; the scheduler may stay stale until its next poll."""

    code = "wake_signal_failed"

    def __init__(self, message: str, persisted: bool = False, details=None):
        self.persisted = persisted
        super().__init__(message, details)


class SchedulerStartError(RotationError):
    status_code = 503
    code = "scheduler_unavailable"


def _subclasses(cls: type) -> list[type]:
    found = []
    for sub in cls.__subclasses__():
        found.append(sub)
        found.extend(_subclasses(sub))
    return found


def status_for_code(code: Optional[str]) -> int:
    """HTTP status for an error code carried by a failed ActionResult."""
    for cls in [RotationError, *_subclasses(RotationError)]:
        if cls.code == code:
            return cls.status_code
    return 500
