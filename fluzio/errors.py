"""Error taxonomy shared by the lifecycle and participation workflows.

Every error carries a stable ``code`` (used in JSON responses) and the HTTP
status the API layer maps it to. Callers that need to decide whether to retry
should look at :class:`StoreUnavailableError` versus everything else: only
store failures are transient.
"""

from __future__ import annotations


class MissionError(Exception):
    code = "mission_error"
    http_status = 500
    retryable = False

    def __init__(self, message: str | None = None, **details) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict:
        payload = {
            "ok": False,
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(MissionError):
    code = "invalid_input"
    http_status = 400


class NotFoundError(MissionError):
    code = "not_found"
    http_status = 404


class ForbiddenError(MissionError):
    code = "forbidden"
    http_status = 403


class InvalidStateError(MissionError):
    code = "invalid_state"
    http_status = 409


class AlreadyDecidedError(InvalidStateError):
    code = "already_decided"


class MissionInactiveError(InvalidStateError):
    code = "mission_inactive"


class MissionExpiredError(MissionInactiveError):
    code = "mission_expired"


class AlreadyAppliedError(InvalidStateError):
    code = "already_applied"


class CapacityError(MissionError):
    code = "capacity_exceeded"
    http_status = 409


class MissionFullError(CapacityError):
    code = "mission_full"


class StoreUnavailableError(MissionError):
    code = "store_unavailable"
    http_status = 503
    retryable = True


class StoreTimeoutError(StoreUnavailableError):
    code = "store_timeout"
    http_status = 504


__all__ = [
    "AlreadyAppliedError",
    "AlreadyDecidedError",
    "CapacityError",
    "ForbiddenError",
    "InvalidStateError",
    "MissionError",
    "MissionExpiredError",
    "MissionFullError",
    "MissionInactiveError",
    "NotFoundError",
    "StoreTimeoutError",
    "StoreUnavailableError",
    "ValidationError",
]
