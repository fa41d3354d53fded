"""Request helpers: acting identity and the per-request store deadline.

Authentication happens upstream; the gateway forwards the acting business or
user in headers and every workflow call receives it explicitly.
"""

from __future__ import annotations

from flask import current_app, request

from ..errors import ForbiddenError, ValidationError
from ..stores import Deadline

BUSINESS_HEADER = "X-Business-Id"
USER_HEADER = "X-User-Id"
TIMEOUT_HEADER = "X-Request-Timeout-Ms"


def acting_business_id() -> str:
    business_id = (request.headers.get(BUSINESS_HEADER) or "").strip()
    if not business_id:
        raise ValidationError(f"{BUSINESS_HEADER} header is required", field=BUSINESS_HEADER)
    return business_id


def acting_user_id() -> str:
    user_id = (request.headers.get(USER_HEADER) or "").strip()
    if not user_id:
        raise ValidationError(f"{USER_HEADER} header is required", field=USER_HEADER)
    return user_id


def require_business(business_id: str) -> str:
    """The acting business may only read its own dashboards."""
    acting = acting_business_id()
    if acting != business_id:
        raise ForbiddenError("Cannot access another business's data", business_id=business_id)
    return acting


def request_deadline() -> Deadline:
    seconds = float(current_app.config.get("STORE_TIMEOUT_SECONDS", 5.0))
    raw = request.headers.get(TIMEOUT_HEADER)
    if raw:
        try:
            requested = int(raw) / 1000
        except ValueError:
            raise ValidationError(
                f"{TIMEOUT_HEADER} must be an integer number of milliseconds",
                field=TIMEOUT_HEADER,
            ) from None
        if requested <= 0:
            raise ValidationError(f"{TIMEOUT_HEADER} must be positive", field=TIMEOUT_HEADER)
        seconds = min(seconds, requested)
    return Deadline.after(seconds)


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


__all__ = [
    "acting_business_id",
    "acting_user_id",
    "json_body",
    "request_deadline",
    "require_business",
]
