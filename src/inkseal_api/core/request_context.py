from __future__ import annotations

from uuid import uuid4

from fastapi import Request

REQUEST_ID_HEADERS = ("x-inkseal-request-id", "x-request-id", "x-correlation-id")


def get_request_id(request: Request | None) -> str:
    """Return the caller-supplied request id, or mint one for log correlation."""
    if request is None:
        return uuid4().hex
    for header in REQUEST_ID_HEADERS:
        value = request.headers.get(header)
        if value:
            return value.strip()
    return uuid4().hex
