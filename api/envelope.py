"""
api/envelope.py -- Single rendering point for the {code, message, data} envelope.

Both the gateway's policy denials and every FastAPI exception handler render
through error_response(), so clients parse one shape regardless of which
layer produced the failure.

Codes follow "<status>-<n>". Authentication and authorization failures use
the fixed codes 401-1 and 403-1 and fixed messages -- callers never learn
which credential defect caused the denial.
"""

from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse

from api.models import ResultEnvelope

UNAUTHENTICATED_CODE = "401-1"
UNAUTHENTICATED_MESSAGE = "Invalid authentication credentials."
FORBIDDEN_CODE = "403-1"
FORBIDDEN_MESSAGE = "You do not have permission to access this resource."


class EnvelopeResponse(JSONResponse):
    media_type = "application/json;charset=UTF-8"


def envelope_response(status_code: int, code: str, message: str, data: Any = None) -> EnvelopeResponse:
    body = ResultEnvelope(code=code, message=message, data=data)
    return EnvelopeResponse(status_code=status_code, content=body.model_dump(mode="json"))


def error_response(status_code: int, code: str | None = None, message: str | None = None) -> EnvelopeResponse:
    """Render an error envelope. data is always null."""
    if status_code == 401:
        return envelope_response(401, code or UNAUTHENTICATED_CODE, message or UNAUTHENTICATED_MESSAGE)
    if status_code == 403:
        return envelope_response(403, code or FORBIDDEN_CODE, message or FORBIDDEN_MESSAGE)
    return envelope_response(status_code, code or f"{status_code}-1", message or "Request failed.")


def unauthenticated_response() -> EnvelopeResponse:
    return error_response(401)


def forbidden_response() -> EnvelopeResponse:
    return error_response(403)
