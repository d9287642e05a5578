"""Shared request parsing helpers."""

import json
from typing import Any

from pydantic import ValidationError
from starlette.requests import HTTPConnection, Request
from starlette.responses import JSONResponse

from greenhouse.pipeline import Pipeline


class InvalidBody(Exception):
    """Raised when a request body is not a JSON object."""


def get_pipeline(conn: HTTPConnection) -> Pipeline:
    """Return the pipeline attached to the application."""
    return conn.app.state.pipeline


async def read_json_object(request: Request) -> dict[str, Any]:
    """Read the request body as a JSON object.

    Raises:
        InvalidBody: If the body is not valid JSON or not an object.
    """
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidBody("Invalid JSON") from e
    if not isinstance(data, dict):
        raise InvalidBody("Expected a JSON object")
    return data


def error_response(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message}, status_code=status_code)


def validation_error_response(e: ValidationError) -> JSONResponse:
    """Render pydantic errors as ``{"ok": false, "errors": [...]}``."""
    errors = [
        f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}"
        for err in e.errors()
    ]
    return JSONResponse({"ok": False, "errors": errors}, status_code=400)
