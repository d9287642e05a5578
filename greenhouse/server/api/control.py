"""Operator control endpoint."""

from starlette.requests import Request
from starlette.responses import JSONResponse

from greenhouse.lib.control import parse_command
from greenhouse.lib.exceptions import InvalidCommandError
from greenhouse.logging import get_logger
from greenhouse.server.validators import (
    InvalidBody,
    error_response,
    get_pipeline,
    read_json_object,
)

logger = get_logger("server.api.control")


async def post_control(request: Request) -> JSONResponse:
    """Apply a control command and echo the payload back."""
    try:
        data = await read_json_object(request)
        command = parse_command(data)
    except (InvalidBody, InvalidCommandError) as e:
        return error_response(str(e))

    logger.info("Control received: %s", data)
    outcome = await get_pipeline(request).apply_command(command)
    return JSONResponse(
        {"ok": True, "received": data, "alert_sent": outcome.sent}
    )
