"""Sensor reading endpoints."""

from starlette.requests import Request
from starlette.responses import JSONResponse

from greenhouse.server.validators import error_response, get_pipeline


async def get_latest(request: Request) -> JSONResponse:
    """Return the most recent reading."""
    latest = get_pipeline(request).history.latest()
    if latest is None:
        return error_response("No reading available yet", status_code=503)
    return JSONResponse(latest.to_dict())


async def get_history(request: Request) -> JSONResponse:
    """Return the rolling history, oldest first."""
    history = get_pipeline(request).history
    readings = history.snapshot()
    return JSONResponse(
        {
            "capacity": history.capacity,
            "count": len(readings),
            "readings": [r.to_dict() for r in readings],
        }
    )
