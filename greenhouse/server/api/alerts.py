"""Endpoint for alerts reported by the dashboard."""

import secrets
from typing import Any

from pydantic import BaseModel, ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from greenhouse.logging import get_logger
from greenhouse.server.validators import (
    InvalidBody,
    error_response,
    get_pipeline,
    read_json_object,
    validation_error_response,
)

logger = get_logger("server.api.alerts")

API_KEY_HEADER = "x-api-key"


class ReportAlertRequest(BaseModel):
    """Body of an externally reported alert."""

    type: str = "reported"
    level: str = "warning"
    message: str = ""
    sample: dict[str, Any] | None = None


def _is_authorized(request: Request) -> bool:
    """Check the shared secret header when one is configured."""
    settings = get_pipeline(request).settings
    expected = settings.report_api_key.get_secret_value()
    if not expected:
        return True
    provided = request.headers.get(API_KEY_HEADER, "")
    return secrets.compare_digest(provided.encode(), expected.encode())


async def report_alert(request: Request) -> JSONResponse:
    """Forward a reported alert, subject to its per-type cooldown."""
    if not _is_authorized(request):
        logger.warning("Rejected alert report with invalid %s", API_KEY_HEADER)
        return error_response(
            f"unauthorized (invalid {API_KEY_HEADER})", status_code=401
        )

    try:
        data = ReportAlertRequest.model_validate(await read_json_object(request))
    except InvalidBody as e:
        return error_response(str(e))
    except ValidationError as e:
        return validation_error_response(e)

    outcome = get_pipeline(request).report_alert(
        data.type, data.level, data.message, data.sample
    )
    if outcome.skipped:
        return JSONResponse({"ok": True, "skipped": True, "reason": outcome.reason})
    return JSONResponse({"ok": True, "sent": True})
