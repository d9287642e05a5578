"""Device push ingestion and notification test endpoints."""

from pydantic import AliasChoices, BaseModel, Field, ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from greenhouse.lib.reading import TelemetryPayload
from greenhouse.logging import get_logger
from greenhouse.server.validators import (
    InvalidBody,
    error_response,
    get_pipeline,
    read_json_object,
    validation_error_response,
)

logger = get_logger("server.api.device")


class DevicePushPayload(TelemetryPayload):
    """Telemetry pushed by a device; it must name itself."""

    device_id: str = Field(
        validation_alias=AliasChoices("device_id", "deviceId")
    )


class PushCheckRequest(BaseModel):
    title: str = "Test"
    body: str = "Test message"


async def post_device_data(request: Request) -> JSONResponse:
    """Accept one reading pushed by a device."""
    try:
        data = await read_json_object(request)
    except InvalidBody as e:
        return error_response(str(e))

    if not data.get("deviceId") and not data.get("device_id"):
        return error_response("deviceId is required")

    try:
        payload = DevicePushPayload.model_validate(data)
    except ValidationError as e:
        return validation_error_response(e)

    reading = await get_pipeline(request).ingest(payload)
    logger.info(
        "Data received from %s: T=%.1f H=%.1f W=%.1f",
        reading.device_id,
        reading.temperature,
        reading.humidity,
        reading.water_level,
    )
    return JSONResponse({"status": "success", "message": "Data received"})


async def post_test_push(request: Request) -> JSONResponse:
    """Send a test notification through the configured channel."""
    try:
        data = await read_json_object(request)
    except InvalidBody:
        data = {}

    try:
        push = PushCheckRequest.model_validate(data)
    except ValidationError as e:
        return validation_error_response(e)

    outcome = await get_pipeline(request).send_test_notification(
        push.title, push.body
    )
    if not outcome.delivered:
        return error_response(outcome.reason or "delivery failed", 500)
    return JSONResponse({"ok": True})
