"""Fault injection for the simulated telemetry source."""

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from greenhouse.sampler.sources import SimulatedSource
from greenhouse.server.validators import (
    InvalidBody,
    error_response,
    get_pipeline,
    read_json_object,
    validation_error_response,
)


class SpikeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    field: str
    value: float
    duration_sec: float = Field(default=5.0, gt=0, alias="durationSec")


async def inject_spike(request: Request) -> JSONResponse:
    """Override one simulated field for a few seconds."""
    source = get_pipeline(request).source
    if not isinstance(source, SimulatedSource):
        return error_response("Fault injection requires the simulated source")

    try:
        spike = SpikeRequest.model_validate(await read_json_object(request))
    except InvalidBody as e:
        return error_response(str(e))
    except ValidationError as e:
        return validation_error_response(e)

    try:
        source.inject(spike.field, spike.value, spike.duration_sec)
    except ValueError as e:
        return error_response(str(e))

    return JSONResponse(
        {
            "ok": True,
            "field": spike.field,
            "value": spike.value,
            "durationSec": spike.duration_sec,
        }
    )
