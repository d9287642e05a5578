"""Starlette application exposing the telemetry pipeline."""

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.routing import Route, WebSocketRoute

from greenhouse.logging import configure
from greenhouse.pipeline import Pipeline

from .api.alerts import report_alert
from .api.control import post_control
from .api.device import post_device_data, post_test_push
from .api.health import health_check
from .api.inject import inject_spike
from .api.sensors import get_history, get_latest
from .sse import sse_sensors
from .websockets import ws_stream


def create_app(pipeline_factory: Callable[[], Pipeline] = Pipeline) -> Starlette:
    """Create and configure the Starlette application.

    The pipeline is built and started in the lifespan, so importing this
    module does not touch the telemetry source.
    """
    configure()

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        pipeline = pipeline_factory()
        app.state.pipeline = pipeline
        await pipeline.start()
        try:
            yield
        finally:
            await pipeline.stop()

    routes = [
        Route("/sensors", get_latest),
        Route("/sensors/history", get_history),
        Route("/control", post_control, methods=["POST"]),
        Route("/api/device/data", post_device_data, methods=["POST"]),
        Route("/report/alert", report_alert, methods=["POST"]),
        Route("/test/push", post_test_push, methods=["POST"]),
        Route("/inject/spike", inject_spike, methods=["POST"]),
        Route("/health", health_check),
        Route("/sse/sensors", sse_sensors),
        WebSocketRoute("/", ws_stream),
        WebSocketRoute("/ws", ws_stream),
    ]

    return Starlette(routes=routes, lifespan=lifespan)


app = create_app()
