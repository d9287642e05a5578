"""Headless telemetry pipeline without the web server.

Usage: python -m greenhouse.sampler
"""
import asyncio

from greenhouse.lib.service import run_service
from greenhouse.pipeline import Pipeline


async def run() -> None:
    """Run the pipeline until cancelled."""
    pipeline = Pipeline()
    await pipeline.start()
    try:
        await asyncio.Event().wait()
    finally:
        await pipeline.stop()


def main() -> None:
    run_service(run, name="sampler")


if __name__ == "__main__":
    main()
