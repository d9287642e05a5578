"""Web server entrypoint.

Runs the relay with uvicorn. Use a single worker: the pipeline, its
history and its cooldowns live in the server process.

Usage: python -m greenhouse.server
"""
import uvicorn

from greenhouse.lib.config import get_settings


def main() -> None:
    """Run the web server."""
    settings = get_settings()
    uvicorn.run(
        "greenhouse.server:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
