import structlog
import uvicorn
from fastapi import FastAPI

from pwsession.config import settings
from pwsession.server.api_app import create_api_app

LOG = structlog.stdlib.get_logger()


def create_uvicorn_config(app: FastAPI | str, host: str | None = None, port: int | None = None) -> uvicorn.Config:
    """Create a uvicorn configuration for the session server.

    Args:
        app: FastAPI app instance or import string
        host: Interface to bind. Defaults to settings.HOST.
        port: Port number to run the server on. Defaults to settings.PORT.

    Returns:
        Configured uvicorn.Config instance.
    """
    return uvicorn.Config(
        app=app,
        host=host or settings.HOST,
        port=port or settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        # browsers are in-process state, a reload would orphan them
        reload=False,
        access_log=False,
    )


def serve(host: str | None = None, port: int | None = None) -> None:
    """Run the session server in the foreground until SIGINT/SIGTERM or POST /shutdown."""
    app = create_api_app()
    server = uvicorn.Server(create_uvicorn_config(app, host=host, port=port))

    def request_exit() -> None:
        server.should_exit = True

    app.state.request_exit = request_exit
    LOG.info("Starting session server", host=server.config.host, port=server.config.port)
    server.run()
