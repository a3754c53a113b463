from __future__ import annotations

import asyncio
import signal
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable

import structlog
from fastapi import Depends, FastAPI, Response, status
from fastapi.responses import JSONResponse
from starlette.requests import Request

from pwsession._version import __version__
from pwsession.constants import SERVER_SHUTDOWN_DELAY
from pwsession.core import session_context
from pwsession.core.session_context import SessionContext
from pwsession.exceptions import MissingFragmentCode, PWSessionHTTPException
from pwsession.server.schemas import (
    EvalRequest,
    EvalResponse,
    HealthResponse,
    SessionRequest,
    SessionResponse,
    SessionsResponse,
    ShutdownResponse,
)
from pwsession.services.session_service import SessionService, create_session_service

LOG = structlog.get_logger()


def _terminate_process() -> None:
    # uvicorn turns SIGTERM into a graceful exit, running the lifespan shutdown
    signal.raise_signal(signal.SIGTERM)


def get_session_service(request: Request) -> SessionService:
    return request.app.state.session_service


def _bind_session(session_id: str) -> None:
    session_context.ensure_context().session_id = session_id


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    LOG.info("Server started", version=__version__)
    yield
    LOG.info("Server shutting down")
    try:
        await app.state.session_service.shutdown()
    except Exception:
        LOG.exception("Failed to shut down sessions")


def create_api_app(
    session_service: SessionService | None = None,
    request_exit: Callable[[], None] | None = None,
) -> FastAPI:
    """
    Build the session server. `request_exit` is called shortly after POST /shutdown answers.
    """

    fastapi_app = FastAPI(title="Playwright Session Server", version=__version__, lifespan=lifespan)
    fastapi_app.state.session_service = session_service or create_session_service()
    fastapi_app.state.request_exit = request_exit or _terminate_process

    @fastapi_app.exception_handler(PWSessionHTTPException)
    async def handle_pwsession_http_exception(request: Request, exc: PWSessionHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})

    @fastapi_app.exception_handler(Exception)
    async def unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        LOG.exception("Unexpected error in session server.", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": f"Unexpected error: {exc}"},
        )

    @fastapi_app.middleware("http")
    async def request_middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        curr_ctx = session_context.current()
        if not curr_ctx:
            session_context.set(SessionContext(request_id=str(uuid.uuid4())))
        elif not curr_ctx.request_id:
            curr_ctx.request_id = str(uuid.uuid4())

        try:
            return await call_next(request)
        finally:
            session_context.reset()

    @fastapi_app.post("/start", response_model=SessionResponse)
    async def start_session(
        data: SessionRequest | None = None,
        service: SessionService = Depends(get_session_service),
    ) -> dict[str, Any]:
        data = data or SessionRequest()
        _bind_session(data.session_id)
        return await service.start(data.session_id)

    @fastapi_app.post("/eval", response_model=EvalResponse)
    async def eval_fragment(
        data: EvalRequest,
        service: SessionService = Depends(get_session_service),
    ) -> EvalResponse:
        if not data.code:
            raise MissingFragmentCode()
        _bind_session(data.session_id)
        result = await service.run(data.session_id, data.code)
        return EvalResponse(**result.model_dump(), session_id=data.session_id)

    @fastapi_app.post("/stop", response_model=SessionResponse)
    async def stop_session(
        data: SessionRequest | None = None,
        service: SessionService = Depends(get_session_service),
    ) -> dict[str, Any]:
        data = data or SessionRequest()
        _bind_session(data.session_id)
        return await service.stop(data.session_id)

    @fastapi_app.get("/sessions", response_model=SessionsResponse)
    async def list_sessions(service: SessionService = Depends(get_session_service)) -> SessionsResponse:
        sessions = service.list()
        return SessionsResponse(sessions=sessions, count=len(sessions))

    @fastapi_app.get("/health", response_model=HealthResponse)
    async def health(service: SessionService = Depends(get_session_service)) -> dict[str, Any]:
        return service.health()

    @fastapi_app.post("/shutdown", response_model=ShutdownResponse)
    async def shutdown(request: Request, service: SessionService = Depends(get_session_service)) -> ShutdownResponse:
        await service.shutdown()
        asyncio.get_running_loop().call_later(SERVER_SHUTDOWN_DELAY, request.app.state.request_exit)
        return ShutdownResponse(message="All sessions closed, server shutting down")

    return fastapi_app
