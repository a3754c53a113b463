from __future__ import annotations

from pydantic import BaseModel, Field

from pwsession.config import settings
from pwsession.executor.models import ExecutionResult


def _default_session_id() -> str:
    return settings.DEFAULT_SESSION_ID


class SessionRequest(BaseModel):
    session_id: str = Field(default_factory=_default_session_id, min_length=1)


class EvalRequest(SessionRequest):
    # validated by the route so a missing fragment is a 400, not a 422
    code: str | None = None


class SessionResponse(BaseModel):
    success: bool = True
    session_id: str
    message: str


class EvalResponse(ExecutionResult):
    session_id: str


class SessionsResponse(BaseModel):
    success: bool = True
    sessions: list[str]
    count: int


class HealthResponse(BaseModel):
    status: str
    active_sessions: int
    sessions: list[str]


class ShutdownResponse(BaseModel):
    success: bool = True
    message: str