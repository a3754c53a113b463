from contextvars import ContextVar
from dataclasses import dataclass


@dataclass
class SessionContext:
    request_id: str | None = None
    session_id: str | None = None

    def __repr__(self) -> str:
        return f"SessionContext(request_id={self.request_id}, session_id={self.session_id})"

    def __str__(self) -> str:
        return self.__repr__()


_context: ContextVar[SessionContext | None] = ContextVar(
    "Session context",
    default=None,
)


def current() -> SessionContext | None:
    """
    Get the current context

    Returns:
        The current context, or None if there is none
    """
    return _context.get()


def ensure_context() -> SessionContext:
    """
    Get the current context, creating an empty one if there is none
    """
    context = current()
    if context is None:
        context = SessionContext()
        _context.set(context)
    return context


def set(context: SessionContext) -> None:
    """
    Set the current context

    Args:
        context: The context to set
    """
    _context.set(context)


def reset() -> None:
    """
    Reset the current context
    """
    _context.set(None)
