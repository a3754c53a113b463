from fastapi import status


class PWSessionException(Exception):
    def __init__(self, message: str | None = None):
        self.message = message
        super().__init__(message)


class PWSessionHTTPException(PWSessionException):
    def __init__(self, message: str | None = None, status_code: int = status.HTTP_400_BAD_REQUEST):
        self.status_code = status_code
        super().__init__(message)


class SessionAlreadyStarted(PWSessionHTTPException):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' already started", status_code=status.HTTP_409_CONFLICT)


class SessionNotFound(PWSessionHTTPException):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"No session '{session_id}' to stop", status_code=status.HTTP_404_NOT_FOUND)


class SessionStartFailed(PWSessionHTTPException):
    def __init__(self, session_id: str, reason: str | None = None):
        self.session_id = session_id
        self.reason = reason
        super().__init__(
            f"Failed to start session '{session_id}': {reason}",
            status_code=status.HTTP_502_BAD_GATEWAY,
        )


class MissingFragmentCode(PWSessionHTTPException):
    def __init__(self) -> None:
        super().__init__("Missing 'code' parameter", status_code=status.HTTP_400_BAD_REQUEST)


class UnknownBrowserType(PWSessionException):
    def __init__(self, browser_type: str) -> None:
        super().__init__(f"Unknown browser type: {browser_type}")


class BrowserLaunchError(PWSessionException):
    def __init__(self, session_id: str, browser_type: str, cause: BaseException | str | None = None) -> None:
        self.session_id = session_id
        self.browser_type = browser_type
        self.reason = f"{type(cause).__name__}: {cause}" if isinstance(cause, BaseException) else cause
        super().__init__(
            f"Failed to launch {browser_type} for session '{session_id}'. reason={self.reason}",
        )


class UntrackedName(PWSessionException):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"'{name}' is not a tracked name and cannot be stored in the durable namespace")


class ServerNotRunning(PWSessionException):
    def __init__(self) -> None:
        super().__init__("Server not running. Run 'start' first.")


class ServerStartTimeout(PWSessionException):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"Failed to start server within {timeout}s")


class ServerRequestTimeout(PWSessionException):
    def __init__(self, path: str, timeout: float) -> None:
        self.path = path
        self.timeout = timeout
        super().__init__(
            f"Request to {path} timed out after {timeout}s. Raise REQUEST_TIMEOUT_SECONDS for long fragments."
        )
