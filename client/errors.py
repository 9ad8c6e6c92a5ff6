from typing import Dict, List, Optional

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred"


class ApiError(Exception):
    """A failed api call, carrying the server's envelope message when there is one."""

    def __init__(self, message: str = DEFAULT_ERROR_MESSAGE, status_code: Optional[int] = None, errors: Optional[Dict[str, List[str]]] = None):
        self.message = message
        self.status_code = status_code
        self.errors = errors or {}
        super().__init__(message)


class SessionExpired(ApiError):
    """The access token was rejected and could not be refreshed; the session is over."""


class RefreshFailed(Exception):
    pass
