"""
Errors raised by the session core. Each carries the HTTP status the API
answers with, so routers never have to translate them one by one.
"""


class SessionError(Exception):
    status_code = 500
    code = "session_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class Conflict(SessionError):
    """The owner already has an open session."""

    status_code = 409
    code = "conflict"


class InvalidTransition(SessionError):
    """The event breaks the start/pause/stop alternation or follows a stop."""

    status_code = 400
    code = "invalid_transition"


class NotFound(SessionError):
    status_code = 404
    code = "not_found"


class StoreUnavailable(SessionError):
    """The record store failed. The only error worth retrying."""

    status_code = 503
    code = "store_unavailable"
