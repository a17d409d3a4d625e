class AIWatchError(Exception):
    status_code = 500
    detail = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.detail)


class InvalidRequest(AIWatchError):
    status_code = 400
    detail = "Invalid request body"


class MethodNotAllowed(AIWatchError):
    status_code = 405
    detail = "Method not allowed"


class UpstreamStreamError(AIWatchError):
    """The inference backend failed while producing the token stream."""


class UnreachableBackend(UpstreamStreamError):
    """The inference backend could not be reached at all."""


class StreamTimeout(UpstreamStreamError):
    """The streamed response exceeded the configured write timeout."""
