"""
Lectern error taxonomy.

Services raise these; ``main.py`` renders every one of them as
``{"error": message}`` with the class status code. The message is always
safe to show to clients.
"""
from __future__ import annotations


class LecternError(Exception):
    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)


class NotFoundError(LecternError):
    status_code = 404
    message = "Not found"


class UpstreamUnavailableError(LecternError):
    """Upstream could not be reached at all."""

    status_code = 503
    message = "Upstream service unavailable"


class UpstreamBadResponseError(LecternError):
    """Upstream answered, but not with something usable."""

    status_code = 502
    message = "Upstream service error"


class ServiceNotConfiguredError(LecternError):
    status_code = 503
    message = "Service not configured"


class QueryTimeoutError(LecternError):
    status_code = 503
    message = "Query timed out"
