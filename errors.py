# errors.py
from typing import Any, Optional


class SocApiError(RuntimeError):
    """Base error: carries the HTTP status the API surfaces it with."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.body = body

    def payload(self) -> Any:
        # upstream bodies are passed through as-is when we have them
        return self.body if self.body is not None else self.message


class InvalidInputError(SocApiError):
    status_code = 400


class ConfigurationError(SocApiError):
    status_code = 500


class UpstreamError(SocApiError):
    """Non-success answer from the registry API."""


class UpstreamAuthError(UpstreamError):
    status_code = 401


class UpstreamNotFound(UpstreamError):
    status_code = 404


class UpstreamTransportError(UpstreamError):
    status_code = 502
