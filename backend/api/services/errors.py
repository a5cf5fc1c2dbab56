"""Domain errors raised by services and mapped to HTTP responses by routers."""


class ServiceError(Exception):
    """Base class. ``status_code`` is the HTTP status the router should return."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailed(ServiceError):
    status_code = 400


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class UpstreamError(ServiceError):
    """A primary write or provider call failed."""

    status_code = 500
