"""
Error taxonomy for the instance lifecycle core.

Services raise these; wiretap.main maps any WiretapError to a JSON response
({"detail": ..., "code": ...}) with the error's status code.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    ENDPOINT_NOT_FOUND = "ENDPOINT_NOT_FOUND"
    REQUEST_FAILED = "REQUEST_FAILED"
    NOT_FOUND_LOCAL = "NOT_FOUND_LOCAL"
    NOT_FOUND_REMOTE = "NOT_FOUND_REMOTE"
    INSTANCE_LOCKED = "INSTANCE_LOCKED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    FORBIDDEN = "FORBIDDEN"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    INVALID_REQUEST = "INVALID_REQUEST"


class WiretapError(Exception):
    """Base exception. Carries an error code and the HTTP status the route layer should use."""

    def __init__(self, code: ErrorCode, message: str, status_code: int) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code.value}


class AuthenticationFailed(WiretapError):
    """Identity endpoint rejected the credentials, was unreachable, or answered garbage."""

    def __init__(self, message: str = "Failed to authenticate with OpenStack") -> None:
        super().__init__(ErrorCode.AUTHENTICATION_FAILED, message, 502)


class EndpointNotFound(WiretapError):
    """Service catalog has no entry for the requested service/interface/region."""

    def __init__(self, message: str = "Compute endpoint not found in service catalog") -> None:
        super().__init__(ErrorCode.ENDPOINT_NOT_FOUND, message, 502)


class RequestFailed(WiretapError):
    """Transport error or non-success response from the provider."""

    def __init__(self, message: str = "OpenStack API request failed", upstream_status: Optional[int] = None) -> None:
        self.upstream_status = upstream_status
        super().__init__(ErrorCode.REQUEST_FAILED, message, 502)


class NotFoundLocal(WiretapError):
    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(ErrorCode.NOT_FOUND_LOCAL, message, 404)


class NotFoundRemote(WiretapError):
    def __init__(self, message: str = "Instance not found in OpenStack") -> None:
        super().__init__(ErrorCode.NOT_FOUND_REMOTE, message, 404)


class InstanceLocked(WiretapError):
    def __init__(self, message: str = "Instance is locked") -> None:
        super().__init__(ErrorCode.INSTANCE_LOCKED, message, 403)


class SessionNotFound(WiretapError):
    def __init__(self, message: str = "Session not found") -> None:
        super().__init__(ErrorCode.SESSION_NOT_FOUND, message, 404)


class SessionExpired(WiretapError):
    def __init__(self, message: str = "Session expired") -> None:
        super().__init__(ErrorCode.SESSION_EXPIRED, message, 410)


class Forbidden(WiretapError):
    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(ErrorCode.FORBIDDEN, message, 403)


class AlreadyExists(WiretapError):
    def __init__(self, message: str = "Resource already exists") -> None:
        super().__init__(ErrorCode.ALREADY_EXISTS, message, 409)


class InvalidRequest(WiretapError):
    def __init__(self, message: str = "Invalid request") -> None:
        super().__init__(ErrorCode.INVALID_REQUEST, message, 400)
