"""Custom exceptions for DirectDrop."""

from typing import Any


class DirectDropError(Exception):
    """Base exception for DirectDrop.

    Every client-visible failure carries a human-readable message and a
    machine-readable code.
    """

    code = "UNKNOWN_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and wire responses."""
        return {"error": self.message, "code": self.code}


class ValidationError(DirectDropError):
    """Exception raised when a file fails its route schema."""

    code = "VALIDATION_FAILED"

    def __init__(self, message: str, code: str | None = None, path: list[str] | None = None):
        super().__init__(message, code)
        self.path = list(path or [])

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["path"] = self.path
        return data


class AuthorizationError(DirectDropError):
    """Exception raised when middleware or the signer refuses a file."""

    code = "AUTHORIZATION_FAILED"


class SigningError(AuthorizationError):
    """Exception raised when a signed URL could not be produced (transient)."""

    code = "SIGNING_FAILED"


class ConfigurationError(DirectDropError):
    """Exception raised when storage credentials or bucket are missing.

    Fatal for the whole batch, never retried.
    """

    code = "CONFIG_INVALID"


class TransferError(DirectDropError):
    """Exception raised when a direct transfer to storage fails."""

    code = "TRANSFER_FAILED"

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message, code)
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class RouteNotFoundError(DirectDropError):
    """Exception raised when a route name is not registered."""

    code = "ROUTE_NOT_FOUND"

    def __init__(self, route_name: str):
        super().__init__(f'Route "{route_name}" not found')
        self.route_name = route_name


class ProtocolError(DirectDropError):
    """Exception raised for malformed requests or unknown actions."""

    code = "PROTOCOL_ERROR"


class HookError(DirectDropError):
    """Exception raised when an on_start or on_complete hook fails for one file."""

    code = "HOOK_FAILED"
