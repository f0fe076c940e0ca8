"""
Uniform result type returned by every service call.

Screens only ever see `ServiceResult`: `success` tells them whether to render
`data` or show `message`. `error_kind` mirrors `ApiError.kind` so a screen can
tell a session expiry apart from a validation problem when it needs to.
"""
# epscitas/results.py

from dataclasses import dataclass
from typing import Any, Optional

from epscitas.errors import ApiError

NETWORK_MESSAGE = "No se pudo conectar al servidor. Verifica que el backend esté ejecutándose."
TIMEOUT_MESSAGE = "La solicitud excedió el tiempo de espera."
SESSION_EXPIRED_MESSAGE = "Sesión expirada. Inicia sesión nuevamente."
CANCELLED_MESSAGE = "Solicitud cancelada"


@dataclass
class ServiceResult:
    success: bool
    data: Any = None
    message: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "ServiceResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, message: str, error_kind: str = "unknown") -> "ServiceResult":
        return cls(success=False, message=message, error_kind=error_kind)

    def as_list(self) -> list:
        """Returns `data` as a list; an empty list on failure or when data is not a list."""
        if self.success and isinstance(self.data, list):
            return self.data
        return []

    def to_dict(self) -> dict:
        """Returns the `{success, data, message}` envelope form of the result."""
        envelope = {"success": self.success}
        if self.success:
            envelope["data"] = self.data
        if self.message:
            envelope["message"] = self.message
        return envelope


def message_for_error(exc: ApiError, default_message: str) -> str:
    """Picks the user-facing message for a failed call.

    Network and timeout failures get fixed messages; server failures always
    use `default_message`; validation and authorization failures surface the
    backend message verbatim when it sent one.
    """
    if exc.kind == "network":
        return NETWORK_MESSAGE
    if exc.kind == "timeout":
        return TIMEOUT_MESSAGE
    if exc.kind == "cancelled":
        return CANCELLED_MESSAGE
    if exc.kind == "server":
        return default_message
    return exc.message or default_message


def failure_from_error(exc: ApiError, default_message: str) -> ServiceResult:
    return ServiceResult.fail(message_for_error(exc, default_message), exc.kind)
