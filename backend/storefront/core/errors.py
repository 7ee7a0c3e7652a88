"""Application error kinds and the single kind → HTTP status table."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    CONFIGURATION = "configuration_error"
    SERVER = "server_error"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.CONFIGURATION: 500,
    ErrorKind.SERVER: 500,
}


class AppError(Exception):
    """Base error carrying a kind and whether its message is safe to expose.

    Operational errors are expected failures (bad input, missing credential);
    their message is returned to the client in every environment. Anything
    else is treated as a bug and hidden outside development.
    """

    kind: ErrorKind = ErrorKind.SERVER
    operational: bool = True

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        operational: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        if operational is not None:
            self.operational = operational

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]


class ValidationError(AppError):
    kind = ErrorKind.VALIDATION


class UnauthorizedError(AppError):
    kind = ErrorKind.UNAUTHORIZED


class ForbiddenError(AppError):
    kind = ErrorKind.FORBIDDEN


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(AppError):
    kind = ErrorKind.CONFLICT


class ConfigurationError(AppError):
    kind = ErrorKind.CONFIGURATION
    operational = False
