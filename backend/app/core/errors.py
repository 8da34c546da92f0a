"""Domain errors raised by services and mapped to HTTP responses in main."""

from fastapi import status


class DomainError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class StateConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT


class InvalidAmountError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDeniedError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
