"""
Application error taxonomy.

Every error is an HTTPException whose detail is a message key. The exception
handlers in main.py resolve the key to localized text for the response body.
"""

from typing import Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message_key = "common.server_error"

    def __init__(self, message_key: Optional[str] = None, headers: Optional[dict] = None):
        super().__init__(
            status_code=self.status_code,
            detail=message_key or self.message_key,
            headers=headers,
        )

    @property
    def key(self) -> str:
        return self.detail


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message_key = "common.validation_failed"


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message_key = "auth.unauthorized"

    def __init__(self, message_key: Optional[str] = None):
        super().__init__(message_key, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    message_key = "common.forbidden"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    message_key = "common.not_found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    message_key = "common.conflict"


class ServerError(AppError):
    pass
