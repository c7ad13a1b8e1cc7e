"""Error taxonomy shared by every route.

Each error is an ``HTTPException`` carrying its own status code, so handlers
raise them directly and the app-level exception handlers in ``codebyte.main``
render the common ``{"success": false, "error": ..., "message": ...}`` envelope.
"""

from fastapi import HTTPException, status


class ApiError(HTTPException):
    status_code_for_class = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str, message: str | None = None, headers: dict | None = None):
        super().__init__(status_code=self.status_code_for_class, detail=detail, headers=headers)
        self.message = message


class InvalidRequestError(ApiError):
    status_code_for_class = status.HTTP_400_BAD_REQUEST


class AuthError(ApiError):
    status_code_for_class = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: str = 'Authentication failed', message: str | None = None):
        super().__init__(detail, message, headers={'WWW-Authenticate': 'Bearer'})


class ForbiddenError(ApiError):
    status_code_for_class = status.HTTP_403_FORBIDDEN


class NotFoundError(ApiError):
    status_code_for_class = status.HTTP_404_NOT_FOUND


class ConflictError(ApiError):
    """Duplicate value for a unique field; reported as a validation failure."""

    status_code_for_class = status.HTTP_400_BAD_REQUEST

    def __init__(self, field: str, message: str | None = None):
        label = field.replace('_', ' ')
        super().__init__('Validation failed', message or f'{label[:1].upper()}{label[1:]} already exists')
        self.field = field


class GatewayError(ApiError):
    status_code_for_class = status.HTTP_500_INTERNAL_SERVER_ERROR


class UnknownError(ApiError):
    status_code_for_class = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str = 'Internal server error', message: str | None = None):
        super().__init__(detail, message)


def error_payload(detail, message: str | None = None) -> dict:
    payload = {'success': False, 'error': detail}
    if message:
        payload['message'] = message
    return payload
