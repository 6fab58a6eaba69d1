"""HTTP error types and the JSON error envelope.

Every error leaves the API as ``{"error": <message>, "code": <CODE>}``.
Messages for authentication failures are deliberately generic.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = logging.getLogger(__name__)

DEFAULT_CODES = {
    status.HTTP_400_BAD_REQUEST: 'VALIDATION_ERROR',
    status.HTTP_401_UNAUTHORIZED: 'AUTH_FAILED',
    status.HTTP_403_FORBIDDEN: 'FORBIDDEN',
    status.HTTP_404_NOT_FOUND: 'NOT_FOUND',
    status.HTTP_405_METHOD_NOT_ALLOWED: 'METHOD_NOT_ALLOWED',
    status.HTTP_409_CONFLICT: 'CONFLICT',
    status.HTTP_500_INTERNAL_SERVER_ERROR: 'SERVICE_UNAVAILABLE',
    status.HTTP_503_SERVICE_UNAVAILABLE: 'SERVICE_UNAVAILABLE',
}


class ApiError(HTTPException):
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    code_default = 'SERVICE_UNAVAILABLE'

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(status_code=self.status_code_default, detail=message)
        self.code = code or self.code_default


class ValidationFailed(ApiError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    code_default = 'VALIDATION_ERROR'


class AuthenticationFailed(ApiError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    code_default = 'AUTH_FAILED'


class PermissionDenied(ApiError):
    status_code_default = status.HTTP_403_FORBIDDEN
    code_default = 'FORBIDDEN'


class NotFound(ApiError):
    status_code_default = status.HTTP_404_NOT_FOUND
    code_default = 'NOT_FOUND'


class Conflict(ApiError):
    status_code_default = status.HTTP_409_CONFLICT
    code_default = 'CONFLICT'


class ServiceUnavailable(ApiError):
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    code_default = 'SERVICE_UNAVAILABLE'


def error_body(message: str, code: str) -> dict:
    return {'error': message, 'code': code}


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = getattr(exc, 'code', None) or DEFAULT_CODES.get(exc.status_code, 'ERROR')
        message = exc.detail if isinstance(exc.detail, str) else 'Request failed'
        return JSONResponse(error_body(message, code), status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = [
            {'loc': list(error.get('loc', ())), 'msg': error.get('msg', '')}
            for error in exc.errors()
        ]
        body = error_body('Validation failed', 'VALIDATION_ERROR')
        body['details'] = details
        return JSONResponse(body, status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception('Unhandled error on %s %s', request.method, request.url.path)
        return JSONResponse(
            error_body('Service unavailable', 'SERVICE_UNAVAILABLE'),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
