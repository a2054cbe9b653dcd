"""Exception handlers rendering the error envelope."""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from merchantpay.errors import AuthError

logger = logging.getLogger(__name__)


def auth_error_response(exc: AuthError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers so auth failures surface as stable codes, never tracebacks."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        logger.info(f"{exc.code} on {request.method} {request.url.path}")
        return auth_error_response(exc)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "code": "INTERNAL_ERROR",
                "message": "An internal server error occurred",
                "statusCode": 500,
            },
        )
