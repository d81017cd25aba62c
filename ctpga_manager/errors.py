"""
Error types and exception handlers.

API errors carry the ``{"msg": ...}`` body every client of this API expects;
unexpected errors are answered with a plain-text 500.
"""
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from ctpga_manager.base_service import base_service

SERVER_ERROR_MESSAGE = "Error del servidor"


class ApiError(Exception):
    """Error that maps directly to a ``{"msg": ...}`` response."""

    def __init__(self, status_code: int, msg: str) -> None:
        self.status_code = status_code
        self.msg = msg
        super().__init__(msg)


def server_error(error: Exception, context: str) -> PlainTextResponse:
    """Log an unexpected error and build the generic 500 response."""
    base_service.log_error(error, context=context)
    return PlainTextResponse(SERVER_ERROR_MESSAGE, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"msg": exc.msg})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "msg": error.get("msg"),
            "param": ".".join(str(part) for part in error.get("loc", ())[1:]),
            "location": error.get("loc", ("body",))[0],
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"errors": errors})


async def unhandled_error_handler(request: Request, exc: Exception) -> PlainTextResponse:
    return server_error(exc, context=f"{request.method} {request.url.path}")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
