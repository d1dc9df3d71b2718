
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from axescan.features.scan.errors import (
    InvalidInput,
    ScanAlreadyTerminal,
    ScanNotFound,
    SchedulingError,
    StoreError,
)
from axescan.platform.response import api_response
from axescan.platform.logger import get_logger

logger = get_logger(__name__)


def add_exception_handlers(app):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(
            message=str(exc.detail) or "Error",
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        return api_response(message=str(exc), status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(ScanNotFound)
    async def scan_not_found_handler(request: Request, exc: ScanNotFound):
        return api_response(message=str(exc), status_code=status.HTTP_404_NOT_FOUND)

    @app.exception_handler(ScanAlreadyTerminal)
    async def scan_terminal_handler(request: Request, exc: ScanAlreadyTerminal):
        return api_response(message=str(exc), status_code=status.HTTP_409_CONFLICT)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"Scan store unavailable: {exc}")
        return api_response(
            message="Scan storage is temporarily unavailable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError):
        logger.error(f"Scan scheduling failed: {exc}")
        return api_response(
            message="Scan could not be scheduled, please try again",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
