"""
Global error handling middleware.

WHAT: Translate exceptions to {"Error": message} responses
WHY: Clients only ever read the Error field; status codes mirror the class
HOW: FastAPI exception handlers for domain, validation and unexpected errors
"""

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..utils.exceptions import StorageError, ThriftlyError
from ..utils.logger import get_logger

logger = get_logger(__name__)

GENERIC_ERROR = "Something went wrong"


async def thriftly_exception_handler(request: Request, exc: ThriftlyError):
    """
    Handle domain exceptions.

    WHAT: Any ThriftlyError subclass
    WHY: Services raise typed errors, clients get one envelope
    HOW: Status from the class; storage failures hide their detail
    """
    if isinstance(exc, StorageError):
        logger.error(f"Storage error on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"Error": GENERIC_ERROR})

    logger.warning(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"Error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """
    Handle FastAPI RequestValidationError.

    WHAT: Request validation failed
    WHY: Invalid request payload
    HOW: Return 400 with the first problem as the message
    """
    errors = exc.errors()
    logger.warning(f"Validation error on {request.url.path}: {errors}")

    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "form"))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"

    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"Error": message})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"Error": GENERIC_ERROR},
    )


def register_exception_handlers(app):
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(ThriftlyError, thriftly_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    logger.info("Exception handlers registered")
