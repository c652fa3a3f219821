import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)


class LibraryError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class NotFoundError(LibraryError):
    """A referenced author, book or borrower does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ValidationFailedError(LibraryError):
    """A write breaks a format or uniqueness rule."""

    status_code = status.HTTP_400_BAD_REQUEST


class BusinessRuleViolation(LibraryError):
    """A limit, availability, overdue or deletion rule blocks the request."""

    status_code = status.HTTP_400_BAD_REQUEST


class ConcurrencyConflict(LibraryError):
    """The records kept changing underneath the request."""

    status_code = status.HTTP_409_CONFLICT


class OperationTimeout(LibraryError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class InternalFailure(LibraryError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_response(status_code, message):
    return JSONResponse(status_code=status_code, content={"detail": message})


async def library_error_handler(request: Request, exc: LibraryError):
    return _error_response(exc.status_code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return _error_response(status.HTTP_400_BAD_REQUEST, "; ".join(messages))


async def stale_data_handler(request: Request, exc: StaleDataError):
    logger.info("Version conflict on %s %s: %s", request.method, request.url.path, exc)
    return _error_response(status.HTTP_409_CONFLICT, "Record was modified concurrently, please retry")


async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.info("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error_response(status.HTTP_400_BAD_REQUEST, "Record violates a database constraint")


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal database error")


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(LibraryError, library_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StaleDataError, stale_data_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
