import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from venue_booking.domain.exceptions import PersistenceError, ValidationError, VenueBookingError

logger = logging.getLogger(__name__)


def error_body(exc: VenueBookingError) -> dict:
    body = {"error": exc.reason, "message": exc.message}
    if exc.details:
        body["details"] = exc.details
    return body


async def handle_domain_error(request: Request, exc: VenueBookingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.reason)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc))


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "message": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    error = ValidationError("Request validation failed", details={"fields": fields})
    return JSONResponse(status_code=error.status_code, content=error_body(error))


async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    error = PersistenceError("Could not save your request, please try again later")
    return JSONResponse(status_code=error.status_code, content=error_body(error))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(VenueBookingError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(SQLAlchemyError, handle_database_error)
