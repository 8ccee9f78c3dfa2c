"""
Domain errors raised by the booking engine and the schedule registry.

Every failure a caller can see maps to exactly one kind:

    NotFound                404  schedule, reservation or day does not exist
    Conflict                409  capacity, duplicate booking, day closed
    InvalidWindow           422  date outside the month the operation allows
    InvalidInput            400  malformed date, negative capacity, bad payload
    Forbidden               403  acting on another user's reservation
    TerminalStateViolation  409  transition out of CANCELLED / COMPLETED
    DependencyFailure       503  database failure

Request bodies and query strings that fail pydantic validation are reported
as InvalidInput with code INVALID_REQUEST, so 422 always means InvalidWindow.

They are HTTPExceptions so routes can let them propagate unchanged; the
handler in `register_exception_handlers` renders them with their kind and
machine code.
"""

from typing import Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class BookingError(HTTPException):
    kind = "BookingError"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: str, detail: Optional[str] = None):
        super().__init__(status_code=self.http_status, detail=detail or code)
        self.code = code

    def __repr__(self) -> str:
        return f"<{self.kind}(code={self.code})>"


class NotFound(BookingError):
    kind = "NotFound"
    http_status = status.HTTP_404_NOT_FOUND


class Conflict(BookingError):
    kind = "Conflict"
    http_status = status.HTTP_409_CONFLICT


class InvalidWindow(BookingError):
    kind = "InvalidWindow"
    http_status = 422


class InvalidInput(BookingError):
    kind = "InvalidInput"
    http_status = status.HTTP_400_BAD_REQUEST


class Forbidden(BookingError):
    kind = "Forbidden"
    http_status = status.HTTP_403_FORBIDDEN


class TerminalStateViolation(BookingError):
    kind = "TerminalStateViolation"
    http_status = status.HTTP_409_CONFLICT


class DependencyFailure(BookingError):
    kind = "DependencyFailure"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "code": exc.code, "detail": exc.detail},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    return await booking_error_handler(
        request, InvalidInput("INVALID_REQUEST", "; ".join(messages) or "Invalid request")
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
