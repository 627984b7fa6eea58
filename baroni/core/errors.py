"""Domain errors raised by the booking services.

Each error is an HTTPException so FastAPI renders it without extra
handlers; services never build response bodies themselves.
"""

from fastapi import HTTPException, status


class BookingError(HTTPException):
    """Base class for expected, client-visible booking failures."""

    default_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(status_code=status_code or self.default_status, detail=detail)


class ValidationFailedError(BookingError):
    default_status = status.HTTP_400_BAD_REQUEST


class InvalidStateError(BookingError):
    """The appointment is not in a status that allows the transition."""

    default_status = status.HTTP_400_BAD_REQUEST


class PaymentFailedError(BookingError):
    default_status = status.HTTP_400_BAD_REQUEST


class ForbiddenError(BookingError):
    default_status = status.HTTP_403_FORBIDDEN


class NotFoundError(BookingError):
    default_status = status.HTTP_404_NOT_FOUND


class SlotConflictError(BookingError):
    default_status = status.HTTP_409_CONFLICT


class ActiveAppointmentError(BookingError):
    """An operation would orphan a pending or approved appointment."""

    default_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, appointment_id=None, status_code: int | None = None):
        super().__init__(detail, status_code=status_code)
        self.appointment_id = appointment_id
