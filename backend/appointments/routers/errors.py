# backend/appointments/routers/errors.py

from fastapi import HTTPException, status

from ..services.exceptions import (
    BookingError,
    InvalidInput,
    NotFound,
    SlotUnavailable,
)


def to_http(exc: BookingError) -> HTTPException:
    """Map a domain error to the HTTP response the API returns for it."""
    if isinstance(exc, NotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidInput):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, SlotUnavailable):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal error, try again later",
    )
