import datetime
from typing import Annotated, Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from .booking_service import BookingService, utc_now
from .config import settings
from .database import get_db
from .models import MAX_ID

user_id_header = APIKeyHeader(name=settings.USER_ID_HEADER, auto_error=False)


async def get_current_user_id(
        raw_user_id: Annotated[str | None, Depends(user_id_header)]
) -> int:
    """
    Reads the caller's user id from the identity header.
    The value is trusted as-is; it only has to be a positive integer that
    fits the id columns.
    """
    if raw_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing required header: {settings.USER_ID_HEADER}",
        )
    try:
        user_id = int(raw_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Header {settings.USER_ID_HEADER} must be an integer",
        )
    if user_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Header {settings.USER_ID_HEADER} must be greater than 0",
        )
    if user_id > MAX_ID:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Header {settings.USER_ID_HEADER} must not exceed {MAX_ID}",
        )
    return user_id


def get_clock() -> Callable[[], datetime.datetime]:
    return utc_now


def get_booking_service(
        db: Session = Depends(get_db),
        clock: Callable[[], datetime.datetime] = Depends(get_clock),
) -> BookingService:
    return BookingService(db, now=clock)
