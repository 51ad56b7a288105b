import datetime
from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from typing import Callable, List, Annotated

from .. import schemas
from ..booking_filters import BookingState
from ..booking_service import BookingService
from ..models import MAX_ID
from ..dependencies import get_booking_service, get_clock, get_current_user_id


router = APIRouter(prefix="/bookings", tags=["Bookings"])


def parse_approved(approved: str) -> bool:
    """Accepts 'true' or 'false' in any letter case."""
    value = approved.strip().lower()
    if value not in ("true", "false"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Parameter 'approved' must be true or false"
        )
    return value == "true"


@router.post("", response_model=schemas.BookingRead)
def create_booking(
        booking: schemas.BookingCreate,
        user_id: Annotated[int, Depends(get_current_user_id)],
        service: BookingService = Depends(get_booking_service),
        clock: Callable[[], datetime.datetime] = Depends(get_clock),
):
    """
    Request a booking of an item for the calling user.
    """
    if booking.start >= booking.end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Booking end must be after booking start."
        )
    if booking.start <= clock():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Booking start and end must be in the future."
        )

    return service.create(
        user_id=user_id,
        item_id=booking.item_id,
        start=booking.start,
        end=booking.end,
    )


@router.get("", response_model=List[schemas.BookingRead])
def read_booker_bookings(
        user_id: Annotated[int, Depends(get_current_user_id)],
        state: BookingState = BookingState.ALL,
        service: BookingService = Depends(get_booking_service),
):
    """
    Get the calling user's bookings, newest start first.
    """
    return service.list_for_booker(user_id, state)


@router.get("/owner", response_model=List[schemas.BookingRead])
def read_owner_bookings(
        user_id: Annotated[int, Depends(get_current_user_id)],
        state: BookingState = BookingState.ALL,
        service: BookingService = Depends(get_booking_service),
):
    """
    Get bookings of items owned by the calling user, newest start first.
    """
    return service.list_for_owner(user_id, state)


@router.get("/{booking_id}", response_model=schemas.BookingRead)
def read_booking(
        user_id: Annotated[int, Depends(get_current_user_id)],
        booking_id: Annotated[int, Path(gt=0, le=MAX_ID)],
        service: BookingService = Depends(get_booking_service),
):
    """
    Get one booking. Only its booker and the item's owner may see it.
    """
    return service.get_for_viewer(user_id, booking_id)


@router.patch("/{booking_id}", response_model=schemas.BookingRead)
def update_booking_state(
        user_id: Annotated[int, Depends(get_current_user_id)],
        booking_id: Annotated[int, Path(gt=0, le=MAX_ID)],
        approved: Annotated[str, Query()],
        service: BookingService = Depends(get_booking_service),
):
    """
    Approve or reject a WAITING booking. Only the item's owner may do this.
    """
    return service.update_state_by_owner(user_id, booking_id, parse_approved(approved))
