import datetime
import logging
from typing import Callable

from sqlalchemy.orm import Session

from . import crud
from .booking_filters import BookingState
from .exceptions import NotFoundError, ConditionsNotMetError
from .locks import KeyedLock, booking_locks
from .models import Booking, BookingStatus

logger = logging.getLogger("booking_service")


def utc_now() -> datetime.datetime:
    """Current time as a naive UTC timestamp, matching stored bookings."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class BookingService:
    """
    Booking state machine and access rules. This is the only code that
    writes Booking rows.

    Every precondition is checked before anything is written, so a failed
    call leaves the store untouched.
    """

    def __init__(self, db: Session, now: Callable[[], datetime.datetime] = utc_now,
                 locks: KeyedLock = booking_locks):
        self.db = db
        self.now = now
        self.locks = locks

    def create(self, user_id: int, item_id: int, start: datetime.datetime,
               end: datetime.datetime) -> Booking:
        logger.info(f"User {user_id} requests item {item_id} from {start} to {end}")
        self._ensure_user_exists(user_id)

        item = crud.get_item(self.db, item_id)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found")
        if not item.available:
            raise ConditionsNotMetError(f"Item {item_id} is not available for booking")
        if item.owner_id == user_id:
            raise ConditionsNotMetError(f"User {user_id} owns item {item_id} and cannot book it")

        if start >= end:
            raise ConditionsNotMetError("Booking end must be after booking start")
        if start <= self.now():
            raise ConditionsNotMetError("Booking must start in the future")

        # Overlap check, insert and commit form one unit per item
        with self.locks.hold(("item", item_id)):
            crud.lock_item_for_booking(self.db, item_id)
            if crud.check_booking_conflict(self.db, item_id=item_id, start=start, end=end):
                raise ConditionsNotMetError(
                    f"Item {item_id} is already booked between {start} and {end}"
                )

            booking = crud.save_booking(self.db, Booking(
                item_id=item_id,
                booker_id=user_id,
                start=start,
                end=end,
                status=BookingStatus.WAITING,
            ))
            crud.create_booking_event_in_outbox(self.db, booking, "booking.created")
            self.db.commit()

        logger.info(f"Created booking {booking.id} for item {item_id}")
        return crud.get_booking_with_parties(self.db, booking.id)

    def get_for_viewer(self, user_id: int, booking_id: int) -> Booking:
        logger.info(f"User {user_id} requests booking {booking_id}")
        self._ensure_user_exists(user_id)

        booking = self._get_booking(booking_id)
        if user_id not in (booking.booker_id, booking.item.owner_id):
            raise ConditionsNotMetError(
                f"User {user_id} is neither the booker nor the owner of item {booking.item_id}"
            )
        return booking

    def update_state_by_owner(self, user_id: int, booking_id: int, approved: bool) -> Booking:
        logger.info(f"User {user_id} sets approved={approved} on booking {booking_id}")
        target = BookingStatus.APPROVED if approved else BookingStatus.REJECTED

        with self.locks.hold(("booking", booking_id)):
            booking = self._get_booking(booking_id)

            if booking.item.owner_id != user_id:
                raise ConditionsNotMetError(
                    f"User {user_id} is not the owner of item {booking.item_id}"
                )
            if booking.status != BookingStatus.WAITING:
                raise ConditionsNotMetError(
                    f"Booking {booking_id} is {booking.status.value}, only WAITING bookings can be approved or rejected"
                )

            if not crud.transition_booking_status(self.db, booking_id, BookingStatus.WAITING, target):
                # Another process moved it out of WAITING after we read it
                raise ConditionsNotMetError(f"Booking {booking_id} is no longer WAITING")

            self.db.refresh(booking)
            crud.create_booking_event_in_outbox(self.db, booking, f"booking.{target.value.lower()}")
            self.db.commit()

        logger.info(f"Booking {booking_id} is now {target.value}")
        return crud.get_booking_with_parties(self.db, booking_id)

    def list_for_booker(self, user_id: int, state: BookingState = BookingState.ALL) -> list[Booking]:
        logger.info(f"User {user_id} lists own bookings in state {state.value}")
        self._ensure_user_exists(user_id)
        return crud.get_bookings_by_booker(self.db, user_id, state, self.now())

    def list_for_owner(self, user_id: int, state: BookingState = BookingState.ALL) -> list[Booking]:
        logger.info(f"User {user_id} lists bookings of owned items in state {state.value}")
        self._ensure_user_exists(user_id)
        return crud.get_bookings_by_item_owner(self.db, user_id, state, self.now())

    def _ensure_user_exists(self, user_id: int):
        if not crud.user_exists(self.db, user_id):
            raise NotFoundError(f"User {user_id} not found")

    def _get_booking(self, booking_id: int) -> Booking:
        booking = crud.get_booking_with_parties(self.db, booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking
