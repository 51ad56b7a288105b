"""
Interval and state predicates for bookings.

Each predicate exists twice: as a plain Python function over booking fields
and as the equivalent SQLAlchemy criterion used by the store queries. The
tests check that both agree for every state.
"""
import datetime
from enum import Enum as PyEnum

from sqlalchemy import and_, true

from .models import Booking, BookingStatus


class BookingState(str, PyEnum):
    ALL = "ALL"
    CURRENT = "CURRENT"
    PAST = "PAST"
    FUTURE = "FUTURE"
    WAITING = "WAITING"
    REJECTED = "REJECTED"


class ViewerRole(str, PyEnum):
    BOOKER = "BOOKER"
    OWNER = "OWNER"


def intervals_overlap(start1: datetime.datetime, end1: datetime.datetime,
                      start2: datetime.datetime, end2: datetime.datetime) -> bool:
    """
    Half-open interval overlap: [start1, end1) and [start2, end2) share
    at least one instant. Touching intervals do not overlap.
    """
    return start1 < end2 and start2 < end1


def overlap_criterion(start: datetime.datetime, end: datetime.datetime):
    # Existing start is before new end, existing end is after new start
    return and_(Booking.start < end, Booking.end > start)


def matches_state(state: BookingState, status: BookingStatus,
                  start: datetime.datetime, end: datetime.datetime,
                  now: datetime.datetime) -> bool:
    """Returns True if a booking with these fields belongs to `state` at `now`."""
    if state == BookingState.ALL:
        return True
    if state == BookingState.CURRENT:
        return start <= now <= end
    if state == BookingState.PAST:
        return end < now
    if state == BookingState.FUTURE:
        return start > now
    if state == BookingState.WAITING:
        return status == BookingStatus.WAITING
    if state == BookingState.REJECTED:
        return status == BookingStatus.REJECTED
    raise ValueError(f"Unknown state: {state}")


def state_criterion(state: BookingState, now: datetime.datetime):
    """SQL counterpart of matches_state()."""
    if state == BookingState.ALL:
        return true()
    if state == BookingState.CURRENT:
        return and_(Booking.start <= now, Booking.end >= now)
    if state == BookingState.PAST:
        return Booking.end < now
    if state == BookingState.FUTURE:
        return Booking.start > now
    if state == BookingState.WAITING:
        return Booking.status == BookingStatus.WAITING
    if state == BookingState.REJECTED:
        return Booking.status == BookingStatus.REJECTED
    raise ValueError(f"Unknown state: {state}")
