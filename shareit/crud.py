import json
import datetime
from typing import Iterable
from sqlalchemy import select, update, exists, func
from sqlalchemy.orm import Session, joinedload
from . import models
from .models import Booking, BookingStatus, Item
from .booking_filters import BookingState, ViewerRole, overlap_criterion, state_criterion
from .config import settings  # Need this for the topic name


# --- User directory / item catalog (read-only) ---

def user_exists(db: Session, user_id: int) -> bool:
    return db.query(exists().where(models.User.id == user_id)).scalar()


def get_user(db: Session, user_id: int):
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_item(db: Session, item_id: int):
    return db.query(models.Item).filter(models.Item.id == item_id).first()


def lock_item_for_booking(db: Session, item_id: int):
    """
    Takes a row lock on the item so that concurrent creations for the same
    item serialize on the database. SQLite ignores FOR UPDATE; the service
    also holds an in-process lock for the same item.
    """
    stmt = select(models.Item).where(models.Item.id == item_id).with_for_update()
    return db.execute(stmt).scalar_one_or_none()


# --- Booking store ---

def _with_parties(query):
    # Booker, item and item owner always come back with the booking
    return query.options(
        joinedload(Booking.booker),
        joinedload(Booking.item).joinedload(Item.owner),
    )


def check_booking_conflict(
        db: Session,
        item_id: int,
        start: datetime.datetime,
        end: datetime.datetime,
        exclude_statuses: Iterable[BookingStatus] = (BookingStatus.REJECTED,),
) -> bool:
    """
    Checks if a new booking for a given item and interval conflicts
    with any existing booking whose status is not excluded.

    Returns True if a conflict exists, False otherwise.
    """
    query = db.query(Booking.id).filter(
        Booking.item_id == item_id,
        overlap_criterion(start, end),
    )
    excluded = list(exclude_statuses)
    if excluded:
        query = query.filter(Booking.status.notin_(excluded))

    return query.first() is not None


def save_booking(db: Session, booking: Booking) -> Booking:
    """
    Adds the booking to the session and flushes it to get its ID.
    Note: Does NOT commit. The service owns the transaction.
    """
    db.add(booking)
    db.flush()
    return booking


def get_booking_with_parties(db: Session, booking_id: int):
    return _with_parties(db.query(Booking)).filter(Booking.id == booking_id).first()


def get_bookings(db: Session, role: ViewerRole, viewer_id: int, state: BookingState,
                 now: datetime.datetime) -> list[Booking]:
    """
    Single (role, state) dispatch behind the booker and owner listings.
    Results are ordered by start, newest first.
    """
    query = _with_parties(db.query(Booking))
    if role == ViewerRole.BOOKER:
        query = query.filter(Booking.booker_id == viewer_id)
    elif role == ViewerRole.OWNER:
        query = query.join(Booking.item).filter(Item.owner_id == viewer_id)
    else:
        raise ValueError(f"Unknown role: {role}")

    return (
        query.filter(state_criterion(state, now))
        .order_by(Booking.start.desc(), Booking.id.desc())
        .all()
    )


def get_bookings_by_booker(db: Session, booker_id: int, state: BookingState,
                           now: datetime.datetime) -> list[Booking]:
    return get_bookings(db, ViewerRole.BOOKER, booker_id, state, now)


def get_bookings_by_item_owner(db: Session, owner_id: int, state: BookingState,
                               now: datetime.datetime) -> list[Booking]:
    return get_bookings(db, ViewerRole.OWNER, owner_id, state, now)


def transition_booking_status(db: Session, booking_id: int, from_status: BookingStatus,
                              to_status: BookingStatus) -> bool:
    """
    Conditionally moves a booking from one status to another.
    Returns False when the booking was no longer in `from_status`,
    so only one of several concurrent transitions can win.
    Note: Does NOT commit.
    """
    stmt = (
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == from_status)
        .values(status=to_status)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return result.rowcount == 1


# --- Queries consumed by the item catalog ---

def exists_approved_past_booking(db: Session, item_id: int, booker_id: int,
                                 now: datetime.datetime) -> bool:
    """True when the user has an approved booking of the item that already ended."""
    return db.query(Booking.id).filter(
        Booking.item_id == item_id,
        Booking.booker_id == booker_id,
        Booking.status == BookingStatus.APPROVED,
        Booking.end < now,
    ).first() is not None


def _nearest_approved(db: Session, item_ids: list[int], criterion, order_by) -> list[Booking]:
    # One row per item: the first approved booking in `order_by` order
    ranked = select(
        Booking.id,
        func.row_number().over(partition_by=Booking.item_id, order_by=order_by).label("row_num"),
    ).where(
        Booking.item_id.in_(item_ids),
        Booking.status == BookingStatus.APPROVED,
        criterion,
    ).subquery()

    return db.query(Booking).join(ranked, Booking.id == ranked.c.id).filter(ranked.c.row_num == 1).all()


def get_last_and_next_bookings(db: Session, item_ids: Iterable[int],
                               now: datetime.datetime) -> dict[int, tuple]:
    """
    For each item, returns (last, next): the approved booking that ended
    most recently before `now` and the approved booking starting soonest
    after `now`. Either may be None.
    """
    item_ids = list(item_ids)
    if not item_ids:
        return {}

    last = {item_id: None for item_id in item_ids}
    nxt = {item_id: None for item_id in item_ids}

    for booking in _nearest_approved(db, item_ids, Booking.end < now,
                                     [Booking.end.desc(), Booking.id.desc()]):
        last[booking.item_id] = booking
    for booking in _nearest_approved(db, item_ids, Booking.start > now,
                                     [Booking.start.asc(), Booking.id.asc()]):
        nxt[booking.item_id] = booking

    return {item_id: (last[item_id], nxt[item_id]) for item_id in item_ids}


# --- Outbox ---

def create_booking_event_in_outbox(db: Session, booking: Booking, event_type: str):
    """
    Creates a booking lifecycle event in the outbox table.
    Note: Does NOT commit. The event is written in the same transaction
    as the booking change it describes.
    """
    # 1. Create the Kafka message payload
    payload = {
        "event_type": event_type,
        "booking_id": booking.id,
        "item_id": booking.item_id,
        "booker_id": booking.booker_id,
        "status": BookingStatus(booking.status).value,
        "start": booking.start.isoformat(),
        "end": booking.end.isoformat(),
    }

    # 2. Create the outbox event object
    db_outbox_event = models.OutboxEvent(
        topic=settings.KAFKA_BOOKING_TOPIC,
        payload=json.dumps(payload),
        status="PENDING"
    )

    # 3. Add to the session
    db.add(db_outbox_event)
    return db_outbox_event
