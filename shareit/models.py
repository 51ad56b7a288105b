from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, TIMESTAMP, ForeignKey, Index
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
import datetime

from .database import Base


# Integer id columns are 32-bit on Postgres
MAX_ID = 2**31 - 1


# --- ENUM for Booking Status ---
class BookingStatus(str, PyEnum):
    WAITING = "WAITING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# --- User and Item are written by the user directory and item catalog. ---
# This service only reads them.
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(50), unique=True, nullable=False)


class Item(Base):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(String(300), nullable=False)

    # Static catalog attribute, bookings never toggle it
    available = Column(Boolean, nullable=False, default=True)

    owner_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)

    owner = relationship("User")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)

    item_id = Column(Integer, ForeignKey("items.id"), index=True, nullable=False)
    booker_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)

    # Naive UTC timestamps, the occupied interval is [start, end)
    start = Column("start_date", DateTime, nullable=False)
    end = Column("end_date", DateTime, nullable=False)

    status = Column(SQLEnum(BookingStatus), default=BookingStatus.WAITING, nullable=False)

    created_at = Column(TIMESTAMP, default=lambda: datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None))

    item = relationship("Item")
    booker = relationship("User")

    # The overlap check scans bookings of one item by interval
    __table_args__ = (
        Index('ix_bookings_item_interval', 'item_id', 'start_date', 'end_date'),
    )


class OutboxEvent(Base):
    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, index=True)

    # Status to track if the event has been sent
    status = Column(String(20), default="PENDING", nullable=False)

    # The Kafka topic to send the message to
    topic = Column(String(255), nullable=False)

    # The full JSON payload to be sent
    payload = Column(Text, nullable=False)

    created_at = Column(TIMESTAMP, default=lambda: datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None))

    __table_args__ = (
        Index('ix_outbox_events_status', 'status'),
    )
