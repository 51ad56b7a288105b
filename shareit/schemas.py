from pydantic import BaseModel, Field, field_validator
import datetime

from .models import MAX_ID, BookingStatus


class UserRead(BaseModel):
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True


class ItemRead(BaseModel):
    id: int
    name: str
    description: str
    available: bool

    class Config:
        from_attributes = True


class BookingBase(BaseModel):
    start: datetime.datetime
    end: datetime.datetime

    @field_validator("start", "end")
    @classmethod
    def to_naive_utc(cls, value: datetime.datetime) -> datetime.datetime:
        # Bookings are stored as naive UTC
        if value.tzinfo is not None:
            value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return value


class BookingCreate(BookingBase):
    # booker id will come from the caller identity header
    item_id: int = Field(alias="itemId", gt=0, le=MAX_ID)

    class Config:
        populate_by_name = True


class BookingRead(BookingBase):
    id: int
    status: BookingStatus
    booker: UserRead
    item: ItemRead

    class Config:
        from_attributes = True
