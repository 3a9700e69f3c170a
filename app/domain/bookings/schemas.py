"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_email, validate_iso_date, validate_phone

BookingStatus = Literal["confirmed", "cancelled", "completed"]


class BookingCreate(BaseModel):
    """Schema for creating a confirmed booking"""

    name: str
    email: str
    phone: str
    date: str
    timeSlot: str
    serviceId: str
    service: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    originalPrice: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    finalPrice: float = Field(default=0, ge=0)
    deposit: float = Field(default=0, ge=0)
    bookingReference: Optional[str] = None
    paymentReference: Optional[str] = None

    @field_validator("name", "timeSlot", "serviceId")
    @classmethod
    def not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return validate_phone(v)

    @field_validator("date")
    @classmethod
    def check_date(cls, v):
        return validate_iso_date(v)


class CancelBookingAction(BaseModel):
    action: Literal["cancel"]
    reason: Optional[str] = None
    cancelledBy: str = "admin"


class RescheduleBookingAction(BaseModel):
    action: Literal["reschedule"]
    date: str
    timeSlot: str
    rescheduledBy: str = "admin"
    notes: Optional[str] = None


class CompleteBookingAction(BaseModel):
    action: Literal["complete"]


BookingUpdate = Annotated[
    Union[CancelBookingAction, RescheduleBookingAction, CompleteBookingAction],
    Field(discriminator="action"),
]


class RescheduleEntry(BaseModel):
    fromDate: str
    fromTimeSlot: str
    toDate: str
    toTimeSlot: str
    rescheduledAt: str
    rescheduledBy: Optional[str] = None
    notes: Optional[str] = None


class BookingResponse(BaseModel):
    """Schema for booking response"""

    id: int
    public_id: Optional[str] = None
    name: str
    email: str
    phone: str
    date: str
    timeSlot: str
    serviceId: str
    service: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    originalPrice: float = 0
    discount: float = 0
    finalPrice: float = 0
    deposit: float = 0
    status: BookingStatus
    cancelledAt: Optional[datetime] = None
    cancelledBy: Optional[str] = None
    cancellationReason: Optional[str] = None
    cancellationCutoffAt: Optional[datetime] = None
    refundStatus: Optional[str] = None
    refundAmount: Optional[float] = None
    refundNotes: Optional[str] = None
    completedAt: Optional[datetime] = None
    rescheduledAt: Optional[datetime] = None
    rescheduledBy: Optional[str] = None
    rescheduleHistory: list[RescheduleEntry] = []
    bookingReference: Optional[str] = None
    paymentReference: Optional[str] = None
    paidAt: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClearBookingsResponse(BaseModel):
    deleted: int
