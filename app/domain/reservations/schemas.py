"""Reservation domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class PendingBookingDetails(BaseModel):
    """Booking payload held with the reservation until payment completes"""

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    serviceId: Optional[str] = None
    service: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    originalPrice: Optional[float] = None
    discount: Optional[float] = None
    finalPrice: Optional[float] = None
    deposit: Optional[float] = None


class ReserveSlotRequest(BaseModel):
    date: str
    timeSlot: str
    bookingReference: str
    details: Optional[PendingBookingDetails] = None


class ReserveSlotResponse(BaseModel):
    reserved: bool
    expiresAt: datetime
