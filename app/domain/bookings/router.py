"""Booking router - FastAPI endpoints for booking operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_admin
from ...database import get_db
from ...models import Booking
from .schemas import (
    BookingCreate,
    BookingResponse,
    BookingStatus,
    BookingUpdate,
    CancelBookingAction,
    ClearBookingsResponse,
    RescheduleBookingAction,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"], dependencies=[Depends(get_current_admin)])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


def to_booking_response(b: Booking) -> BookingResponse:
    return BookingResponse(
        id=b.id,
        public_id=b.public_id,
        name=b.name,
        email=b.email,
        phone=b.phone,
        date=b.date,
        timeSlot=b.time_slot,
        serviceId=b.service_id,
        service=b.service,
        location=b.location,
        notes=b.notes,
        originalPrice=b.original_price or 0,
        discount=b.discount or 0,
        finalPrice=b.final_price or 0,
        deposit=b.deposit or 0,
        status=b.status,
        cancelledAt=b.cancelled_at,
        cancelledBy=b.cancelled_by,
        cancellationReason=b.cancellation_reason,
        cancellationCutoffAt=b.cancellation_cutoff_at,
        refundStatus=b.refund_status,
        refundAmount=b.refund_amount,
        refundNotes=b.refund_notes,
        completedAt=b.completed_at,
        rescheduledAt=b.rescheduled_at,
        rescheduledBy=b.rescheduled_by,
        rescheduleHistory=b.reschedule_history or [],
        bookingReference=b.booking_reference,
        paymentReference=b.payment_reference,
        paidAt=b.paid_at,
        created_at=b.created_at,
    )


@router.get("", response_model=list[BookingResponse])
async def get_bookings(
    status: Optional[BookingStatus] = Query(None),
    date: Optional[str] = Query(None),
    service: BookingService = Depends(get_booking_service),
):
    """List bookings, optionally filtered by status or date"""
    return [to_booking_response(b) for b in service.get_bookings(status, date)]


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: BookingCreate,
    service: BookingService = Depends(get_booking_service),
):
    """Create a confirmed booking (admin or post-payment)"""
    logger.info(f"📥 Creating booking for {data.date} {data.timeSlot}")
    return to_booking_response(service.create_booking(data))


@router.delete("", response_model=ClearBookingsResponse)
async def clear_bookings(service: BookingService = Depends(get_booking_service)):
    """Delete every booking"""
    return ClearBookingsResponse(deleted=service.clear_all())


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    return to_booking_response(service.get_booking(booking_id))


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: int,
    data: BookingUpdate = Body(...),
    service: BookingService = Depends(get_booking_service),
):
    """Cancel, reschedule or complete a booking"""
    if isinstance(data, CancelBookingAction):
        booking = service.cancel_booking(booking_id, data.reason, data.cancelledBy)
    elif isinstance(data, RescheduleBookingAction):
        booking = service.reschedule_booking(
            booking_id, data.date, data.timeSlot, data.rescheduledBy, data.notes
        )
    else:
        booking = service.complete_booking(booking_id)
    return to_booking_response(booking)
