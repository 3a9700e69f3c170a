"""Reservation router - public slot hold endpoint used by checkout"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...rate_limiter import create_rate_limiter
from .schemas import ReserveSlotRequest, ReserveSlotResponse
from .service import ReservationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/booking", tags=["Reservations"])

reserve_rate_limit = create_rate_limiter(limit=30, window_seconds=60, key_prefix="reserve_slot")


def get_reservation_service(db: Session = Depends(get_db)) -> ReservationService:
    """Dependency injection for ReservationService"""
    return ReservationService(db)


@router.post("/reserve-slot", response_model=ReserveSlotResponse)
async def reserve_slot(
    data: ReserveSlotRequest,
    _: None = Depends(reserve_rate_limit),
    service: ReservationService = Depends(get_reservation_service),
):
    """Hold a slot while the client completes payment"""
    logger.info(f"📥 Reserve request for {data.date} {data.timeSlot} ({data.bookingReference})")
    reservation = service.reserve(
        data.date,
        data.timeSlot,
        data.bookingReference,
        details=data.details.model_dump(exclude_none=True) if data.details else None,
    )
    return ReserveSlotResponse(reserved=True, expiresAt=reservation.expires_at)
