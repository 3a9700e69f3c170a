"""Booking service - Business logic for the booking lifecycle"""

import logging
from datetime import datetime
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ... import config
from ...database import commit_or_conflict
from ...locks import key_lock, slot_key
from ...models import Booking
from ...shared.exceptions import (
    InvalidTransition,
    NotFound,
    SlotUnavailable,
    ValidationError,
)
from ...shared.expiry import reservation_is_active, utcnow
from ...shared.policies import (
    RefundPolicy,
    appointment_start,
    cancellation_cutoff,
    deposit_refund_policy,
)
from ...shared.validators import validate_iso_date
from ...utils.sanitization import clean_text
from ..reservations.repository import ReservationRepository
from .repository import BookingRepository
from .schemas import BookingCreate

logger = logging.getLogger(__name__)


def booking_key(booking_id: int) -> str:
    return f"booking:{booking_id}"


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session, refund_policy: Optional[RefundPolicy] = None):
        self.db = db
        self.repo = BookingRepository()
        self.reservations = ReservationRepository()
        self.refund_policy = refund_policy or deposit_refund_policy

    def get_bookings(self, status: Optional[str] = None, date: Optional[str] = None) -> list[Booking]:
        return self.repo.get_bookings(self.db, status, date)

    def get_booking(self, booking_id: int) -> Booking:
        booking = self.repo.get_booking_by_id(self.db, booking_id)
        if not booking:
            raise NotFound("Booking not found")
        return booking

    def create_booking(self, data: BookingCreate, now: Optional[datetime] = None) -> Booking:
        """Create a confirmed booking for a free slot"""
        return self._create(
            data,
            booking_reference=data.bookingReference,
            payment_reference=data.paymentReference,
            paid_at=None,
            now=now or utcnow(),
        )

    def create_from_payment(
        self,
        booking_reference: str,
        payment_reference: str,
        details: dict,
        paid_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Confirm a booking once its payment has been verified.

        Replayed notifications for the same payment or booking reference
        return the booking created the first time.
        """
        existing = self.repo.get_by_payment_reference(self.db, payment_reference)
        if existing is None and booking_reference:
            existing = self.repo.get_by_booking_reference(self.db, booking_reference)
        if existing is not None:
            logger.info(f"ℹ️ Payment {payment_reference} already produced booking {existing.id}")
            return existing

        try:
            data = BookingCreate.model_validate(details or {})
        except PydanticValidationError as e:
            logger.error(f"❌ Pending booking {booking_reference} has invalid details: {e}")
            raise ValidationError("The booking details for this payment are incomplete.") from e

        now = now or utcnow()
        return self._create(
            data,
            booking_reference=booking_reference,
            payment_reference=payment_reference,
            paid_at=paid_at or now,
            now=now,
        )

    def _create(
        self,
        data: BookingCreate,
        booking_reference: Optional[str],
        payment_reference: Optional[str],
        paid_at: Optional[datetime],
        now: datetime,
    ) -> Booking:
        with key_lock(slot_key(data.date, data.timeSlot)):
            if payment_reference:
                existing = self.repo.get_by_payment_reference(self.db, payment_reference)
                if existing is not None:
                    return existing
            if booking_reference:
                existing = self.repo.get_by_booking_reference(self.db, booking_reference)
                if existing is not None:
                    return existing

            if self.repo.get_confirmed_for_slot(self.db, data.date, data.timeSlot):
                logger.warning(f"🚫 Double booking prevented for {data.date} {data.timeSlot}")
                raise SlotUnavailable()

            hold = self.reservations.get_for_slot(self.db, data.date, data.timeSlot)
            if (
                hold is not None
                and reservation_is_active(hold.expires_at, now)
                and hold.booking_reference != booking_reference
            ):
                logger.warning(
                    f"🚫 Slot {data.date} {data.timeSlot} is held by checkout {hold.booking_reference}"
                )
                raise SlotUnavailable("This time slot is temporarily reserved. Please choose another slot.")

            window_hours = config.CANCELLATION_WINDOW_HOURS
            booking = Booking(
                name=data.name,
                email=data.email,
                phone=data.phone,
                date=data.date,
                time_slot=data.timeSlot,
                service_id=data.serviceId,
                service=data.service,
                location=data.location,
                notes=clean_text(data.notes, label="Notes"),
                original_price=data.originalPrice,
                discount=data.discount,
                final_price=data.finalPrice,
                deposit=data.deposit,
                status="confirmed",
                cancellation_window_hours=window_hours,
                cancellation_cutoff_at=cancellation_cutoff(
                    appointment_start(data.date, data.timeSlot), window_hours
                ),
                reschedule_history=[],
                booking_reference=booking_reference,
                payment_reference=payment_reference,
                paid_at=paid_at,
            )
            self.db.add(booking)

            if booking_reference:
                self.reservations.delete_for_reference(self.db, booking_reference)

            commit_or_conflict(self.db, SlotUnavailable())
            self.db.refresh(booking)

        logger.info(f"✅ Booking {booking.id} confirmed for {booking.date} {booking.time_slot}")
        return booking

    def cancel_booking(
        self,
        booking_id: int,
        reason: Optional[str] = None,
        cancelled_by: str = "admin",
        now: Optional[datetime] = None,
    ) -> Booking:
        now = now or utcnow()
        with key_lock(booking_key(booking_id)):
            booking = self.get_booking(booking_id)
            if booking.status != "confirmed":
                raise InvalidTransition(f"A {booking.status} booking cannot be cancelled.")

            decision = self.refund_policy(
                booking.deposit or 0.0, appointment_start(booking.date, booking.time_slot), now
            )

            booking.status = "cancelled"
            booking.cancelled_at = now
            booking.cancelled_by = cancelled_by
            booking.cancellation_reason = clean_text(reason, label="Cancellation reason")
            booking.refund_status = decision.status
            booking.refund_amount = decision.amount
            booking.refund_notes = decision.notes

            commit_or_conflict(self.db)
            self.db.refresh(booking)

        logger.info(f"🚫 Booking {booking_id} cancelled by {cancelled_by} (refund: {decision.status})")
        return booking

    def reschedule_booking(
        self,
        booking_id: int,
        to_date: str,
        to_time_slot: str,
        rescheduled_by: str = "admin",
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """Move a confirmed booking, keeping the prior slot in its history"""
        try:
            to_date = validate_iso_date(to_date)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if not to_time_slot or not to_time_slot.strip():
            raise ValidationError("Time slot is required")
        to_time_slot = to_time_slot.strip()
        now = now or utcnow()

        with key_lock(booking_key(booking_id)):
            booking = self.get_booking(booking_id)
            if booking.status != "confirmed":
                raise InvalidTransition(f"A {booking.status} booking cannot be rescheduled.")
            if booking.date == to_date and booking.time_slot == to_time_slot:
                raise ValidationError("The booking is already in that time slot.")

            with key_lock(slot_key(to_date, to_time_slot)):
                if self.repo.get_confirmed_for_slot(self.db, to_date, to_time_slot, exclude_id=booking.id):
                    logger.warning(
                        f"🚫 Reschedule of booking {booking_id} blocked: {to_date} {to_time_slot} is taken"
                    )
                    raise SlotUnavailable()

                entry = {
                    "fromDate": booking.date,
                    "fromTimeSlot": booking.time_slot,
                    "toDate": to_date,
                    "toTimeSlot": to_time_slot,
                    "rescheduledAt": now.isoformat(),
                    "rescheduledBy": rescheduled_by,
                    "notes": clean_text(notes, label="Notes"),
                }
                booking.reschedule_history = [*(booking.reschedule_history or []), entry]
                booking.date = to_date
                booking.time_slot = to_time_slot
                booking.rescheduled_at = now
                booking.rescheduled_by = rescheduled_by
                booking.cancellation_cutoff_at = cancellation_cutoff(
                    appointment_start(to_date, to_time_slot),
                    booking.cancellation_window_hours or config.CANCELLATION_WINDOW_HOURS,
                )

                commit_or_conflict(self.db, SlotUnavailable())
                self.db.refresh(booking)

        logger.info(f"🔄 Booking {booking_id} moved to {to_date} {to_time_slot}")
        return booking

    def complete_booking(self, booking_id: int, now: Optional[datetime] = None) -> Booking:
        now = now or utcnow()
        with key_lock(booking_key(booking_id)):
            booking = self.get_booking(booking_id)
            if booking.status != "confirmed":
                raise InvalidTransition(f"A {booking.status} booking cannot be completed.")
            booking.status = "completed"
            booking.completed_at = now
            commit_or_conflict(self.db)
            self.db.refresh(booking)

        logger.info(f"✅ Booking {booking_id} completed")
        return booking

    def clear_all(self) -> int:
        deleted = self.repo.delete_all(self.db)
        commit_or_conflict(self.db)
        logger.warning(f"⚠️ Cleared all bookings ({deleted} deleted)")
        return deleted
