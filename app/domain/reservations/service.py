"""Reservation service - Short-lived slot holds taken before payment"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ... import config
from ...database import commit_or_conflict
from ...locks import key_lock, slot_key
from ...models import SlotReservation
from ...shared.exceptions import SlotUnavailable, ValidationError
from ...shared.expiry import reservation_expiry, reservation_is_active, utcnow
from ...shared.validators import validate_iso_date
from .repository import ReservationRepository

logger = logging.getLogger(__name__)

HELD_MESSAGE = "This time slot is temporarily reserved. Please choose another slot."


def _required(value: Optional[str], label: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} is required")
    return str(value).strip()


class ReservationService:
    """Service layer for slot reservations"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ReservationRepository()

    def reserve(
        self,
        date: str,
        time_slot: str,
        booking_reference: str,
        details: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> SlotReservation:
        """
        Hold a slot for ``RESERVATION_TTL_MINUTES``.

        A repeat claim by the same reference renews the hold. Expired holds are
        deleted in the same transaction, so an abandoned checkout never blocks
        the slot past its expiry.
        """
        date = _required(date, "Date")
        time_slot = _required(time_slot, "Time slot")
        booking_reference = _required(booking_reference, "Booking reference")
        try:
            validate_iso_date(date)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        now = now or utcnow()
        expires_at = reservation_expiry(now, config.RESERVATION_TTL_MINUTES)

        with key_lock(slot_key(date, time_slot)):
            purged = self.repo.purge_expired(self.db, now)
            if purged:
                logger.info(f"🧹 Removed {purged} expired slot reservation(s)")

            if self.repo.slot_has_confirmed_booking(self.db, date, time_slot):
                self.db.rollback()
                logger.info(f"🚫 Slot {date} {time_slot} already booked")
                raise SlotUnavailable()

            reservation = self.repo.get_for_slot(self.db, date, time_slot)
            if reservation is not None and reservation_is_active(reservation.expires_at, now):
                if reservation.booking_reference != booking_reference:
                    self.db.rollback()
                    logger.info(
                        f"🚫 Slot {date} {time_slot} held by another checkout until {reservation.expires_at}"
                    )
                    raise SlotUnavailable(HELD_MESSAGE)

                reservation.expires_at = expires_at
                if details:
                    reservation.details = details
                logger.info(f"🔄 Renewed reservation {booking_reference} for {date} {time_slot}")
            else:
                reservation = SlotReservation(
                    booking_reference=booking_reference,
                    date=date,
                    time_slot=time_slot,
                    reserved_at=now,
                    expires_at=expires_at,
                    details=details,
                )
                self.db.add(reservation)
                logger.info(f"✅ Reserved {date} {time_slot} for {booking_reference}")

            commit_or_conflict(self.db, SlotUnavailable(HELD_MESSAGE))
            self.db.refresh(reservation)
            return reservation

    def get_pending_details(self, booking_reference: str) -> Optional[SlotReservation]:
        """Latest hold for a reference, expired or not"""
        reservations = self.repo.get_by_reference(self.db, booking_reference)
        if not reservations:
            return None
        return max(reservations, key=lambda r: r.reserved_at)

    def release(self, booking_reference: str) -> int:
        """Drop the holds for a reference once its booking is confirmed"""
        removed = self.repo.delete_for_reference(self.db, booking_reference)
        commit_or_conflict(self.db)
        if removed:
            logger.info(f"🗑️ Released {removed} reservation(s) for {booking_reference}")
        return removed
