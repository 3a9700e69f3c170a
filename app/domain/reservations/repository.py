"""Reservation repository - Database operations for slot holds"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Booking, SlotReservation


class ReservationRepository:
    """Repository for slot reservation database operations"""

    @staticmethod
    def purge_expired(db: Session, now: datetime) -> int:
        """Delete every reservation that no longer blocks its slot (not committed)"""
        return (
            db.query(SlotReservation)
            .filter(SlotReservation.expires_at <= now)
            .delete(synchronize_session=False)
        )

    @staticmethod
    def get_for_slot(db: Session, date: str, time_slot: str) -> Optional[SlotReservation]:
        return (
            db.query(SlotReservation)
            .filter(SlotReservation.date == date, SlotReservation.time_slot == time_slot)
            .first()
        )

    @staticmethod
    def get_by_reference(db: Session, booking_reference: str) -> list[SlotReservation]:
        return (
            db.query(SlotReservation)
            .filter(SlotReservation.booking_reference == booking_reference)
            .all()
        )

    @staticmethod
    def delete_for_reference(db: Session, booking_reference: str) -> int:
        """Delete the holds for a reference (not committed)"""
        return (
            db.query(SlotReservation)
            .filter(SlotReservation.booking_reference == booking_reference)
            .delete(synchronize_session=False)
        )

    @staticmethod
    def slot_has_confirmed_booking(db: Session, date: str, time_slot: str) -> bool:
        return (
            db.query(Booking.id)
            .filter(
                Booking.date == date,
                Booking.time_slot == time_slot,
                Booking.status == "confirmed",
            )
            .first()
            is not None
        )
