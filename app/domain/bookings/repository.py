"""Booking repository - Database operations for bookings"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Booking


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_bookings(
        db: Session, status: Optional[str] = None, date: Optional[str] = None
    ) -> list[Booking]:
        query = db.query(Booking)
        if status:
            query = query.filter(Booking.status == status)
        if date:
            query = query.filter(Booking.date == date)
        return query.order_by(Booking.date, Booking.time_slot, Booking.id).all()

    @staticmethod
    def get_booking_by_id(db: Session, booking_id: int) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def get_by_payment_reference(db: Session, payment_reference: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.payment_reference == payment_reference).first()

    @staticmethod
    def get_by_booking_reference(db: Session, booking_reference: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.booking_reference == booking_reference).first()

    @staticmethod
    def get_confirmed_for_slot(
        db: Session, date: str, time_slot: str, exclude_id: Optional[int] = None
    ) -> Optional[Booking]:
        query = db.query(Booking).filter(
            Booking.date == date,
            Booking.time_slot == time_slot,
            Booking.status == "confirmed",
        )
        if exclude_id is not None:
            query = query.filter(Booking.id != exclude_id)
        return query.first()

    @staticmethod
    def delete_all(db: Session) -> int:
        """Delete every booking (not committed)"""
        return db.query(Booking).delete(synchronize_session=False)
