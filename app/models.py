import uuid

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


class SlotReservation(Base):
    """Short-lived hold on a (date, time_slot) pair while the client pays"""

    __tablename__ = "slot_reservations"
    __table_args__ = (UniqueConstraint("date", "time_slot", name="uq_reservation_slot"),)

    id = Column(Integer, primary_key=True, index=True)
    booking_reference = Column(String(100), nullable=False, index=True)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    time_slot = Column(String(64), nullable=False)
    reserved_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    # Booking payload captured at checkout, used to create the booking after payment
    details = Column(JSON, nullable=True)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # No two confirmed bookings may share a slot
        Index(
            "uq_bookings_confirmed_slot",
            "date",
            "time_slot",
            unique=True,
            sqlite_where=text("status = 'confirmed'"),
            postgresql_where=text("status = 'confirmed'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)

    # Client contact
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=False)

    # Appointment
    date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    time_slot = Column(String(64), nullable=False)
    service_id = Column(String(100), nullable=False)
    service = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    # Pricing
    original_price = Column(Float, default=0)
    discount = Column(Float, default=0)
    final_price = Column(Float, default=0)
    deposit = Column(Float, default=0)

    # Status: confirmed -> cancelled | completed
    status = Column(String(20), nullable=False, default="confirmed")

    # Cancellation
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(50), nullable=True)  # admin, client
    cancellation_reason = Column(Text, nullable=True)
    cancellation_window_hours = Column(Integer, nullable=True)
    cancellation_cutoff_at = Column(DateTime, nullable=True)

    # Refund tracking is independent of status
    refund_status = Column(String(20), nullable=True)  # not_required, pending, retained, refunded
    refund_amount = Column(Float, nullable=True)
    refund_notes = Column(Text, nullable=True)

    completed_at = Column(DateTime, nullable=True)

    # Rescheduling
    rescheduled_at = Column(DateTime, nullable=True)
    rescheduled_by = Column(String(100), nullable=True)
    reschedule_history = Column(JSON, default=list, nullable=False)

    # Payment linkage
    booking_reference = Column(String(100), nullable=True, index=True)
    payment_reference = Column(String(255), unique=True, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}


class Consultation(Base):
    __tablename__ = "consultations"

    id = Column(Integer, primary_key=True, index=True)
    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False)
    client_phone = Column(String(50), nullable=True)
    consultation_date = Column(String(32), nullable=False)
    consultation_type = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    # Status: pending -> completed (proceed) | declined (decline)
    status = Column(String(20), nullable=False, default="pending")
    admin_decision = Column(String(20), nullable=True)  # proceed, decline
    admin_decision_at = Column(DateTime, nullable=True)
    admin_decision_notes = Column(Text, nullable=True)

    contract_id = Column(Integer, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}


class Contract(Base):
    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True, index=True)
    consultation_id = Column(Integer, nullable=False, unique=True, index=True)
    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False)

    # Opaque token for the client's private signing link
    contract_token = Column(String(64), unique=True, nullable=False, index=True)
    contract_date = Column(String(10), nullable=False)  # YYYY-MM-DD
    project_description = Column(Text, nullable=True)
    project_cost = Column(Float, nullable=False)
    contract_terms = Column(JSON, nullable=False)

    # Status: pending -> signed | expired (monotonic)
    status = Column(String(20), nullable=False, default="pending")
    signed_at = Column(DateTime, nullable=True)
    signed_by_name = Column(String(255), nullable=True)
    signature_data = Column(Text, nullable=True)  # Base64 image or typed name
    signature_type = Column(String(10), nullable=False, default="typed")  # typed, drawn
    client_ip_address = Column(String(64), nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}


class Invoice(Base):
    """Time-boxed payable request tied to a signed contract"""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    # Public UUID for client payment links (prevents enumeration)
    public_id = Column(String(36), unique=True, nullable=False, index=True, default=generate_public_id)
    contract_id = Column(Integer, nullable=False, index=True)
    consultation_id = Column(Integer, nullable=True)
    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False)

    invoice_number = Column(String(50), unique=True, nullable=False, index=True)
    invoice_type = Column(String(20), nullable=False)  # full, downpayment, final
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    amount = Column(Float, nullable=False)
    amount_paid = Column(Float, nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="KES")

    # Status: draft -> sent -> paid | expired; cancelled from any open state
    status = Column(String(20), nullable=False, default="draft")

    issue_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    expiry_date = Column(DateTime, nullable=False)
    sent_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(255), nullable=True)
    payment_link = Column(String(500), nullable=True)
    # Ledger of applied payments: [{reference, amount, paidAt}]
    payments = Column(JSON, default=list, nullable=False)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}
