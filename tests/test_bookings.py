"""Tests for the booking lifecycle: create, cancel, reschedule, complete"""

from datetime import datetime, timedelta

import pytest

from app.domain.bookings.schemas import BookingCreate
from app.domain.bookings.service import BookingService
from app.shared.exceptions import InvalidTransition, NotFound, SlotUnavailable, ValidationError
from conftest import NOW, booking_payload


def make_booking(db, **overrides):
    return BookingService(db).create_booking(BookingCreate(**booking_payload(**overrides)), now=NOW)


def test_create_booking_sets_cancellation_cutoff(db):
    booking = make_booking(db)
    assert booking.status == "confirmed"
    assert booking.cancellation_cutoff_at == datetime(2025, 6, 7, 10, 0)
    assert booking.reschedule_history == []


def test_double_booking_is_refused(db):
    make_booking(db)
    with pytest.raises(SlotUnavailable):
        make_booking(db, email="other@example.com")


def test_cancel_outside_window_marks_deposit_refundable(db):
    booking = make_booking(db)
    cancelled = BookingService(db).cancel_booking(booking.id, reason="Travelling", now=NOW)

    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_at == NOW
    assert cancelled.refund_status == "pending"
    assert cancelled.refund_amount == 50.0


def test_late_cancellation_retains_deposit(db):
    booking = make_booking(db)
    late = datetime(2025, 6, 9, 12, 0)
    cancelled = BookingService(db).cancel_booking(booking.id, now=late)

    assert cancelled.refund_status == "retained"
    assert cancelled.refund_amount == 0.0


def test_cancelled_slot_can_be_booked_again(db):
    booking = make_booking(db)
    BookingService(db).cancel_booking(booking.id, now=NOW)
    again = make_booking(db, email="next@example.com")
    assert again.status == "confirmed"


def test_terminal_bookings_reject_further_actions(db):
    service = BookingService(db)
    booking = make_booking(db)
    service.cancel_booking(booking.id, now=NOW)

    with pytest.raises(InvalidTransition):
        service.cancel_booking(booking.id, now=NOW)
    with pytest.raises(InvalidTransition):
        service.complete_booking(booking.id, now=NOW)
    with pytest.raises(InvalidTransition):
        service.reschedule_booking(booking.id, "2025-06-11", "10:00", now=NOW)


def test_reschedule_into_taken_slot_keeps_booking_unchanged(db):
    """Moving onto a confirmed booking fails and leaves both untouched"""
    service = BookingService(db)
    first = make_booking(db)
    make_booking(db, date="2025-06-11", email="second@example.com")

    with pytest.raises(SlotUnavailable):
        service.reschedule_booking(first.id, "2025-06-11", "10:00", now=NOW)

    db.expire_all()
    unchanged = service.get_booking(first.id)
    assert (unchanged.date, unchanged.time_slot) == ("2025-06-10", "10:00")
    assert unchanged.reschedule_history == []


def test_reschedule_records_history_and_moves_cutoff(db):
    service = BookingService(db)
    booking = make_booking(db)

    moved = service.reschedule_booking(
        booking.id, "2025-06-12", "14:00", rescheduled_by="client", notes="Clash", now=NOW
    )

    assert (moved.date, moved.time_slot) == ("2025-06-12", "14:00")
    assert moved.rescheduled_by == "client"
    assert moved.cancellation_cutoff_at == datetime(2025, 6, 9, 14, 0)
    assert len(moved.reschedule_history) == 1
    entry = moved.reschedule_history[0]
    assert entry["fromDate"] == "2025-06-10"
    assert entry["toTimeSlot"] == "14:00"
    assert entry["notes"] == "Clash"

    # The old slot is free again
    assert make_booking(db, email="other@example.com").status == "confirmed"


def test_reschedule_to_same_slot_is_rejected(db):
    booking = make_booking(db)
    with pytest.raises(ValidationError):
        BookingService(db).reschedule_booking(booking.id, "2025-06-10", "10:00", now=NOW)


def test_complete_booking(db):
    booking = make_booking(db)
    completed = BookingService(db).complete_booking(booking.id, now=NOW + timedelta(days=10))
    assert completed.status == "completed"
    assert completed.completed_at == NOW + timedelta(days=10)


def test_missing_booking_is_not_found(db):
    with pytest.raises(NotFound):
        BookingService(db).get_booking(999)


def test_create_from_payment_is_idempotent(db):
    service = BookingService(db)
    details = booking_payload()

    first = service.create_from_payment("ref-A", "pay-1", details, now=NOW)
    replay = service.create_from_payment("ref-A", "pay-1", details, now=NOW)

    assert replay.id == first.id
    assert first.payment_reference == "pay-1"
    assert first.paid_at == NOW
    assert len(service.get_bookings()) == 1


def test_create_from_payment_rejects_incomplete_details(db):
    with pytest.raises(ValidationError):
        BookingService(db).create_from_payment("ref-A", "pay-1", {"name": "Amina"}, now=NOW)


# ============================================================================
# HTTP
# ============================================================================


def test_booking_routes_require_admin(client):
    assert client.get("/bookings").status_code == 401
    wrong = client.get("/bookings", headers={"Authorization": "Bearer nope"})
    assert wrong.status_code == 401
    assert wrong.json()["code"] == "unauthorized"


def test_booking_http_lifecycle(client, admin_headers):
    created = client.post("/bookings", json=booking_payload(date="2030-03-01"), headers=admin_headers)
    assert created.status_code == 201
    booking = created.json()
    assert booking["status"] == "confirmed"
    assert booking["timeSlot"] == "10:00"

    duplicate = client.post(
        "/bookings", json=booking_payload(date="2030-03-01"), headers=admin_headers
    )
    assert duplicate.status_code == 409

    moved = client.patch(
        f"/bookings/{booking['id']}",
        json={"action": "reschedule", "date": "2030-03-02", "timeSlot": "11:00"},
        headers=admin_headers,
    )
    assert moved.status_code == 200
    assert moved.json()["date"] == "2030-03-02"
    assert moved.json()["rescheduleHistory"][0]["fromDate"] == "2030-03-01"

    cancelled = client.patch(
        f"/bookings/{booking['id']}",
        json={"action": "cancel", "reason": "Changed plans"},
        headers=admin_headers,
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert cancelled.json()["refundStatus"] == "pending"

    again = client.patch(
        f"/bookings/{booking['id']}", json={"action": "complete"}, headers=admin_headers
    )
    assert again.status_code == 409
    assert again.json()["code"] == "invalid_transition"

    listed = client.get("/bookings", params={"status": "cancelled"}, headers=admin_headers)
    assert [b["id"] for b in listed.json()] == [booking["id"]]


def test_booking_update_rejects_unknown_action(client, admin_headers):
    created = client.post("/bookings", json=booking_payload(date="2030-03-05"), headers=admin_headers)
    response = client.patch(
        f"/bookings/{created.json()['id']}", json={"action": "teleport"}, headers=admin_headers
    )
    assert response.status_code == 400


def test_create_booking_validates_contact_details(client, admin_headers):
    response = client.post(
        "/bookings", json=booking_payload(email="nope", phone="12"), headers=admin_headers
    )
    assert response.status_code == 400
    fields = {e["field"] for e in response.json()["errors"]}
    assert {"email", "phone"} <= fields


def test_clear_bookings(client, admin_headers):
    client.post("/bookings", json=booking_payload(date="2030-04-01"), headers=admin_headers)
    client.post("/bookings", json=booking_payload(date="2030-04-02"), headers=admin_headers)

    response = client.delete("/bookings", headers=admin_headers)
    assert response.json() == {"deleted": 2}
    assert client.get("/bookings", headers=admin_headers).json() == []
