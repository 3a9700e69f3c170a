"""Tests for per-key locking"""

import threading

import pytest

from app import locks
from app.domain.contracts.service import ContractService
from app.domain.invoices.service import InvoiceService
from app.locks import key_lock
from app.shared.exceptions import Conflict
from conftest import NOW, make_signed_contract


def test_lock_entry_is_dropped_on_exit():
    with key_lock("invoice:42"):
        assert "invoice:42" in locks._locks
    assert "invoice:42" not in locks._locks


def test_lock_entry_is_dropped_when_body_raises():
    with pytest.raises(RuntimeError):
        with key_lock("invoice:43"):
            raise RuntimeError("boom")
    assert "invoice:43" not in locks._locks


def test_waiter_times_out_while_key_is_held():
    errors = []

    def contend():
        try:
            with key_lock("slot:2025-06-10:10:00", wait_seconds=0.05):
                pass
        except Conflict as e:
            errors.append(e)

    with key_lock("slot:2025-06-10:10:00"):
        worker = threading.Thread(target=contend)
        worker.start()
        worker.join()
        assert locks._locks["slot:2025-06-10:10:00"][1] == 1

    assert len(errors) == 1
    assert locks._locks == {}


def test_waiters_share_one_lock_and_leave_nothing_behind():
    order = []
    inside = threading.Event()
    release = threading.Event()

    def holder():
        with key_lock("contract:abc"):
            inside.set()
            release.wait(timeout=5)
            order.append("holder")

    def waiter():
        with key_lock("contract:abc"):
            order.append("waiter")

    first = threading.Thread(target=holder)
    first.start()
    inside.wait(timeout=5)
    second = threading.Thread(target=waiter)
    second.start()
    release.set()
    first.join()
    second.join()

    assert order == ["holder", "waiter"]
    assert locks._locks == {}


def test_workflows_release_every_key(db):
    contract = make_signed_contract(db)
    ContractService(db).get_contracts(now=NOW)
    InvoiceService(db).get_invoices(contract_id=contract.id, now=NOW)

    assert locks._locks == {}
