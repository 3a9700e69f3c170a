"""
Shared fixtures: a throwaway SQLite database per test, an HTTP client wired to
it, and an in-memory payment gateway.
"""

import os

# Configuration is read at import time, so set it before the app is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ.pop("REDIS_URL", None)
os.environ.pop("REDIS_HOST", None)

from datetime import datetime, timedelta  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.database import Base, build_engine, get_db  # noqa: E402
from app.domain.consultations.schemas import ConsultationCreate  # noqa: E402
from app.domain.consultations.service import ConsultationService  # noqa: E402
from app.domain.contracts.schemas import ContractCreate, ContractSignRequest  # noqa: E402
from app.domain.contracts.service import ContractService  # noqa: E402
from app.domain.payments.gateway import (  # noqa: E402
    CheckoutSession,
    PaymentGateway,
    VerifiedTransaction,
    get_payment_gateway,
)
from app.domain.payments.router import get_dodo_gateway, get_paystack_gateway  # noqa: E402
from app.main import app  # noqa: E402

ADMIN_HEADERS = {"Authorization": "Bearer test-admin-token"}

# Fixed clock for service-level tests
NOW = datetime(2025, 6, 1, 8, 0, 0)


class FakeGateway(PaymentGateway):
    """Records checkout requests and answers verifications from a dict"""

    name = "fake"

    def __init__(self):
        self.sessions: list[dict] = []
        self.transactions: dict[str, VerifiedTransaction] = {}
        self.fail_with: Optional[Exception] = None

    async def initialize_transaction(
        self,
        email,
        amount,
        currency,
        reference,
        metadata,
        customer_name=None,
        callback_url=None,
    ):
        if self.fail_with is not None:
            raise self.fail_with
        self.sessions.append(
            {
                "email": email,
                "amount": amount,
                "currency": currency,
                "reference": reference,
                "metadata": metadata,
            }
        )
        return CheckoutSession(
            authorization_url=f"https://checkout.test/{reference}",
            reference=reference,
            provider=self.name,
        )

    async def verify_transaction(self, reference):
        if self.fail_with is not None:
            raise self.fail_with
        return self.transactions[reference]


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def client(session_factory, fake_gateway):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway
    app.dependency_overrides[get_paystack_gateway] = lambda: fake_gateway
    app.dependency_overrides[get_dodo_gateway] = lambda: fake_gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)


def booking_payload(**overrides) -> dict:
    payload = {
        "name": "Amina Wanjiru",
        "email": "amina@example.com",
        "phone": "+254712345678",
        "date": "2025-06-10",
        "timeSlot": "10:00",
        "serviceId": "portrait-session",
        "service": "Portrait Session",
        "finalPrice": 150.0,
        "deposit": 50.0,
    }
    payload.update(overrides)
    return payload


def make_signed_contract(db, project_cost=12500.0, now=NOW, terms=None):
    """Consultation -> proceed -> contract -> signed, all at ``now``"""
    consultation = ConsultationService(db).create_consultation(
        ConsultationCreate(
            clientName="Brian Otieno",
            clientEmail="brian@example.com",
            consultationDate="2025-05-28",
            consultationType="branding",
        )
    )
    ConsultationService(db).record_decision(consultation.id, "proceed", now=now)
    contracts = ContractService(db)
    contract = contracts.create_contract(
        consultation.id,
        ContractCreate(projectCost=project_cost, projectDescription="Brand shoot", terms=terms or {}),
        now=now,
    )
    return contracts.sign_contract(
        contract.contract_token,
        ContractSignRequest(signatureData="Brian Otieno"),
        client_ip="127.0.0.1",
        now=now + timedelta(hours=1),
    )
