"""Consultation service - Decision workflow that gates contract creation"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...database import commit_or_conflict
from ...locks import key_lock
from ...models import Consultation
from ...shared.exceptions import InvalidTransition, NotFound, ValidationError
from ...shared.expiry import utcnow
from ...utils.sanitization import clean_text
from .repository import ConsultationRepository
from .schemas import ConsultationCreate

logger = logging.getLogger(__name__)

DECISION_STATUS = {"proceed": "completed", "decline": "declined"}


def consultation_key(consultation_id: int) -> str:
    return f"consultation:{consultation_id}"


class ConsultationService:
    """Service layer for consultation business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ConsultationRepository()

    def get_consultations(self, status: Optional[str] = None) -> list[Consultation]:
        return self.repo.get_consultations(self.db, status)

    def get_consultation(self, consultation_id: int) -> Consultation:
        consultation = self.repo.get_consultation_by_id(self.db, consultation_id)
        if not consultation:
            raise NotFound("Consultation not found")
        return consultation

    def create_consultation(self, data: ConsultationCreate) -> Consultation:
        logger.info(f"📥 Recording consultation for {data.clientEmail} on {data.consultationDate}")
        notes = clean_text(data.notes, max_length=5000, label="Notes")

        return self.repo.create_consultation(
            self.db,
            client_name=data.clientName,
            client_email=data.clientEmail,
            client_phone=data.clientPhone,
            consultation_date=data.consultationDate,
            consultation_type=data.consultationType,
            notes=notes,
            status="pending",
        )

    def record_decision(
        self,
        consultation_id: int,
        decision: str,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Consultation:
        """
        Record the admin's proceed/decline outcome.

        The decision is final: the consultation becomes read-only history and
        only ``proceed`` allows a contract to be drawn up.
        """
        if decision not in DECISION_STATUS:
            raise ValidationError("Decision must be 'proceed' or 'decline'")
        notes = clean_text(notes, max_length=5000, label="Notes")

        with key_lock(consultation_key(consultation_id)):
            consultation = self.get_consultation(consultation_id)
            if consultation.admin_decision:
                raise InvalidTransition(
                    f"A decision ({consultation.admin_decision}) was already recorded for this consultation."
                )

            consultation.admin_decision = decision
            consultation.admin_decision_at = now or utcnow()
            consultation.admin_decision_notes = notes
            consultation.status = DECISION_STATUS[decision]

            commit_or_conflict(self.db)
            self.db.refresh(consultation)

        logger.info(f"✅ Consultation {consultation_id} decision recorded: {decision}")
        return consultation
