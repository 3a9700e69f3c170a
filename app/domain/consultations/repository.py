"""Consultation repository - Database operations for consultations"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Consultation


class ConsultationRepository:
    """Repository for consultation database operations"""

    @staticmethod
    def get_consultations(db: Session, status: Optional[str] = None) -> list[Consultation]:
        query = db.query(Consultation)
        if status:
            query = query.filter(Consultation.status == status)
        return query.order_by(Consultation.created_at.desc(), Consultation.id.desc()).all()

    @staticmethod
    def get_consultation_by_id(db: Session, consultation_id: int) -> Optional[Consultation]:
        return db.query(Consultation).filter(Consultation.id == consultation_id).first()

    @staticmethod
    def create_consultation(db: Session, **consultation_data) -> Consultation:
        consultation = Consultation(**consultation_data)
        db.add(consultation)
        db.commit()
        db.refresh(consultation)
        return consultation
