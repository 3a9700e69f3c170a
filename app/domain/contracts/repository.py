"""Contract repository - Database operations for contracts"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Consultation, Contract


class ContractRepository:
    """Repository for contract database operations"""

    @staticmethod
    def get_contracts(db: Session, status: Optional[str] = None) -> list[Contract]:
        query = db.query(Contract)
        if status:
            query = query.filter(Contract.status == status)
        return query.order_by(Contract.created_at.desc(), Contract.id.desc()).all()

    @staticmethod
    def get_contract_by_id(db: Session, contract_id: int) -> Optional[Contract]:
        return db.query(Contract).filter(Contract.id == contract_id).first()

    @staticmethod
    def get_contract_by_token(db: Session, token: str) -> Optional[Contract]:
        return db.query(Contract).filter(Contract.contract_token == token).first()

    @staticmethod
    def get_contract_by_consultation(db: Session, consultation_id: int) -> Optional[Contract]:
        return db.query(Contract).filter(Contract.consultation_id == consultation_id).first()

    @staticmethod
    def get_pending_created_before(db: Session, cutoff: datetime) -> list[Contract]:
        """Pending contracts whose signing window started at or before ``cutoff``"""
        return (
            db.query(Contract)
            .filter(Contract.status == "pending", Contract.created_at <= cutoff)
            .all()
        )

    @staticmethod
    def get_consultation(db: Session, consultation_id: int) -> Optional[Consultation]:
        return db.query(Consultation).filter(Consultation.id == consultation_id).first()
