"""Invoice repository - Database operations for invoices"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Contract, Invoice


class InvoiceRepository:
    """Repository for invoice database operations"""

    @staticmethod
    def get_invoices(
        db: Session, status: Optional[str] = None, contract_id: Optional[int] = None
    ) -> list[Invoice]:
        query = db.query(Invoice)
        if status:
            query = query.filter(Invoice.status == status)
        if contract_id:
            query = query.filter(Invoice.contract_id == contract_id)
        return query.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).all()

    @staticmethod
    def get_invoice_by_id(db: Session, invoice_id: int) -> Optional[Invoice]:
        return db.query(Invoice).filter(Invoice.id == invoice_id).first()

    @staticmethod
    def get_invoice_by_public_id(db: Session, public_id: str) -> Optional[Invoice]:
        return db.query(Invoice).filter(Invoice.public_id == public_id).first()

    @staticmethod
    def get_invoice_by_number(db: Session, invoice_number: str) -> Optional[Invoice]:
        return db.query(Invoice).filter(Invoice.invoice_number == invoice_number).first()

    @staticmethod
    def get_open_invoices(db: Session, contract_id: int, invoice_type: str) -> list[Invoice]:
        return (
            db.query(Invoice)
            .filter(
                Invoice.contract_id == contract_id,
                Invoice.invoice_type == invoice_type,
                Invoice.status.in_(["draft", "sent"]),
            )
            .order_by(Invoice.id.desc())
            .all()
        )

    @staticmethod
    def get_sent_invoices(db: Session) -> list[Invoice]:
        return db.query(Invoice).filter(Invoice.status == "sent").all()

    @staticmethod
    def total_paid_for_contract(db: Session, contract_id: int) -> float:
        total = (
            db.query(func.coalesce(func.sum(Invoice.amount_paid), 0))
            .filter(Invoice.contract_id == contract_id)
            .scalar()
        )
        return float(total or 0)

    @staticmethod
    def has_paid_invoice(db: Session, contract_id: int, invoice_type: str) -> bool:
        return (
            db.query(Invoice.id)
            .filter(
                Invoice.contract_id == contract_id,
                Invoice.invoice_type == invoice_type,
                Invoice.status == "paid",
            )
            .first()
            is not None
        )

    @staticmethod
    def open_balance_for_contract(db: Session, contract_id: int) -> float:
        """Amount still due across the contract's draft and sent invoices"""
        total = (
            db.query(func.coalesce(func.sum(Invoice.amount - func.coalesce(Invoice.amount_paid, 0)), 0))
            .filter(Invoice.contract_id == contract_id, Invoice.status.in_(["draft", "sent"]))
            .scalar()
        )
        return float(total or 0)

    @staticmethod
    def count_for_contract(db: Session, contract_id: int) -> int:
        return db.query(Invoice).filter(Invoice.contract_id == contract_id).count()

    @staticmethod
    def get_contract(db: Session, contract_id: int) -> Optional[Contract]:
        return db.query(Contract).filter(Contract.id == contract_id).first()
