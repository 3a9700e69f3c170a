"""Contract service - Business logic for contract operations"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ... import config
from ...database import commit_or_conflict
from ...locks import key_lock
from ...models import Contract
from ...shared.exceptions import Expired, Gone, InvalidTransition, NotFound, ValidationError
from ...shared.expiry import contract_days_remaining, contract_is_expired, utcnow
from ...utils.sanitization import DESCRIPTION_MAX_LENGTH, clean_text, escape_text
from ..consultations.service import consultation_key
from .repository import ContractRepository
from .schemas import ContractCreate, ContractSignRequest

logger = logging.getLogger(__name__)

EXPIRED_MESSAGE = "This contract link has expired. Please contact us for a new one."
SIGNED_MESSAGE = "This contract has already been signed."


def contract_key(token: str) -> str:
    return f"contract:{token}"


def upfront_percentage_for(contract: Contract) -> float:
    """Upfront share agreed in the contract terms, falling back to configuration"""
    terms = contract.contract_terms or {}
    value = (terms.get("paymentTerms") or {}).get("upfrontPercentage")
    return float(value) if value else config.UPFRONT_PERCENTAGE


def invoice_expiry_days_for(contract: Contract) -> int:
    terms = contract.contract_terms or {}
    value = (terms.get("paymentTerms") or {}).get("invoiceExpiryDays")
    return int(value) if value else config.INVOICE_EXPIRY_DAYS


class ContractService:
    """Service layer for contract business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ContractRepository()

    def _expire_if_due(self, contract: Contract, now: datetime) -> bool:
        """Persist the pending -> expired transition once the signing window has passed"""
        if not contract_is_expired(
            contract.status, contract.created_at, now, config.CONTRACT_SIGNING_WINDOW_DAYS
        ):
            return False
        contract.status = "expired"
        commit_or_conflict(self.db)
        self.db.refresh(contract)
        logger.info(f"⏰ Contract {contract.id} expired (created {contract.created_at})")
        return True

    def get_contracts(self, status: Optional[str] = None, now: Optional[datetime] = None) -> list[Contract]:
        now = now or utcnow()
        contracts = self.repo.get_contracts(self.db, status)
        for contract in contracts:
            self._expire_if_due(contract, now)
        if status:
            contracts = [c for c in contracts if c.status == status]
        return contracts

    def get_contract(self, contract_id: int, now: Optional[datetime] = None) -> Contract:
        """Admin read; applies lazy expiry like every other read path"""
        contract = self.repo.get_contract_by_id(self.db, contract_id)
        if not contract:
            raise NotFound("Contract not found")
        with key_lock(contract_key(contract.contract_token)):
            self._expire_if_due(contract, now or utcnow())
        return contract

    def get_contract_status(self, contract_id: int, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        contract = self.get_contract(contract_id, now)
        window = config.CONTRACT_SIGNING_WINDOW_DAYS
        return {
            "id": contract.id,
            "status": contract.status,
            "createdAt": contract.created_at,
            "expiresAt": contract.created_at + timedelta(days=window),
            "daysRemaining": contract_days_remaining(contract.status, contract.created_at, now, window),
            "signedAt": contract.signed_at,
            "signedByName": contract.signed_by_name,
            "clientIpAddress": contract.client_ip_address,
        }

    def create_contract(
        self, consultation_id: int, data: ContractCreate, now: Optional[datetime] = None
    ) -> Contract:
        """Draw up a contract for a consultation the admin decided to proceed with"""
        now = now or utcnow()
        if data.projectCost is None or data.projectCost <= 0:
            raise ValidationError("Project cost must be greater than 0")
        description = clean_text(
            data.projectDescription, max_length=DESCRIPTION_MAX_LENGTH, label="Project description"
        )

        with key_lock(consultation_key(consultation_id)):
            consultation = self.repo.get_consultation(self.db, consultation_id)
            if not consultation:
                raise NotFound("Consultation not found")
            if consultation.admin_decision != "proceed":
                raise InvalidTransition(
                    "A contract can only be created after deciding to proceed with the consultation."
                )
            if consultation.contract_id or self.repo.get_contract_by_consultation(self.db, consultation_id):
                raise InvalidTransition("A contract already exists for this consultation.")

            contract = Contract(
                consultation_id=consultation.id,
                client_name=consultation.client_name,
                client_email=consultation.client_email,
                contract_token=secrets.token_hex(32),
                contract_date=data.contractDate or now.date().isoformat(),
                project_description=description,
                project_cost=float(data.projectCost),
                contract_terms=data.terms.model_dump(),
                status="pending",
                signature_type="typed",
                created_at=now,
            )
            self.db.add(contract)
            self.db.flush()
            consultation.contract_id = contract.id

            commit_or_conflict(self.db)
            self.db.refresh(contract)

        logger.info(f"📝 Contract {contract.id} created for consultation {consultation_id}")
        return contract

    def get_contract_by_token(self, token: str, now: Optional[datetime] = None) -> Contract:
        """
        Public read through the client's signing link.

        Only pending contracts are served; expired and signed contracts answer
        Gone since the link can no longer be used.
        """
        now = now or utcnow()
        with key_lock(contract_key(token)):
            contract = self.repo.get_contract_by_token(self.db, token)
            if not contract:
                raise NotFound("Contract not found")
            self._expire_if_due(contract, now)

        if contract.status == "expired":
            raise Expired(EXPIRED_MESSAGE)
        if contract.status == "signed":
            raise Gone(SIGNED_MESSAGE)
        return contract

    def sign_contract(
        self,
        token: str,
        data: ContractSignRequest,
        client_ip: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Contract:
        now = now or utcnow()
        with key_lock(contract_key(token)):
            contract = self.repo.get_contract_by_token(self.db, token)
            if not contract:
                raise NotFound("Contract not found")
            self._expire_if_due(contract, now)

            if contract.status == "expired":
                logger.warning(f"🚫 Signing attempt on expired contract {contract.id}")
                raise Expired(EXPIRED_MESSAGE)
            if contract.status == "signed":
                logger.warning(f"🚫 Repeat signing attempt on contract {contract.id}")
                raise Gone(SIGNED_MESSAGE)

            signed_by = (data.signedByName or "").strip() or contract.client_name
            contract.status = "signed"
            contract.signed_at = now
            contract.signed_by_name = escape_text(signed_by)
            contract.signature_data = data.signatureData
            contract.signature_type = data.signatureType
            contract.client_ip_address = client_ip

            commit_or_conflict(self.db, Gone(SIGNED_MESSAGE))
            self.db.refresh(contract)

        logger.info(f"✅ Contract {contract.id} signed by {contract.signed_by_name} from {client_ip}")
        return contract

    def check_expired_contracts(self, now: Optional[datetime] = None) -> list[Contract]:
        """Sweep pending contracts past their signing window; safe to repeat"""
        now = now or utcnow()
        cutoff = now - timedelta(days=config.CONTRACT_SIGNING_WINDOW_DAYS)
        expired = []
        for contract in self.repo.get_pending_created_before(self.db, cutoff):
            with key_lock(contract_key(contract.contract_token)):
                if self._expire_if_due(contract, now):
                    expired.append(contract)
        if expired:
            logger.info(f"⏰ Contract sweep expired {len(expired)} contract(s)")
        return expired
