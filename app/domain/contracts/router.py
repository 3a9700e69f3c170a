"""Contract router - FastAPI endpoints for contract operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ... import config
from ...auth import get_current_admin
from ...database import get_db
from ...models import Contract
from ...rate_limiter import client_ip, create_rate_limiter
from ...shared.exceptions import AppError
from ..invoices.router import to_invoice_response
from ..invoices.schemas import InvoiceResponse
from ..invoices.service import InvoiceService
from .schemas import (
    ContractCreate,
    ContractCreatedResponse,
    ContractResponse,
    ContractSignRequest,
    ContractStatus,
    ContractStatusResponse,
)
from .service import ContractService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contracts", tags=["Contracts"])

sign_rate_limit = create_rate_limiter(limit=10, window_seconds=60, key_prefix="contract_sign")


class ContractSignResponse(BaseModel):
    contract: ContractResponse
    invoice: Optional[InvoiceResponse] = None


def get_contract_service(db: Session = Depends(get_db)) -> ContractService:
    """Dependency injection for ContractService"""
    return ContractService(db)


def to_contract_response(c: Contract) -> ContractResponse:
    return ContractResponse(
        id=c.id,
        consultationId=c.consultation_id,
        clientName=c.client_name,
        clientEmail=c.client_email,
        contractDate=c.contract_date,
        projectDescription=c.project_description,
        projectCost=c.project_cost,
        contractTerms=c.contract_terms or {},
        status=c.status,
        signedAt=c.signed_at,
        signedByName=c.signed_by_name,
        signatureType=c.signature_type,
        createdAt=c.created_at,
    )


def contract_url(contract: Contract) -> str:
    return f"{config.BASE_URL}/contracts/token/{contract.contract_token}"


def create_contract_response(contract: Contract) -> ContractCreatedResponse:
    return ContractCreatedResponse(
        contract=to_contract_response(contract),
        contractToken=contract.contract_token,
        contractUrl=contract_url(contract),
    )


# ============================================================================
# ADMIN OPERATIONS
# ============================================================================


@router.get("", response_model=list[ContractResponse])
async def get_contracts(
    status: Optional[ContractStatus] = Query(None),
    _: str = Depends(get_current_admin),
    service: ContractService = Depends(get_contract_service),
):
    return [to_contract_response(c) for c in service.get_contracts(status)]


@router.post("/check-expired", response_model=list[ContractResponse])
async def check_expired_contracts(
    _: str = Depends(get_current_admin),
    service: ContractService = Depends(get_contract_service),
):
    """Expire pending contracts past the signing window"""
    return [to_contract_response(c) for c in service.check_expired_contracts()]


@router.get("/{contract_id}/status", response_model=ContractStatusResponse)
async def get_contract_status(
    contract_id: int,
    _: str = Depends(get_current_admin),
    service: ContractService = Depends(get_contract_service),
):
    """Signing window status with days remaining"""
    return ContractStatusResponse(**service.get_contract_status(contract_id))


# ============================================================================
# PUBLIC SIGNING LINK
# ============================================================================


@router.get("/token/{token}", response_model=ContractResponse)
async def get_contract_by_token(
    token: str,
    service: ContractService = Depends(get_contract_service),
):
    """Contract behind a client's signing link (410 once expired or signed)"""
    return to_contract_response(service.get_contract_by_token(token))


@router.post("/token/{token}/sign", response_model=ContractSignResponse)
async def sign_contract(
    token: str,
    data: ContractSignRequest,
    request: Request,
    _: None = Depends(sign_rate_limit),
    service: ContractService = Depends(get_contract_service),
    db: Session = Depends(get_db),
):
    """Sign a contract, then raise the upfront invoice"""
    contract = service.sign_contract(token, data, client_ip=client_ip(request))

    invoice = None
    try:
        invoice = InvoiceService(db).create_invoice(contract.id, "downpayment")
    except AppError as e:
        # The signature stands; the admin can raise the invoice by hand
        logger.error(f"❌ Failed to create upfront invoice for contract {contract.id}: {e.message}")

    return ContractSignResponse(
        contract=to_contract_response(contract),
        invoice=to_invoice_response(invoice) if invoice else None,
    )
