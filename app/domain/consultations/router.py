"""Consultation router - FastAPI endpoints for consultation operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_admin
from ...database import get_db
from ...models import Consultation
from ..contracts.router import create_contract_response
from ..contracts.schemas import ContractCreate, ContractCreatedResponse
from ..contracts.service import ContractService
from .schemas import (
    ConsultationCreate,
    ConsultationDecision,
    ConsultationResponse,
    ConsultationStatus,
)
from .service import ConsultationService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/consultations", tags=["Consultations"], dependencies=[Depends(get_current_admin)]
)


def get_consultation_service(db: Session = Depends(get_db)) -> ConsultationService:
    """Dependency injection for ConsultationService"""
    return ConsultationService(db)


def to_consultation_response(c: Consultation) -> ConsultationResponse:
    return ConsultationResponse(
        id=c.id,
        clientName=c.client_name,
        clientEmail=c.client_email,
        clientPhone=c.client_phone,
        consultationDate=c.consultation_date,
        consultationType=c.consultation_type,
        notes=c.notes,
        status=c.status,
        adminDecision=c.admin_decision,
        adminDecisionAt=c.admin_decision_at,
        adminDecisionNotes=c.admin_decision_notes,
        contractId=c.contract_id,
        created_at=c.created_at,
    )


@router.get("", response_model=list[ConsultationResponse])
async def get_consultations(
    status: Optional[ConsultationStatus] = Query(None),
    service: ConsultationService = Depends(get_consultation_service),
):
    return [to_consultation_response(c) for c in service.get_consultations(status)]


@router.post("", response_model=ConsultationResponse, status_code=201)
async def create_consultation(
    data: ConsultationCreate,
    service: ConsultationService = Depends(get_consultation_service),
):
    return to_consultation_response(service.create_consultation(data))


@router.get("/{consultation_id}", response_model=ConsultationResponse)
async def get_consultation(
    consultation_id: int,
    service: ConsultationService = Depends(get_consultation_service),
):
    return to_consultation_response(service.get_consultation(consultation_id))


@router.patch("/{consultation_id}/decision", response_model=ConsultationResponse)
async def record_decision(
    consultation_id: int,
    data: ConsultationDecision,
    service: ConsultationService = Depends(get_consultation_service),
):
    """Record proceed/decline; a consultation accepts exactly one decision"""
    consultation = service.record_decision(consultation_id, data.decision, data.notes)
    return to_consultation_response(consultation)


@router.post("/{consultation_id}/contract", response_model=ContractCreatedResponse, status_code=201)
async def create_contract(
    consultation_id: int,
    data: ContractCreate,
    db: Session = Depends(get_db),
):
    """Draw up the contract for a consultation the admin decided to proceed with"""
    contract = ContractService(db).create_contract(consultation_id, data)
    return create_contract_response(contract)
