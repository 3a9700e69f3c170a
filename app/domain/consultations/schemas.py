"""Consultation domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_email, validate_phone

ConsultationStatus = Literal["pending", "completed", "declined"]
Decision = Literal["proceed", "decline"]


class ConsultationCreate(BaseModel):
    """Schema for recording a new consultation"""

    clientName: str
    clientEmail: str
    clientPhone: Optional[str] = None
    consultationDate: str
    consultationType: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("clientName", "consultationDate")
    @classmethod
    def not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("clientEmail")
    @classmethod
    def check_email(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return validate_email(v)

    @field_validator("clientPhone")
    @classmethod
    def check_phone(cls, v):
        if v:
            return validate_phone(v)
        return v


class ConsultationDecision(BaseModel):
    decision: Decision
    notes: Optional[str] = None


class ConsultationResponse(BaseModel):
    """Schema for consultation response"""

    id: int
    clientName: str
    clientEmail: str
    clientPhone: Optional[str] = None
    consultationDate: str
    consultationType: Optional[str] = None
    notes: Optional[str] = None
    status: ConsultationStatus
    adminDecision: Optional[Decision] = None
    adminDecisionAt: Optional[datetime] = None
    adminDecisionNotes: Optional[str] = None
    contractId: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
