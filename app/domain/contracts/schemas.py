"""Contract domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ... import config

ContractStatus = Literal["pending", "signed", "expired"]


class PaymentTerms(BaseModel):
    """Payment split agreed in the contract"""

    upfrontPercentage: float = Field(default_factory=lambda: config.UPFRONT_PERCENTAGE, gt=0, le=100)
    invoiceExpiryDays: int = Field(default_factory=lambda: config.INVOICE_EXPIRY_DAYS, ge=1)
    currency: Optional[str] = None
    paymentMethods: list[str] = []


class ContractTerms(BaseModel):
    """Terms embedded in a contract"""

    deliverables: list[str] = []
    paymentTerms: PaymentTerms = Field(default_factory=PaymentTerms)
    revisionLimit: Optional[int] = Field(default=None, ge=0)
    timeline: Optional[str] = None
    cancellationPolicy: Optional[str] = None
    additionalTerms: Optional[str] = None


class ContractCreate(BaseModel):
    """Schema for drawing up a contract from an accepted consultation"""

    projectCost: float = Field(gt=0)
    projectDescription: Optional[str] = None
    contractDate: Optional[str] = None
    terms: ContractTerms = Field(default_factory=ContractTerms)


class ContractSignRequest(BaseModel):
    signatureData: str
    signedByName: Optional[str] = None
    signatureType: Literal["typed", "drawn"] = "typed"

    @field_validator("signatureData")
    @classmethod
    def not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("A signature is required")
        return v


class ContractResponse(BaseModel):
    """Schema for contract response"""

    id: int
    consultationId: int
    clientName: str
    clientEmail: str
    contractDate: str
    projectDescription: Optional[str] = None
    projectCost: float
    contractTerms: dict[str, Any]
    status: ContractStatus
    signedAt: Optional[datetime] = None
    signedByName: Optional[str] = None
    signatureType: Optional[str] = None
    createdAt: datetime

    class Config:
        from_attributes = True


class ContractCreatedResponse(BaseModel):
    contract: ContractResponse
    contractToken: str
    contractUrl: str


class ContractStatusResponse(BaseModel):
    """Admin view of a contract's signing window"""

    id: int
    status: ContractStatus
    createdAt: datetime
    expiresAt: datetime
    daysRemaining: Optional[int] = None
    signedAt: Optional[datetime] = None
    signedByName: Optional[str] = None
    clientIpAddress: Optional[str] = None
