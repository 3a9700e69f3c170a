"""Invoice domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

InvoiceType = Literal["full", "downpayment", "final"]
InvoiceStatus = Literal["draft", "sent", "paid", "expired", "cancelled"]


class InvoiceCreate(BaseModel):
    """Schema for creating an invoice against a signed contract"""

    contractId: int
    invoiceType: InvoiceType = "full"
    amount: Optional[float] = Field(default=None, gt=0)
    description: Optional[str] = None
    notes: Optional[str] = None


class MarkPaidRequest(BaseModel):
    paymentReference: str = Field(min_length=1)
    paidAt: Optional[datetime] = None
    amount: Optional[float] = Field(default=None, gt=0)
    paymentMethod: Optional[str] = None


class PaymentRecord(BaseModel):
    reference: str
    amount: float
    paidAt: str


class InvoiceResponse(BaseModel):
    """Schema for invoice response"""

    id: int
    public_id: str
    contractId: int
    consultationId: Optional[int] = None
    clientName: str
    clientEmail: str
    invoiceNumber: str
    invoiceType: InvoiceType
    description: Optional[str] = None
    notes: Optional[str] = None
    amount: float
    amountPaid: float
    balanceDue: float
    currency: str
    status: InvoiceStatus
    issueDate: datetime
    dueDate: datetime
    expiryDate: datetime
    sentAt: Optional[datetime] = None
    paidAt: Optional[datetime] = None
    paymentMethod: Optional[str] = None
    paymentReference: Optional[str] = None
    paymentLink: Optional[str] = None
    payments: list[PaymentRecord] = []

    class Config:
        from_attributes = True


class CheckExpiredResponse(BaseModel):
    expired: int
    expiredInvoices: list[InvoiceResponse]


class PaymentLinkResponse(BaseModel):
    invoiceId: str
    invoiceNumber: str
    paymentLink: str
    reference: str
    amount: float
    currency: str
