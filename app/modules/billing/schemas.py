# app/modules/billing/schemas.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from enum import Enum

from app.shared.schemas.common import EntityId


# =====================================================
# ENUMS
# =====================================================

class BillingStatus(str, Enum):
    """Estado de factura según el proveedor de pagos"""
    PAID = "paid"
    UNPAID = "unpaid"
    PAST_DUE = "past_due"
    FAILED = "failed"


class BillingInterval(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class BillingSort(str, Enum):
    BILLING_DATE = "billing_date"
    AMOUNT = "amount"
    DATE_CREATED = "date_created"
    STATUS = "status"


# =====================================================
# FACTURAS
# =====================================================

class BillingCreate(BaseModel):
    """Factura recibida del proveedor de pagos (webhook); idempotente por external_invoice_id"""
    company_id: EntityId
    external_invoice_id: str = Field(..., min_length=1, max_length=255)
    external_customer_id: Optional[str] = Field(None, max_length=255)
    billing_date: datetime
    amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    status: BillingStatus
    payment_status: BillingStatus
    plan: str = Field(..., min_length=1, max_length=255)
    pdf_link: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "company_id": "1b9d6bcd-bbfd-4b2d-9b5d-ab8dfbbd4bed",
            "external_invoice_id": "in_1NqXyZ",
            "billing_date": "2026-01-01T00:00:00",
            "amount": "149.00",
            "status": "paid",
            "payment_status": "paid",
            "plan": "professional"
        }
    })


class BillingUpdate(BaseModel):
    billing_date: Optional[datetime] = None
    amount: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    status: Optional[BillingStatus] = None
    payment_status: Optional[BillingStatus] = None
    plan: Optional[str] = Field(None, min_length=1, max_length=255)
    pdf_link: Optional[str] = None


class BillingResponse(BaseModel):
    id: str
    company_id: str
    company_name: Optional[str] = None
    external_invoice_id: str
    external_customer_id: Optional[str] = None
    billing_date: datetime
    amount: Decimal
    status: str
    payment_status: str
    plan: str
    pdf_link: Optional[str] = None
    date_created: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =====================================================
# SUSCRIPCIONES Y MÉTODOS DE PAGO
# =====================================================

class SubscriptionUpsert(BaseModel):
    company_id: EntityId
    external_subscription_id: str = Field(..., min_length=1, max_length=255)
    external_customer_id: Optional[str] = Field(None, max_length=255)
    plan: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    billing_interval: BillingInterval
    status: str = Field(..., min_length=1, max_length=50)
    user_limit: int = Field(..., ge=0)
    overage_user: int = Field(default=0, ge=0)
    current_period_end: datetime
    portal_url: Optional[str] = None


class SubscriptionResponse(BaseModel):
    id: str
    company_id: str
    external_subscription_id: str
    external_customer_id: Optional[str] = None
    plan: str
    amount: Decimal
    billing_interval: str
    status: str
    user_limit: int
    overage_user: int
    current_period_end: datetime
    portal_url: Optional[str] = None
    date_created: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentMethodUpsert(BaseModel):
    company_id: EntityId
    external_payment_method_id: str = Field(..., min_length=1, max_length=255)
    external_customer_id: Optional[str] = Field(None, max_length=255)
    payment_method_type: Optional[str] = Field(None, max_length=255)
    last4: Optional[str] = Field(None, pattern=r"^\d{4}$")
    exp_month: Optional[int] = Field(None, ge=1, le=12)
    exp_year: Optional[int] = Field(None, ge=2000)
    is_default: bool = False


class PaymentMethodResponse(BaseModel):
    id: str
    company_id: str
    external_payment_method_id: str
    external_customer_id: Optional[str] = None
    payment_method_type: Optional[str] = None
    last4: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None
    is_default: bool
    date_created: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =====================================================
# RESÚMENES
# =====================================================

class CompanyBillingSummary(BaseModel):
    company_id: str
    company_name: str
    billings: List[BillingResponse]
    current_subscription: Optional[SubscriptionResponse] = None
    default_payment_method: Optional[PaymentMethodResponse] = None
    total_paid: Decimal
    total_outstanding: Decimal


class RevenueResponse(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    total: Decimal
    invoice_count: int


class OutstandingResponse(BaseModel):
    total: Decimal
    invoice_count: int
