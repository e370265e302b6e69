# app/modules/billing/repository.py
from sqlalchemy.orm import Session
from sqlalchemy import func, case
from typing import List, Optional, Tuple
from datetime import datetime
from decimal import Decimal

from app.shared.database.models import Billing, Company, PaymentMethod, Subscription
from app.shared.database.queries import LIKE_ESCAPE, apply_sort, contains_pattern, paginate, restrict
from app.shared.schemas.common import SortOrder
from .schemas import BillingSort

SORT_COLUMNS = {
    BillingSort.BILLING_DATE: Billing.billing_date,
    BillingSort.AMOUNT: Billing.amount,
    BillingSort.DATE_CREATED: Billing.date_created,
    BillingSort.STATUS: Billing.status,
}

OUTSTANDING_STATUSES = ("unpaid", "past_due")
CURRENT_SUBSCRIPTION_STATUSES = ("active", "trialing")


class BillingRepository:
    """Repository de facturación: facturas, suscripciones y métodos de pago"""

    def __init__(self, db: Session):
        self.db = db

    def get_company(self, company_id: str, visibility=None) -> Optional[Company]:
        query = restrict(self.db.query(Company), visibility)
        return query.filter(Company.id == company_id).first()

    # =====================================================
    # FACTURAS
    # =====================================================

    def get_by_id(self, billing_id: str, visibility=None) -> Optional[Billing]:
        query = restrict(self.db.query(Billing), visibility)
        return query.filter(Billing.id == billing_id).first()

    def get_by_invoice(self, external_invoice_id: str) -> Optional[Billing]:
        return self.db.query(Billing).filter(Billing.external_invoice_id == external_invoice_id).first()

    def list_billings(
        self,
        visibility,
        search: Optional[str],
        status: Optional[str],
        company_id: Optional[str],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        page: int,
        page_size: int,
        sort_by: BillingSort,
        sort_order: SortOrder
    ) -> Tuple[List[Billing], int]:
        query = restrict(self.db.query(Billing), visibility)

        if search:
            query = query.join(Company, Company.id == Billing.company_id).filter(
                Company.company_name.ilike(contains_pattern(search), escape=LIKE_ESCAPE)
            )
        if status:
            query = query.filter(Billing.status == status)
        if company_id:
            query = query.filter(Billing.company_id == company_id)
        if start_date:
            query = query.filter(Billing.billing_date >= start_date)
        if end_date:
            query = query.filter(Billing.billing_date <= end_date)

        query = apply_sort(query, SORT_COLUMNS[sort_by], sort_order, tiebreaker=Billing.id)
        return paginate(query, page, page_size)

    def company_billings(self, company_id: str, limit: int = 12) -> List[Billing]:
        return (
            self.db.query(Billing)
            .filter(Billing.company_id == company_id)
            .order_by(Billing.billing_date.desc())
            .limit(limit)
            .all()
        )

    def totals(self, company_id: Optional[str] = None, statuses=None,
               start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> Tuple[Decimal, int]:
        """(suma de amount, número de facturas) con los filtros indicados"""
        query = self.db.query(func.coalesce(func.sum(Billing.amount), 0), func.count(Billing.id))
        if company_id:
            query = query.filter(Billing.company_id == company_id)
        if statuses:
            query = query.filter(Billing.status.in_(statuses))
        if start_date:
            query = query.filter(Billing.billing_date >= start_date)
        if end_date:
            query = query.filter(Billing.billing_date <= end_date)

        total, count = query.one()
        return Decimal(str(total)).quantize(Decimal("0.01")), count

    def add(self, entity):
        self.db.add(entity)
        self.db.flush()
        return entity

    def delete_billing(self, billing: Billing):
        self.db.query(Billing).filter(Billing.id == billing.id).delete(synchronize_session=False)
        self.db.flush()

    # =====================================================
    # SUSCRIPCIONES
    # =====================================================

    def get_subscription(self, external_subscription_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.external_subscription_id == external_subscription_id)
            .first()
        )

    def list_subscriptions(self, visibility, company_id: Optional[str] = None) -> List[Subscription]:
        query = restrict(self.db.query(Subscription), visibility)
        if company_id:
            query = query.filter(Subscription.company_id == company_id)
        return query.order_by(Subscription.current_period_end.desc()).all()

    def current_subscription(self, company_id: str) -> Optional[Subscription]:
        """La más reciente entre las activas; si no hay, la más reciente de todas"""
        current_first = case((Subscription.status.in_(CURRENT_SUBSCRIPTION_STATUSES), 0), else_=1)
        return (
            self.db.query(Subscription)
            .filter(Subscription.company_id == company_id)
            .order_by(current_first, Subscription.current_period_end.desc())
            .first()
        )

    # =====================================================
    # MÉTODOS DE PAGO
    # =====================================================

    def get_payment_method(self, external_payment_method_id: str) -> Optional[PaymentMethod]:
        return (
            self.db.query(PaymentMethod)
            .filter(PaymentMethod.external_payment_method_id == external_payment_method_id)
            .first()
        )

    def list_payment_methods(self, visibility, company_id: Optional[str] = None) -> List[PaymentMethod]:
        query = restrict(self.db.query(PaymentMethod), visibility)
        if company_id:
            query = query.filter(PaymentMethod.company_id == company_id)
        return query.order_by(PaymentMethod.is_default.desc(), PaymentMethod.date_created.desc()).all()

    def default_payment_method(self, company_id: str) -> Optional[PaymentMethod]:
        return (
            self.db.query(PaymentMethod)
            .filter(PaymentMethod.company_id == company_id, PaymentMethod.is_default.is_(True))
            .first()
        )

    def clear_default(self, company_id: str, keep_id: str):
        (
            self.db.query(PaymentMethod)
            .filter(PaymentMethod.company_id == company_id, PaymentMethod.id != keep_id)
            .update({PaymentMethod.is_default: False}, synchronize_session="fetch")
        )
        self.db.flush()
