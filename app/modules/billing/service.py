# app/modules/billing/service.py
import logging
from datetime import datetime
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.auth.policy import (
    Action, Actor, EntityKind, authorize, authorize_global_read, visibility_clause
)
from app.core.errors import NotFound, ValidationFailed, store_errors
from app.shared.database.models import Billing, PaymentMethod, Subscription
from app.shared.database.queries import check_page, coerce_enum
from app.shared.schemas.common import PageResponse, SortOrder
from .repository import BillingRepository, OUTSTANDING_STATUSES
from .schemas import (
    BillingCreate, BillingResponse, BillingSort, BillingStatus, BillingUpdate,
    CompanyBillingSummary, OutstandingResponse, PaymentMethodResponse, PaymentMethodUpsert,
    RevenueResponse, SubscriptionResponse, SubscriptionUpsert
)

logger = logging.getLogger(__name__)


class BillingService:
    """
    Service de facturación.

    Las facturas, suscripciones y métodos de pago llegan desde la integración
    con el proveedor de pagos (actor system). Las escrituras son idempotentes
    por el id externo: un webhook reenviado actualiza la fila existente.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repository = BillingRepository(db)

    def _load(self, billing_id: str) -> Billing:
        billing = self.repository.get_by_id(billing_id)
        if billing is None:
            raise NotFound("Factura", billing_id)
        return billing

    def _require_company(self, company_id: str):
        if self.repository.get_company(company_id) is None:
            raise ValidationFailed.for_field("company_id", f"La empresa {company_id} no existe")

    # =====================================================
    # FACTURAS
    # =====================================================

    async def list_billings(
        self,
        actor: Actor,
        search: Optional[str] = None,
        status: Optional[str] = None,
        company_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 10,
        sort_by: BillingSort = BillingSort.BILLING_DATE,
        sort_order: SortOrder = SortOrder.DESC
    ) -> PageResponse[BillingResponse]:
        check_page(page, page_size)
        sort_by = coerce_enum(BillingSort, sort_by, "sort_by")
        sort_order = coerce_enum(SortOrder, sort_order, "sort_order")
        if status is not None:
            status = coerce_enum(BillingStatus, status, "status").value

        billings, total = self.repository.list_billings(
            visibility_clause(actor, EntityKind.BILLING),
            search, status, company_id, start_date, end_date, page, page_size, sort_by, sort_order
        )
        return PageResponse[BillingResponse].build(
            [BillingResponse.model_validate(b) for b in billings], total, page, page_size
        )

    async def get_billing(self, actor: Actor, billing_id: str) -> BillingResponse:
        billing = self.repository.get_by_id(billing_id, visibility_clause(actor, EntityKind.BILLING))
        if billing is None:
            raise NotFound("Factura", billing_id)
        return BillingResponse.model_validate(billing)

    async def create_billing(self, actor: Actor, data: BillingCreate) -> BillingResponse:
        """Registrar factura; si el external_invoice_id ya existe se actualiza (upsert)"""
        authorize(actor, Action.CREATE, EntityKind.BILLING, data.company_id)
        self._require_company(data.company_id)

        fields = data.model_dump()
        fields["status"] = data.status.value
        fields["payment_status"] = data.payment_status.value

        with store_errors(self.db, "create_billing"):
            billing = self.repository.get_by_invoice(data.external_invoice_id)
            if billing is None:
                billing = self.repository.add(Billing(**fields))
                logger.info(f"Factura registrada: {data.external_invoice_id} ({actor.label})")
            else:
                for field, value in fields.items():
                    setattr(billing, field, value)
                logger.info(f"Factura reenviada, actualizada: {data.external_invoice_id} ({actor.label})")
            self.db.commit()
            self.db.refresh(billing)

        return BillingResponse.model_validate(billing)

    async def update_billing(self, actor: Actor, billing_id: str, patch: BillingUpdate) -> BillingResponse:
        billing = self._load(billing_id)
        authorize(actor, Action.UPDATE, EntityKind.BILLING, billing.company_id)

        fields = {k: v for k, v in patch.model_dump(exclude_unset=True).items() if v is not None}
        for enum_field in ("status", "payment_status"):
            if enum_field in fields:
                fields[enum_field] = fields[enum_field].value

        with store_errors(self.db, "update_billing"):
            for field, value in fields.items():
                setattr(billing, field, value)
            self.db.commit()
            self.db.refresh(billing)

        logger.info(f"Factura actualizada: {billing.id} por {actor.label}")
        return BillingResponse.model_validate(billing)

    async def delete_billing(self, actor: Actor, billing_id: str) -> None:
        billing = self._load(billing_id)
        authorize(actor, Action.DELETE, EntityKind.BILLING, billing.company_id)

        with store_errors(self.db, "delete_billing"):
            self.repository.delete_billing(billing)
            self.db.commit()

        logger.info(f"Factura eliminada: {billing_id} por {actor.label}")

    # =====================================================
    # RESÚMENES
    # =====================================================

    async def company_summary(self, actor: Actor, company_id: str) -> CompanyBillingSummary:
        """Facturas recientes, suscripción vigente y método de pago por defecto de una empresa"""
        company = self.repository.get_company(company_id, visibility_clause(actor, EntityKind.COMPANY))
        if company is None:
            raise NotFound("Empresa", company_id)
        authorize(actor, Action.READ, EntityKind.BILLING, company.id)

        subscription = self.repository.current_subscription(company.id)
        payment_method = self.repository.default_payment_method(company.id)
        total_paid, _ = self.repository.totals(company_id=company.id, statuses=(BillingStatus.PAID.value,))
        outstanding, _ = self.repository.totals(company_id=company.id, statuses=OUTSTANDING_STATUSES)

        return CompanyBillingSummary(
            company_id=company.id,
            company_name=company.company_name,
            billings=[BillingResponse.model_validate(b) for b in self.repository.company_billings(company.id)],
            current_subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
            default_payment_method=PaymentMethodResponse.model_validate(payment_method) if payment_method else None,
            total_paid=total_paid,
            total_outstanding=outstanding
        )

    async def total_revenue(
        self,
        actor: Actor,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> RevenueResponse:
        """Suma de facturas pagadas de todas las empresas en el rango"""
        authorize_global_read(actor, EntityKind.BILLING)
        if start_date and end_date and start_date > end_date:
            raise ValidationFailed.for_field("start_date", "La fecha inicial debe ser anterior a la final")

        total, count = self.repository.totals(
            statuses=(BillingStatus.PAID.value,), start_date=start_date, end_date=end_date
        )
        return RevenueResponse(start_date=start_date, end_date=end_date, total=total, invoice_count=count)

    async def outstanding_total(self, actor: Actor) -> OutstandingResponse:
        """Total pendiente de cobro (unpaid + past_due) de todas las empresas"""
        authorize_global_read(actor, EntityKind.BILLING)
        total, count = self.repository.totals(statuses=OUTSTANDING_STATUSES)
        return OutstandingResponse(total=total, invoice_count=count)

    # =====================================================
    # SUSCRIPCIONES
    # =====================================================

    async def list_subscriptions(self, actor: Actor, company_id: Optional[str] = None) -> List[SubscriptionResponse]:
        subscriptions = self.repository.list_subscriptions(
            visibility_clause(actor, EntityKind.SUBSCRIPTION), company_id
        )
        return [SubscriptionResponse.model_validate(s) for s in subscriptions]

    async def upsert_subscription(self, actor: Actor, data: SubscriptionUpsert) -> SubscriptionResponse:
        """Se admiten varias suscripciones históricas por empresa; la vigente se calcula al leer"""
        authorize(actor, Action.CREATE, EntityKind.SUBSCRIPTION, data.company_id)
        self._require_company(data.company_id)

        fields = data.model_dump()
        fields["billing_interval"] = data.billing_interval.value

        with store_errors(self.db, "upsert_subscription"):
            subscription = self.repository.get_subscription(data.external_subscription_id)
            if subscription is None:
                subscription = self.repository.add(Subscription(**fields))
            else:
                for field, value in fields.items():
                    setattr(subscription, field, value)
            self.db.commit()
            self.db.refresh(subscription)

        logger.info(
            f"Suscripción sincronizada: {data.external_subscription_id} "
            f"empresa={data.company_id} estado={data.status} ({actor.label})"
        )
        return SubscriptionResponse.model_validate(subscription)

    # =====================================================
    # MÉTODOS DE PAGO
    # =====================================================

    async def list_payment_methods(self, actor: Actor, company_id: Optional[str] = None) -> List[PaymentMethodResponse]:
        methods = self.repository.list_payment_methods(
            visibility_clause(actor, EntityKind.PAYMENT_METHOD), company_id
        )
        return [PaymentMethodResponse.model_validate(m) for m in methods]

    async def upsert_payment_method(self, actor: Actor, data: PaymentMethodUpsert) -> PaymentMethodResponse:
        """Un solo método por defecto por empresa"""
        authorize(actor, Action.CREATE, EntityKind.PAYMENT_METHOD, data.company_id)
        self._require_company(data.company_id)

        fields = data.model_dump()

        with store_errors(self.db, "upsert_payment_method"):
            method = self.repository.get_payment_method(data.external_payment_method_id)
            if method is None:
                method = self.repository.add(PaymentMethod(**fields))
            else:
                for field, value in fields.items():
                    setattr(method, field, value)
                self.db.flush()
            if method.is_default:
                self.repository.clear_default(method.company_id, method.id)
            self.db.commit()
            self.db.refresh(method)

        logger.info(f"Método de pago sincronizado: {data.external_payment_method_id} ({actor.label})")
        return PaymentMethodResponse.model_validate(method)
