# app/shared/database/models.py
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, JSON,
    Numeric, ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    """Fecha/hora actual en UTC sin tzinfo (formato de todas las columnas DateTime)"""
    return datetime.utcnow()


def new_id() -> str:
    return str(uuid.uuid4())


# =====================================================
# VALORES PERMITIDOS
# =====================================================

COMPANY_STATUSES = ("active", "inactive", "pending", "suspended")
USER_ROLES = ("superAdmin", "admin", "user")
USER_STATUSES = ("active", "inactive")
REPORT_STATUSES = ("active", "inactive")
BILLING_STATUSES = ("paid", "unpaid", "past_due", "failed")
BILLING_INTERVALS = ("daily", "weekly", "monthly", "yearly")
ADMIN_CHANGE_TYPES = ("ownership_transfer", "admin_change", "company_sale")


# =====================================================
# EMPRESAS (TENANTS)
# =====================================================

class Company(Base):
    """Modelo de Empresa/Tenant"""
    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=new_id)
    company_name = Column(String(255), nullable=False, index=True)
    address = Column(String(255))
    phone = Column(String(50))
    email = Column(String(255), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="active")
    date_joined = Column(DateTime, nullable=False, default=utcnow)
    last_activity = Column(DateTime)
    preferred_subscription_plan = Column(String(100))
    num_of_employees = Column(Integer, nullable=False, default=0)
    has_additional_user_purchase = Column(Boolean, nullable=False, default=False)
    modified_by = Column(String(255))

    # Relationships (el borrado en cascada lo hace CompaniesService dentro de una transacción)
    admin_links = relationship("CompanyAdmin", back_populates="company")
    users = relationship("User", back_populates="company")
    reports = relationship("Report", back_populates="company")
    billings = relationship("Billing", back_populates="company")
    subscriptions = relationship("Subscription", back_populates="company")
    payment_methods = relationship("PaymentMethod", back_populates="company")

    @property
    def admins(self):
        return [link.user for link in self.admin_links]


class CompanyAdmin(Base):
    """Relación administrador ↔ empresa (un admin puede administrar varias empresas)"""
    __tablename__ = "company_admins"
    __table_args__ = (
        UniqueConstraint("company_id", "user_id", name="company_admins_company_user_key"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    date_assigned = Column(DateTime, nullable=False, default=utcnow)
    modified_by = Column(String(255))

    company = relationship("Company", back_populates="admin_links")
    user = relationship("User", back_populates="admin_links")


class CompanyAdminHistory(Base):
    """Historial de cambios de administrador de una empresa"""
    __tablename__ = "company_admin_history"

    id = Column(String(36), primary_key=True, default=new_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)

    previous_admin_id = Column(String(36))
    previous_admin_name = Column(String(255))
    previous_admin_email = Column(String(255))

    new_admin_id = Column(String(36))
    new_admin_name = Column(String(255))
    new_admin_email = Column(String(255))

    change_type = Column(String(30), nullable=False, default="admin_change")
    change_reason = Column(String(500))
    changed_by = Column(String(36), nullable=False)
    change_date = Column(DateTime, nullable=False, default=utcnow)


# =====================================================
# USUARIOS
# =====================================================

class User(Base):
    """Modelo de Usuario"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    user_name = Column(String(255), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user")
    # Solo los usuarios con rol 'user' pertenecen directamente a una empresa
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="active")
    date_created = Column(DateTime, nullable=False, default=utcnow)
    last_login = Column(DateTime)
    last_activity = Column(DateTime)
    modified_by = Column(String(255))
    password_history = Column(JSON, nullable=False, default=list)

    company = relationship("Company", back_populates="users")
    admin_links = relationship("CompanyAdmin", back_populates="user")
    report_grants = relationship("UserReport", back_populates="user")
    session = relationship("UserSession", back_populates="user", uselist=False)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def company_name(self):
        return self.company.company_name if self.company else None


# =====================================================
# REPORTES
# =====================================================

class Report(Base):
    """Modelo de Reporte (dashboard BI externo)"""
    __tablename__ = "reports"

    id = Column(String(36), primary_key=True, default=new_id)
    report_name = Column(String(255), nullable=False, unique=True)
    report_url = Column(Text, nullable=False, unique=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="active")
    access_count = Column(Integer, nullable=False, default=0)
    date_created = Column(DateTime, nullable=False, default=utcnow)
    last_modified_at = Column(DateTime)
    modified_by = Column(String(255))

    company = relationship("Company", back_populates="reports")
    grants = relationship("UserReport", back_populates="report")


class UserReport(Base):
    """Permiso de visualización de un reporte para un usuario"""
    __tablename__ = "user_reports"

    user_id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    report_id = Column(String(36), ForeignKey("reports.id"), primary_key=True)

    user = relationship("User", back_populates="report_grants")
    report = relationship("Report", back_populates="grants")


# =====================================================
# FACTURACIÓN (sincronizada desde el proveedor de pagos)
# =====================================================

class Billing(Base):
    """Modelo de Factura"""
    __tablename__ = "billings"
    __table_args__ = (
        Index("billing_company_status_idx", "company_id", "status"),
        Index("billing_company_date_idx", "company_id", "billing_date"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    external_invoice_id = Column(String(255), nullable=False, unique=True)
    external_customer_id = Column(String(255))
    billing_date = Column(DateTime, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False)
    plan = Column(String(255), nullable=False)
    pdf_link = Column(Text)
    date_created = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    company = relationship("Company", back_populates="billings")

    @property
    def company_name(self):
        return self.company.company_name if self.company else None


class Subscription(Base):
    """Modelo de Suscripción (puede haber varias históricas por empresa)"""
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=new_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    external_subscription_id = Column(String(255), nullable=False, unique=True)
    external_customer_id = Column(String(255))
    plan = Column(String(255), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    billing_interval = Column(String(20), nullable=False)
    status = Column(String(50), nullable=False)
    user_limit = Column(Integer, nullable=False)
    overage_user = Column(Integer, nullable=False, default=0)
    current_period_end = Column(DateTime, nullable=False)
    portal_url = Column(Text)
    date_created = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    company = relationship("Company", back_populates="subscriptions")


class PaymentMethod(Base):
    """Modelo de Método de Pago"""
    __tablename__ = "payment_methods"

    id = Column(String(36), primary_key=True, default=new_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    external_payment_method_id = Column(String(255), nullable=False, unique=True)
    external_customer_id = Column(String(255))
    payment_method_type = Column(String(255))
    last4 = Column(String(4))
    exp_month = Column(Integer)
    exp_year = Column(Integer)
    is_default = Column(Boolean, nullable=False, default=False)
    date_created = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    company = relationship("Company", back_populates="payment_methods")


# =====================================================
# SESIONES Y ACCESO
# =====================================================

class UserSession(Base):
    """Sesión acumulada por usuario (una sola fila por usuario, se reactiva en cada login)"""
    __tablename__ = "user_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)
    start_time = Column(DateTime, nullable=False, default=utcnow)
    end_time = Column(DateTime)
    total_active_time = Column(Integer, nullable=False, default=0)    # segundos
    total_inactive_time = Column(Integer, nullable=False, default=0)  # segundos

    user = relationship("User", back_populates="session")

    @property
    def is_active(self) -> bool:
        return self.end_time is None


class LoginAttempt(Base):
    """Intentos fallidos de login por email"""
    __tablename__ = "login_attempts"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_attempt = Column(DateTime, default=utcnow)
    is_locked = Column(Boolean, nullable=False, default=False)
    locked_until = Column(DateTime)
