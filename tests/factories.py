import asyncio
import itertools
from datetime import datetime, timedelta

from app.core.auth.dependencies import actor_from_user
from app.core.auth.policy import Actor, Role
from app.core.auth.service import AuthService
from app.shared.database.models import Company, CompanyAdmin, Report, User, UserReport

_seq = itertools.count(1)

SYSTEM = Actor(id="system", role=Role.SYSTEM)


def run(coro):
    return asyncio.run(coro)


class FakeClock:
    """Reloj controlable para los servicios que reciben `clock`"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_company(db, name=None, status="active"):
    n = next(_seq)
    company = Company(company_name=name or f"Company {n}", email=f"company{n}@example.com", status=status)
    db.add(company)
    db.commit()
    return company


def make_user(db, role="user", company=None, name=None, password_hash="x", status="active"):
    n = next(_seq)
    user = User(
        user_name=name or f"{role}{n}",
        email=f"{role.lower()}{n}@example.com",
        password_hash=password_hash,
        password_history=[password_hash],
        role=role,
        company_id=company.id if company is not None else None,
        status=status,
    )
    db.add(user)
    db.commit()
    return user


def link_admin(db, company, admin):
    db.add(CompanyAdmin(company_id=company.id, user_id=admin.id))
    db.commit()


def make_tenant(db, name=None):
    """Empresa con un admin vinculado"""
    company = make_company(db, name=name)
    admin = make_user(db, role="admin")
    link_admin(db, company, admin)
    return company, admin


def make_report(db, company, name=None, grantees=(), access_count=0):
    n = next(_seq)
    report = Report(
        report_name=name or f"Report {n}",
        report_url=f"https://bi.example.com/reports/{n}",
        company_id=company.id,
        access_count=access_count,
    )
    db.add(report)
    db.commit()
    for user in grantees:
        db.add(UserReport(user_id=user.id, report_id=report.id))
    db.commit()
    return report


def actor(db, user) -> Actor:
    return actor_from_user(db, user)


def auth_headers(user):
    token = AuthService.create_access_token({"user_id": user.id})
    return {"Authorization": f"Bearer {token}"}
