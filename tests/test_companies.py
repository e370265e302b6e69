from datetime import datetime
from decimal import Decimal

import pytest

from app.core.errors import Conflict, InvariantViolation, NotFound, Unauthorized
from app.modules.companies.schemas import AdminChangeType, CompanyCreate, CompanyStatus, CompanyUpdate
from app.modules.companies.service import CompaniesService
from app.shared.database.models import (
    Billing, Company, CompanyAdmin, CompanyAdminHistory, Report, User, UserReport, UserSession
)
from factories import actor, make_company, make_report, make_tenant, make_user, run


def _super(db):
    return actor(db, make_user(db, role="superAdmin"))


def test_create_company_requires_an_admin(db_session):
    service = CompaniesService(db_session)
    boss = _super(db_session)

    with pytest.raises(InvariantViolation) as exc:
        run(service.create_company(boss, CompanyCreate(company_name="Acme", email="acme@example.com")))
    assert exc.value.code == "admin_required"
    assert db_session.query(Company).count() == 0


def test_create_company_rejects_non_admin_ids(db_session):
    service = CompaniesService(db_session)
    boss = _super(db_session)
    plain = make_user(db_session, role="user", company=make_company(db_session))

    with pytest.raises(InvariantViolation) as exc:
        run(service.create_company(
            boss, CompanyCreate(company_name="Acme", email="acme@example.com", admin_ids=[plain.id])
        ))
    assert exc.value.code == "admin_required"
    assert exc.value.blocking == [plain.id]


def test_create_company_links_admins(db_session):
    service = CompaniesService(db_session)
    boss = _super(db_session)
    admin = make_user(db_session, role="admin")

    company = run(service.create_company(
        boss, CompanyCreate(company_name="Acme", email="ACME@example.com", admin_ids=[admin.id])
    ))

    assert company.email == "acme@example.com"
    assert [a.id for a in company.admins] == [admin.id]
    assert db_session.query(CompanyAdmin).filter(CompanyAdmin.company_id == company.id).count() == 1


def test_create_company_duplicate_email(db_session):
    service = CompaniesService(db_session)
    boss = _super(db_session)
    existing = make_company(db_session)
    admin = make_user(db_session, role="admin")

    with pytest.raises(Conflict) as exc:
        run(service.create_company(
            boss, CompanyCreate(company_name="Otra", email=existing.email, admin_ids=[admin.id])
        ))
    assert exc.value.code == "duplicate_company"
    assert exc.value.details == {"retryable": False}


def test_admin_cannot_create_company(db_session):
    _, admin = make_tenant(db_session)
    service = CompaniesService(db_session)

    with pytest.raises(Unauthorized) as exc:
        run(service.create_company(
            actor(db_session, admin),
            CompanyCreate(company_name="Nueva", email="nueva@example.com", admin_ids=[admin.id])
        ))
    assert exc.value.code == "insufficient_role"


def test_admin_sees_only_managed_companies(db_session):
    own, admin = make_tenant(db_session)
    other, _ = make_tenant(db_session)
    service = CompaniesService(db_session)
    admin_actor = actor(db_session, admin)

    page = run(service.list_companies(admin_actor))
    assert page.total == 1
    assert [c.id for c in page.rows] == [own.id]

    with pytest.raises(NotFound):
        run(service.get_company(admin_actor, other.id))


def test_list_companies_filters_by_status(db_session):
    boss = _super(db_session)
    make_company(db_session, status="active")
    suspended = make_company(db_session, status="suspended")

    page = run(CompaniesService(db_session).list_companies(boss, status="suspended"))

    assert page.total == 1
    assert page.rows[0].id == suspended.id


def test_search_treats_wildcards_literally(db_session):
    boss = _super(db_session)
    make_company(db_session, name="Acme")
    make_company(db_session, name="Globex")
    discounted = make_company(db_session, name="Rebajas 100% Norte")
    service = CompaniesService(db_session)

    assert run(service.list_companies(boss, search="%")).total == 1
    assert run(service.list_companies(boss, search="_")).total == 0

    page = run(service.list_companies(boss, search="100%"))
    assert [c.id for c in page.rows] == [discounted.id]


def test_replacing_admins_records_history(db_session):
    company, old_admin = make_tenant(db_session)
    new_admin = make_user(db_session, role="admin")
    boss = _super(db_session)
    service = CompaniesService(db_session)

    updated = run(service.update_company(boss, company.id, CompanyUpdate(
        admin_ids=[new_admin.id],
        admin_change_type=AdminChangeType.OWNERSHIP_TRANSFER,
        admin_change_reason="Venta de participación"
    )))

    assert [a.id for a in updated.admins] == [new_admin.id]
    history = run(service.get_admin_history(boss, company.id))
    assert len(history) == 1
    assert history[0].previous_admin_id == old_admin.id
    assert history[0].new_admin_id == new_admin.id
    assert history[0].change_type == "ownership_transfer"
    assert history[0].changed_by == boss.id


def test_update_company_with_empty_admin_list_rejected(db_session):
    company, admin = make_tenant(db_session)
    boss = _super(db_session)

    with pytest.raises(InvariantViolation) as exc:
        run(CompaniesService(db_session).update_company(boss, company.id, CompanyUpdate(admin_ids=[])))
    assert exc.value.code == "admin_required"
    assert db_session.query(CompanyAdmin).filter(CompanyAdmin.company_id == company.id).count() == 1


def test_disable_company(db_session):
    company, _ = make_tenant(db_session)
    boss = _super(db_session)

    updated = run(CompaniesService(db_session).set_status(boss, company.id, CompanyStatus.INACTIVE))

    assert updated.status == "inactive"
    assert updated.modified_by == boss.email


def test_delete_company_cascades_and_keeps_admins(db_session):
    company, admin = make_tenant(db_session)
    member = make_user(db_session, role="user", company=company)
    report = make_report(db_session, company, grantees=[member])
    db_session.add(UserSession(user_id=member.id))
    db_session.add(Billing(
        company_id=company.id, external_invoice_id="in_1", billing_date=datetime(2026, 1, 1),
        amount=Decimal("10.00"), status="paid", payment_status="paid", plan="basic"
    ))
    db_session.commit()

    survivor, _ = make_tenant(db_session)
    survivor_report = make_report(db_session, survivor)

    company_id, admin_id, member_id, report_id = company.id, admin.id, member.id, report.id
    run(CompaniesService(db_session).delete_company(_super(db_session), company_id))

    assert db_session.query(Company).filter(Company.id == company_id).count() == 0
    assert db_session.query(User).filter(User.id == member_id).count() == 0
    assert db_session.query(Report).filter(Report.id == report_id).count() == 0
    assert db_session.query(UserReport).count() == 0
    assert db_session.query(UserSession).count() == 0
    assert db_session.query(Billing).count() == 0
    assert db_session.query(CompanyAdmin).filter(CompanyAdmin.company_id == company_id).count() == 0
    assert db_session.query(CompanyAdminHistory).filter(CompanyAdminHistory.company_id == company_id).count() == 0

    # la cuenta admin y los datos de otras empresas se conservan
    assert db_session.query(User).filter(User.id == admin_id).count() == 1
    assert db_session.query(Report).filter(Report.id == survivor_report.id).count() == 1


def test_admin_cannot_delete_company(db_session):
    company, admin = make_tenant(db_session)

    with pytest.raises(Unauthorized):
        run(CompaniesService(db_session).delete_company(actor(db_session, admin), company.id))
    assert db_session.query(Company).filter(Company.id == company.id).count() == 1
