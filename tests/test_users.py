import pytest

from app.core.errors import Conflict, InvariantViolation, NotFound, ValidationFailed, Unauthorized
from app.modules.users.schemas import UserCreate, UserRole, UserUpdate
from app.modules.users.service import UsersService
from app.shared.database.models import User, UserReport, UserSession
from factories import actor, make_company, make_report, make_tenant, make_user, run


def _new_user(**overrides):
    data = {
        "user_name": "maria.garcia",
        "email": "maria@example.com",
        "password": "segura12345",
        "role": UserRole.USER,
    }
    data.update(overrides)
    return UserCreate(**data)


def test_end_user_requires_company(db_session):
    boss = actor(db_session, make_user(db_session, role="superAdmin"))
    before = db_session.query(User).count()

    with pytest.raises(InvariantViolation) as exc:
        run(UsersService(db_session).create_user(boss, _new_user()))

    assert exc.value.code == "company_required"
    assert db_session.query(User).count() == before


def test_end_user_requires_active_company(db_session):
    boss = actor(db_session, make_user(db_session, role="superAdmin"))
    company = make_company(db_session, status="suspended")

    with pytest.raises(InvariantViolation) as exc:
        run(UsersService(db_session).create_user(boss, _new_user(company_id=company.id)))

    assert exc.value.code == "company_required"
    assert exc.value.blocking == [company.id]
    assert db_session.query(User).filter(User.email == "maria@example.com").count() == 0


def test_admin_creates_user_in_managed_company(db_session):
    company, admin = make_tenant(db_session)

    created = run(UsersService(db_session).create_user(
        actor(db_session, admin), _new_user(company_id=company.id, email="Maria@Example.com")
    ))

    assert created.company_id == company.id
    assert created.email == "maria@example.com"
    stored = db_session.query(User).filter(User.id == created.id).one()
    assert stored.password_hash != "segura12345"
    assert stored.password_history == [stored.password_hash]


def test_privileged_users_have_no_company(db_session):
    boss = actor(db_session, make_user(db_session, role="superAdmin"))
    company = make_company(db_session)

    created = run(UsersService(db_session).create_user(
        boss, _new_user(role=UserRole.ADMIN, company_id=company.id)
    ))

    assert created.role == "admin"
    assert created.company_id is None


def test_admin_cannot_create_admin(db_session):
    _, admin = make_tenant(db_session)

    with pytest.raises(Unauthorized) as exc:
        run(UsersService(db_session).create_user(actor(db_session, admin), _new_user(role=UserRole.ADMIN)))
    assert exc.value.code == "insufficient_role"


def test_duplicate_user_rejected(db_session):
    company, admin = make_tenant(db_session)
    existing = make_user(db_session, company=company)

    with pytest.raises(Conflict) as exc:
        run(UsersService(db_session).create_user(
            actor(db_session, admin), _new_user(company_id=company.id, email=existing.email.upper())
        ))
    assert exc.value.code == "duplicate_user"


def test_admin_cannot_update_user_of_other_company(db_session):
    _, admin = make_tenant(db_session)
    other_company, _ = make_tenant(db_session)
    outsider = make_user(db_session, company=other_company)

    with pytest.raises(Unauthorized) as exc:
        run(UsersService(db_session).update_user(
            actor(db_session, admin), outsider.id, UserUpdate(status="inactive")
        ))

    assert exc.value.code == "not_owner"
    db_session.expire_all()
    assert db_session.query(User).filter(User.id == outsider.id).one().status == "active"


def test_admin_cannot_move_user_to_unmanaged_company(db_session):
    company, admin = make_tenant(db_session)
    other_company, _ = make_tenant(db_session)
    member = make_user(db_session, company=company)

    with pytest.raises(Unauthorized) as exc:
        run(UsersService(db_session).update_user(
            actor(db_session, admin), member.id, UserUpdate(company_id=other_company.id)
        ))
    assert exc.value.code == "not_owner"


def test_company_change_revokes_report_grants(db_session):
    company = make_company(db_session)
    target = make_company(db_session)
    member = make_user(db_session, company=company)
    make_report(db_session, company, grantees=[member])
    boss = actor(db_session, make_user(db_session, role="superAdmin"))

    updated = run(UsersService(db_session).update_user(boss, member.id, UserUpdate(company_id=target.id)))

    assert updated.company_id == target.id
    assert updated.report_count == 0
    assert db_session.query(UserReport).filter(UserReport.user_id == member.id).count() == 0


def test_company_change_rejected_for_admin_accounts(db_session):
    company, admin = make_tenant(db_session)
    boss = actor(db_session, make_user(db_session, role="superAdmin"))

    with pytest.raises(ValidationFailed) as exc:
        run(UsersService(db_session).update_user(boss, admin.id, UserUpdate(company_id=company.id)))
    assert "company_id" in exc.value.field_errors


def test_delete_assigned_admin_blocked(db_session):
    company, admin = make_tenant(db_session)
    boss = actor(db_session, make_user(db_session, role="superAdmin"))

    with pytest.raises(InvariantViolation) as exc:
        run(UsersService(db_session).delete_user(boss, admin.id))

    assert exc.value.code == "admin_still_assigned"
    assert exc.value.blocking == [company.id]
    assert db_session.query(User).filter(User.id == admin.id).count() == 1


def test_delete_user_removes_grants_and_session(db_session):
    company, admin = make_tenant(db_session)
    member = make_user(db_session, company=company)
    make_report(db_session, company, grantees=[member])
    db_session.add(UserSession(user_id=member.id))
    db_session.commit()
    member_id = member.id

    run(UsersService(db_session).delete_user(actor(db_session, admin), member_id))

    assert db_session.query(User).filter(User.id == member_id).count() == 0
    assert db_session.query(UserReport).filter(UserReport.user_id == member_id).count() == 0
    assert db_session.query(UserSession).filter(UserSession.user_id == member_id).count() == 0


def test_admin_lists_only_end_users_of_managed_companies(db_session):
    company, admin = make_tenant(db_session)
    other_company, _ = make_tenant(db_session)
    mine = [make_user(db_session, company=company) for _ in range(3)]
    make_user(db_session, company=other_company)

    page = run(UsersService(db_session).list_users(actor(db_session, admin), page_size=2))

    assert page.total == 3
    assert page.pages == 2
    assert len(page.rows) == 2
    assert {u.id for u in page.rows} <= {u.id for u in mine}


def test_admin_creating_end_user_without_company_gets_company_required(db_session):
    _, admin = make_tenant(db_session)
    before = db_session.query(User).count()

    with pytest.raises(InvariantViolation) as exc:
        run(UsersService(db_session).create_user(actor(db_session, admin), _new_user()))

    assert exc.value.code == "company_required"
    assert db_session.query(User).count() == before


def test_admin_cannot_read_other_admin_accounts(db_session):
    _, admin = make_tenant(db_session)
    _, fellow = make_tenant(db_session)

    with pytest.raises(NotFound):
        run(UsersService(db_session).get_user(actor(db_session, admin), fellow.id))


def test_search_underscore_is_not_a_wildcard(db_session):
    boss = actor(db_session, make_user(db_session, role="superAdmin"))
    company = make_company(db_session)
    wanted = make_user(db_session, company=company, name="ana_lopez")
    make_user(db_session, company=company, name="anaXlopez")

    page = run(UsersService(db_session).list_users(boss, search="na_lo"))

    assert page.total == 1
    assert page.rows[0].id == wanted.id
