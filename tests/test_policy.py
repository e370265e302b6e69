import pytest

from app.core.auth.policy import (
    Action, Actor, DenyReason, EntityKind, Role, SelfService,
    authorize, authorize_global_read, can_access, visibility_clause
)
from app.core.errors import Unauthorized

C1 = "c1"
C2 = "c2"

SUPER = Actor(id="s", role=Role.SUPER_ADMIN)
ADMIN = Actor(id="a", role=Role.ADMIN, company_ids=frozenset([C1]))
USER = Actor(id="u", role=Role.USER, company_id=C1, company_ids=frozenset([C1]))
SYSTEM = Actor(id="system", role=Role.SYSTEM)


@pytest.mark.parametrize("action", list(Action))
@pytest.mark.parametrize("kind", list(EntityKind))
def test_super_admin_allowed_everything(action, kind):
    assert can_access(SUPER, action, kind, C2).allowed


def test_admin_manages_users_of_own_company_only():
    assert can_access(ADMIN, Action.UPDATE, EntityKind.USER, C1, target_role=Role.USER).allowed

    decision = can_access(ADMIN, Action.UPDATE, EntityKind.USER, C2, target_role=Role.USER)
    assert not decision.allowed
    assert decision.reason == DenyReason.NOT_OWNER


def test_admin_has_no_access_to_privileged_users():
    for role in (Role.ADMIN, Role.SUPER_ADMIN):
        for action in Action:
            decision = can_access(ADMIN, action, EntityKind.USER, None, target_role=role)
            assert decision.reason == DenyReason.INSUFFICIENT_ROLE


def test_admin_reads_but_does_not_write_companies():
    assert can_access(ADMIN, Action.READ, EntityKind.COMPANY, C1).allowed
    assert can_access(ADMIN, Action.UPDATE, EntityKind.COMPANY, C1).reason == DenyReason.INSUFFICIENT_ROLE
    assert can_access(ADMIN, Action.READ, EntityKind.COMPANY, C2).reason == DenyReason.NOT_OWNER


def test_admin_cannot_create_billing():
    assert can_access(ADMIN, Action.CREATE, EntityKind.BILLING, C1).reason == DenyReason.INSUFFICIENT_ROLE
    assert can_access(ADMIN, Action.READ, EntityKind.BILLING, C1).allowed


def test_user_reads_report_only_with_grant():
    assert can_access(USER, Action.READ, EntityKind.REPORT, C1, has_grant=True).allowed
    assert can_access(USER, Action.READ, EntityKind.REPORT, C1).reason == DenyReason.MISSING_GRANT
    assert can_access(USER, Action.READ, EntityKind.REPORT, C2, has_grant=True).reason == DenyReason.NOT_OWNER


def test_user_cannot_write():
    for action in (Action.CREATE, Action.UPDATE, Action.DELETE):
        decision = can_access(USER, action, EntityKind.REPORT, C1, has_grant=True)
        assert decision.reason == DenyReason.INSUFFICIENT_ROLE


def test_increment_access_only_for_end_users():
    allowed = can_access(
        USER, Action.UPDATE, EntityKind.REPORT, C1,
        has_grant=True, self_service=SelfService.INCREMENT_ACCESS
    )
    assert allowed.allowed

    for actor in (SUPER, ADMIN, SYSTEM):
        decision = can_access(
            actor, Action.UPDATE, EntityKind.REPORT, C1,
            has_grant=True, self_service=SelfService.INCREMENT_ACCESS
        )
        assert decision.reason == DenyReason.INSUFFICIENT_ROLE


def test_system_limited_to_billing_entities():
    for kind in (EntityKind.BILLING, EntityKind.SUBSCRIPTION, EntityKind.PAYMENT_METHOD):
        assert can_access(SYSTEM, Action.CREATE, kind, C2).allowed
    for kind in (EntityKind.COMPANY, EntityKind.USER, EntityKind.REPORT, EntityKind.SESSION):
        assert can_access(SYSTEM, Action.READ, kind, C2).reason == DenyReason.INSUFFICIENT_ROLE


def test_self_service_on_own_records():
    assert can_access(
        USER, Action.UPDATE, EntityKind.USER, C1, target_id=USER.id, self_service=SelfService.CHANGE_PASSWORD
    ).allowed
    assert can_access(
        USER, Action.CREATE, EntityKind.SESSION, target_id=USER.id, self_service=SelfService.OWN_SESSION
    ).allowed
    # sobre otro usuario no aplica
    assert not can_access(
        USER, Action.UPDATE, EntityKind.USER, C1, target_id="otro", self_service=SelfService.CHANGE_PASSWORD
    ).allowed
    assert not can_access(
        SYSTEM, Action.CREATE, EntityKind.SESSION, target_id=SYSTEM.id, self_service=SelfService.OWN_SESSION
    ).allowed


def test_authorize_raises_with_reason_as_code():
    with pytest.raises(Unauthorized) as exc:
        authorize(ADMIN, Action.DELETE, EntityKind.REPORT, C2)
    assert exc.value.status_code == 403
    assert exc.value.code == "not_owner"


def test_global_reads_only_for_super_admin():
    authorize_global_read(SUPER, EntityKind.BILLING)
    for actor in (ADMIN, USER, SYSTEM):
        with pytest.raises(Unauthorized):
            authorize_global_read(actor, EntityKind.SESSION)


def test_visibility_clause_unrestricted_for_super_admin_and_system():
    assert visibility_clause(SUPER, EntityKind.REPORT) is None
    assert visibility_clause(SYSTEM, EntityKind.BILLING) is None
    assert visibility_clause(ADMIN, EntityKind.REPORT) is not None
