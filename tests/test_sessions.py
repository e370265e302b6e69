from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from app.config.settings import settings
from app.core.errors import Conflict, NotFound, Unauthorized
from app.modules.sessions.service import SessionsService
from app.modules.sessions.tasks import close_stale_sessions
from app.shared.database.models import UserSession
from factories import SYSTEM, FakeClock, actor, link_admin, make_company, make_user, run


def _member(db):
    return make_user(db, company=make_company(db))


def test_start_twice_keeps_single_row(db_session):
    viewer = actor(db_session, _member(db_session))
    service = SessionsService(db_session)

    first = run(service.start(viewer))
    second = run(service.start(viewer))

    assert first.id == second.id
    assert second.is_active
    assert db_session.query(UserSession).filter(UserSession.user_id == viewer.id).count() == 1


def test_concurrent_start_reuses_row(db_session, monkeypatch):
    viewer = actor(db_session, _member(db_session))
    service = SessionsService(db_session)
    existing = run(service.start(viewer))

    # Simula otro login que creó la fila entre la lectura y el INSERT
    real_get_by_user = service.repository.get_by_user
    calls = []

    def stale_get_by_user(user_id):
        calls.append(user_id)
        if len(calls) == 1:
            return None
        return real_get_by_user(user_id)

    monkeypatch.setattr(service.repository, "get_by_user", stale_get_by_user)

    reused = run(service.start(viewer))

    assert reused.id == existing.id
    assert len(calls) == 2
    assert db_session.query(UserSession).count() == 1


def test_stop_accumulates_active_and_inactive_time(db_session):
    clock = FakeClock(datetime(2026, 5, 1, 9, 0, 0))
    viewer = actor(db_session, _member(db_session))
    service = SessionsService(db_session, clock=clock)

    session = run(service.start(viewer))
    clock.advance(seconds=100)
    stopped = run(service.stop(viewer, session.id, active_time_ms=60_500))

    assert not stopped.is_active
    assert stopped.total_active_time == 60
    assert stopped.total_inactive_time == 39

    clock.advance(hours=1)
    run(service.start(viewer))
    clock.advance(seconds=30)
    stopped = run(service.stop(viewer, session.id, active_time_ms=30_000))

    assert stopped.total_active_time == 90
    assert stopped.total_inactive_time == 39


def test_reported_active_time_above_elapsed_gives_no_negative_inactive(db_session):
    clock = FakeClock(datetime(2026, 5, 1, 9, 0, 0))
    viewer = actor(db_session, _member(db_session))
    service = SessionsService(db_session, clock=clock)

    session = run(service.start(viewer))
    clock.advance(seconds=10)
    stopped = run(service.stop(viewer, session.id, active_time_ms=20_000))

    assert stopped.total_active_time == 20
    assert stopped.total_inactive_time == 0


def test_stop_closed_session_conflicts(db_session):
    viewer = actor(db_session, _member(db_session))
    service = SessionsService(db_session)
    session = run(service.start(viewer))
    run(service.stop(viewer, session.id, active_time_ms=0))

    with pytest.raises(Conflict) as exc:
        run(service.stop(viewer, session.id, active_time_ms=0))
    assert exc.value.code == "session_closed"


def test_cannot_stop_someone_elses_session(db_session):
    owner = actor(db_session, _member(db_session))
    intruder = actor(db_session, _member(db_session))
    service = SessionsService(db_session)
    session = run(service.start(owner))

    with pytest.raises(NotFound):
        run(service.stop(intruder, session.id, active_time_ms=0))
    assert run(service.is_active(owner))


def test_system_actor_has_no_session(db_session):
    with pytest.raises(Unauthorized):
        run(SessionsService(db_session).start(SYSTEM))


def test_aggregates_for_super_admin_only(db_session):
    service = SessionsService(db_session)
    first = actor(db_session, _member(db_session))
    second = actor(db_session, _member(db_session))
    run(service.start(first))
    closed = run(service.start(second))
    run(service.stop(second, closed.id, active_time_ms=5_000))
    boss = actor(db_session, make_user(db_session, role="superAdmin"))

    assert run(service.active_count(boss)).active_users == 1
    assert run(service.total_active_time(boss)).total_active_time == 5
    assert run(service.list_sessions(boss, active_only=True)).total == 1

    with pytest.raises(Unauthorized):
        run(service.active_count(first))


def test_current_session_before_any_login(db_session):
    viewer = actor(db_session, _member(db_session))

    current = run(SessionsService(db_session).current(viewer))

    assert current.active is False
    assert current.session is None


def test_close_stale_counts_abandoned_interval_as_inactive(db_session):
    clock = FakeClock(datetime(2026, 5, 1, 9, 0, 0))
    service = SessionsService(db_session, clock=clock)
    abandoned = actor(db_session, _member(db_session))
    recent = actor(db_session, _member(db_session))
    boss = actor(db_session, make_user(db_session, role="superAdmin"))

    run(service.start(abandoned))
    clock.advance(hours=3)
    run(service.start(recent))
    clock.advance(hours=2)

    result = run(service.close_stale(boss))

    assert result.closed_sessions == 1
    assert result.cutoff == clock.now - timedelta(hours=settings.session_stale_hours)
    closed = db_session.query(UserSession).filter(UserSession.user_id == abandoned.id).one()
    assert closed.end_time == clock.now
    assert closed.total_inactive_time == 5 * 3600
    assert closed.total_active_time == 0
    assert run(service.is_active(recent))
    assert run(service.active_count(boss)).active_users == 1


def test_close_stale_keeps_sessions_with_recent_activity(db_session):
    clock = FakeClock(datetime(2026, 5, 1, 9, 0, 0))
    service = SessionsService(db_session, clock=clock)
    member = _member(db_session)
    viewer = actor(db_session, member)
    boss = actor(db_session, make_user(db_session, role="superAdmin"))

    run(service.start(viewer))
    clock.advance(hours=6)
    member.last_activity = clock.now - timedelta(minutes=30)
    db_session.commit()

    assert run(service.close_stale(boss)).closed_sessions == 0
    assert run(service.is_active(viewer))


def test_closed_stale_session_can_be_reactivated(db_session):
    clock = FakeClock(datetime(2026, 5, 1, 9, 0, 0))
    service = SessionsService(db_session, clock=clock)
    viewer = actor(db_session, _member(db_session))
    boss = actor(db_session, make_user(db_session, role="superAdmin"))

    session = run(service.start(viewer))
    clock.advance(hours=5)
    run(service.close_stale(boss))

    with pytest.raises(Conflict):
        run(service.stop(viewer, session.id, active_time_ms=0))

    again = run(service.start(viewer))
    assert again.id == session.id
    assert again.is_active


def test_only_super_admin_closes_stale_sessions(db_session):
    company = make_company(db_session)
    admin = make_user(db_session, role="admin")
    link_admin(db_session, company, admin)
    service = SessionsService(db_session)

    for someone in (actor(db_session, admin), actor(db_session, _member(db_session)), SYSTEM):
        with pytest.raises(Unauthorized) as exc:
            run(service.close_stale(someone))
        assert exc.value.code == "insufficient_role"


def test_periodic_sweep_uses_own_db_session(engine, db_session):
    member = _member(db_session)
    db_session.add(UserSession(user_id=member.id, start_time=datetime.utcnow() - timedelta(hours=5)))
    db_session.commit()

    closed = close_stale_sessions(sessionmaker(bind=engine))

    assert closed == 1
    db_session.expire_all()
    assert db_session.query(UserSession).filter(UserSession.end_time.is_(None)).count() == 0
