from app.config.settings import settings
from app.core.auth.service import AuthService
from factories import auth_headers, link_admin, make_company, make_report, make_tenant, make_user

PASSWORD = "Secreta123"


def _with_password(db, **kwargs):
    return make_user(db, password_hash=AuthService.get_password_hash(PASSWORD), **kwargs)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Request-ID"]


def test_request_id_is_propagated(client):
    response = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"


def test_missing_token_is_unauthenticated(client):
    response = client.get("/api/v1/companies")

    assert response.status_code == 401
    body = response.json()
    assert body["code"] == "unauthenticated"
    assert body["message"]


def test_authentication_checked_before_body_validation(client):
    response = client.post("/api/v1/reports", json={})
    assert response.status_code == 401


def test_validation_error_shape(client, db_session):
    boss = make_user(db_session, role="superAdmin")

    response = client.post("/api/v1/reports", json={"report_name": "x"}, headers=auth_headers(boss))

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "validation_error"
    assert "report_url" in body["field_errors"]
    assert "company_id" in body["field_errors"]


def test_invalid_sort_field_rejected(client, db_session):
    boss = make_user(db_session, role="superAdmin")

    response = client.get("/api/v1/users", params={"sort_by": "password_hash"}, headers=auth_headers(boss))

    assert response.status_code == 422
    assert "sort_by" in response.json()["field_errors"]


def test_forbidden_body_carries_reason(client, db_session):
    _, admin = make_tenant(db_session)

    response = client.get("/api/v1/billing/revenue", headers=auth_headers(admin))

    assert response.status_code == 403
    assert response.json()["code"] == "insufficient_role"


def test_invariant_violation_body(client, db_session):
    boss = make_user(db_session, role="superAdmin")

    response = client.post(
        "/api/v1/companies",
        json={"company_name": "Acme", "email": "acme@example.com", "admin_ids": []},
        headers=auth_headers(boss)
    )

    assert response.status_code == 409
    assert response.json()["code"] == "admin_required"


def test_login_and_me(client, db_session):
    company, _ = make_tenant(db_session)
    admin = _with_password(db_session, role="admin")
    link_admin(db_session, company, admin)

    response = client.post("/api/v1/auth/login", json={"email": admin.email, "password": PASSWORD})

    assert response.status_code == 200
    token = response.json()["access_token"]
    assert response.json()["user"]["company_ids"] == [company.id]

    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == admin.id
    assert me.json()["last_login"] is not None


def test_login_lockout_after_failed_attempts(client, db_session):
    user = _with_password(db_session, company=make_company(db_session))

    for _ in range(settings.max_login_attempts):
        response = client.post("/api/v1/auth/login", json={"email": user.email, "password": "incorrecta"})
        assert response.status_code == 401

    response = client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})
    assert response.status_code == 401
    assert "bloqueada" in response.json()["message"]


def test_inactive_user_cannot_login(client, db_session):
    user = _with_password(db_session, company=make_company(db_session), status="inactive")

    response = client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})
    assert response.status_code == 401


def test_change_password_rejects_recent_passwords(client, db_session):
    user = _with_password(db_session, company=make_company(db_session))
    headers = auth_headers(user)

    def change(current, new):
        return client.post(
            "/api/v1/auth/change-password",
            json={"current_password": current, "new_password": new, "confirm_password": new},
            headers=headers
        )

    reused = change(PASSWORD, PASSWORD)
    assert reused.status_code == 422
    assert "new_password" in reused.json()["field_errors"]

    assert change(PASSWORD, "NuevaClave456").status_code == 200

    back = change("NuevaClave456", PASSWORD)
    assert back.status_code == 422

    wrong = change("otra-cosa", "OtraClave789")
    assert wrong.status_code == 422
    assert "current_password" in wrong.json()["field_errors"]


def test_system_key_creates_invoice(client, db_session, monkeypatch):
    monkeypatch.setattr(settings, "system_api_key", "webhook-secret")
    company = make_company(db_session)
    invoice = {
        "company_id": company.id,
        "external_invoice_id": "in_api_1",
        "billing_date": "2026-01-01T00:00:00",
        "amount": "149.00",
        "status": "paid",
        "payment_status": "paid",
        "plan": "professional"
    }

    created = client.post("/api/v1/billing", json=invoice, headers={"X-System-Key": "webhook-secret"})
    assert created.status_code == 201
    assert created.json()["external_invoice_id"] == "in_api_1"

    rejected = client.post("/api/v1/billing", json=invoice, headers={"X-System-Key": "otra"})
    assert rejected.status_code == 401


def test_end_user_registers_report_view(client, db_session):
    company, _ = make_tenant(db_session)
    viewer = make_user(db_session, company=company)
    report = make_report(db_session, company, grantees=[viewer])

    response = client.post(f"/api/v1/reports/{report.id}/views", headers=auth_headers(viewer))

    assert response.status_code == 200
    assert response.json()["access_count"] == 1


def test_session_lifecycle_over_http(client, db_session):
    viewer = make_user(db_session, company=make_company(db_session))
    headers = auth_headers(viewer)

    started = client.post("/api/v1/sessions/start", headers=headers)
    assert started.status_code == 200
    session_id = started.json()["id"]

    stopped = client.post(f"/api/v1/sessions/{session_id}/stop", json={"active_time_ms": 0}, headers=headers)
    assert stopped.status_code == 200
    assert stopped.json()["is_active"] is False

    again = client.post(f"/api/v1/sessions/{session_id}/stop", json={"active_time_ms": 0}, headers=headers)
    assert again.status_code == 409
    assert again.json()["details"] == {"retryable": False}


def test_close_stale_sessions_endpoint(client, db_session):
    boss = make_user(db_session, role="superAdmin")
    _, admin = make_tenant(db_session)

    denied = client.post("/api/v1/sessions/close-stale", headers=auth_headers(admin))
    assert denied.status_code == 403

    response = client.post("/api/v1/sessions/close-stale", headers=auth_headers(boss))
    assert response.status_code == 200
    assert response.json()["closed_sessions"] == 0
