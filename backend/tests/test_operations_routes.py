"""
Shift operations, login and health API tests.
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from tillbook.extensions import db
from tillbook.models import Shift
from tillbook.services import auth_service


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# LOGIN
# =============================================================================

class TestLogin:

    def test_login_returns_token_and_role(self, app, client, db_session):
        auth_service.create_staff("manager", "Password123!", role="manager")

        resp = client.post("/api/login", json={"username": "manager", "password": "Password123!"})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["role"] == "manager"

        claims = jwt.decode(body["token"], app.config["JWT_SECRET"], algorithms=["HS256"])
        assert claims["username"] == "manager"
        assert claims["role"] == "manager"

        resp = client.get("/api/invoices", headers=auth_headers(body["token"]))
        assert resp.status_code == 200

    def test_wrong_password(self, client, db_session):
        auth_service.create_staff("cashier", "Password123!", role="cashier")
        resp = client.post("/api/login", json={"username": "cashier", "password": "nope-nope"})
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Invalid username or password"}

    def test_missing_fields(self, client, db_session):
        assert client.post("/api/login", json={"username": "x"}).status_code == 400

    def test_expired_token(self, app, client, db_session):
        staff = auth_service.create_staff("cashier", "Password123!", role="cashier")
        past = datetime.now(timezone.utc) - timedelta(days=1)
        token = jwt.encode(
            {"sub": str(staff.id), "role": "cashier", "exp": past},
            app.config["JWT_SECRET"],
            algorithm="HS256",
        )
        resp = client.get("/api/invoices", headers=auth_headers(token))
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Token has expired"}

    def test_disabled_account_token_rejected(self, client, db_session):
        staff = auth_service.create_staff("gone", "Password123!", role="admin")
        token = auth_service.issue_token(staff)
        staff.is_active = False
        db.session.commit()
        assert client.get("/api/invoices", headers=auth_headers(token)).status_code == 401


@pytest.mark.parametrize(
    "role,required,allowed",
    [
        ("cashier", "cashier", True),
        ("admin", "cashier", True),
        ("cashier", "manager", False),
        ("accounts", "manager", False),
        ("manager", ["cashier", "manager"], True),
        ("admin", ["cashier", "manager"], True),
        ("accounts", ["cashier", "manager"], False),
        ("cashier", ["cashier", "manager"], True),
        (None, "cashier", False),
        ("intern", "cashier", False),
    ],
)
def test_role_ranks(role, required, allowed):
    assert auth_service.role_allows(role, required) is allowed


# =============================================================================
# SHIFT ENDPOINTS
# =============================================================================

class TestShiftRoutes:

    def test_current_without_shift(self, client, cashier_headers):
        resp = client.get("/api/operations/shift/current", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.get_json() == {"isOpen": False}

    def test_shift_roles(self, client, accounts_headers, admin_headers):
        assert client.get("/api/operations/shift/current", headers=accounts_headers).status_code == 403
        assert client.get("/api/operations/shift/current", headers=admin_headers).status_code == 200

    def test_start_and_current(self, client, cashier_headers):
        resp = client.post("/api/operations/shift/start", json={"startingCash": 150}, headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.get_json()["shift"]["opened_by"] == "cashier"

        body = client.get("/api/operations/shift/current", headers=cashier_headers).get_json()
        assert body["isOpen"] is True
        assert body["expectedCash"] == 150.0
        for key in ("totalSales", "cashSales", "cardSales", "transactionCount"):
            assert key in body

    def test_start_twice_conflicts(self, client, cashier_headers):
        client.post("/api/operations/shift/start", json={"startingCash": 100}, headers=cashier_headers)
        resp = client.post("/api/operations/shift/start", json={"startingCash": 100}, headers=cashier_headers)
        assert resp.status_code == 409
        assert "openShiftId" in resp.get_json()["details"]

    def test_start_with_forced_close(self, client, manager_headers):
        client.post("/api/operations/shift/start", json={"startingCash": 100}, headers=manager_headers)
        resp = client.post(
            "/api/operations/shift/start",
            json={"startingCash": 60, "closePrevious": {"mode": "forced"}},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert db.session.query(Shift).filter_by(close_mode="forced").count() == 1
        assert db.session.query(Shift).filter_by(status="open").count() == 1

    def test_start_close_previous_requires_mode(self, client, manager_headers):
        client.post("/api/operations/shift/start", json={"startingCash": 100}, headers=manager_headers)
        resp = client.post(
            "/api/operations/shift/start",
            json={"startingCash": 60, "closePrevious": {"cashCounts": {"hundreds": 1}}},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "closePrevious.mode is required"
        assert db.session.query(Shift).filter_by(status="open").count() == 1

    def test_close_rejects_oversized_count(self, client, cashier_headers):
        client.post("/api/operations/shift/start", json={"startingCash": 100}, headers=cashier_headers)
        resp = client.post(
            "/api/operations/shift/close",
            json={"cashCounts": {"hundreds": 10**20}, "notes": "count"},
            headers=cashier_headers,
        )
        assert resp.status_code == 400
        assert "cashCounts.hundreds must be at most" in resp.get_json()["error"]
        assert db.session.query(Shift).filter_by(status="open").count() == 1

    def test_close_gate_flow(self, client, cashier_headers):
        client.post("/api/operations/shift/start", json={"startingCash": 300}, headers=cashier_headers)
        counts = {"hundreds": 2, "fifties": 1, "coins": 4.50}

        resp = client.post(
            "/api/operations/shift/close",
            json={"cashCounts": counts, "actualCash": 254.50, "discrepancy": -45.50},
            headers=cashier_headers,
        )
        assert resp.status_code == 400

        resp = client.post(
            "/api/operations/shift/close",
            json={"cashCounts": counts, "notes": "Gave change from float"},
            headers=cashier_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["details"]["requiresConfirmation"] is True

        resp = client.post(
            "/api/operations/shift/close",
            json={"cashCounts": counts, "notes": "Gave change from float", "confirmDiscrepancy": True},
            headers=cashier_headers,
        )
        assert resp.status_code == 200
        shift = resp.get_json()["shift"]
        assert shift["actual_cash"] == 254.5
        assert shift["discrepancy"] == -45.5
        assert shift["status"] == "closed"

    def test_close_rejects_mismatched_client_total(self, client, cashier_headers):
        client.post("/api/operations/shift/start", json={"startingCash": 0}, headers=cashier_headers)
        resp = client.post(
            "/api/operations/shift/close",
            json={"cashCounts": {"tens": 2}, "actualCash": 25},
            headers=cashier_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["details"] == {"actualCash": 20.0}

    def test_close_without_shift(self, client, cashier_headers):
        resp = client.post("/api/operations/shift/close", json={"cashCounts": {}}, headers=cashier_headers)
        assert resp.status_code == 404
        assert resp.get_json() == {"error": "No open shift found"}

    def test_cash_drop_and_pay_in(self, client, cashier_headers):
        client.post("/api/operations/shift/start", json={"startingCash": 200}, headers=cashier_headers)
        assert client.post(
            "/api/operations/shift/cash-drop", json={"amount": 150, "reason": "Safe"}, headers=cashier_headers
        ).status_code == 201
        assert client.post(
            "/api/operations/shift/pay-in", json={"amount": "25.50"}, headers=cashier_headers
        ).status_code == 201

        body = client.get("/api/operations/shift/current", headers=cashier_headers).get_json()
        assert body["expectedCash"] == 75.5

    def test_negative_amount_rejected(self, client, cashier_headers):
        client.post("/api/operations/shift/start", json={"startingCash": 200}, headers=cashier_headers)
        resp = client.post("/api/operations/shift/pay-in", json={"amount": -5}, headers=cashier_headers)
        assert resp.status_code == 400


def test_health(client, db_session):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"


def test_cors_header_for_known_origin(client, db_session):
    resp = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
    assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
