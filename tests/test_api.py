"""End-to-end API behaviour through the FastAPI app."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from barstock.main import app
from barstock.routes import products as products_routes
from tests.conftest import auth


def _create_team(client, owner, name="Bar Central"):
    response = client.post("/api/teams", json={"name": name}, headers=auth(owner))
    assert response.status_code == 200
    return response.json()["id"]


def _create_product(client, user, team_id=None, **fields):
    body = {"name": "Vodka 1L", "category": "bebidas-destiladas", "unit": "garrafa", "min_stock_level": 5}
    body.update(fields)
    response = client.post("/api/products", json=body, headers=auth(user, team_id))
    assert response.status_code == 200, response.text
    return response.json()


def _move(client, user, product_id, mtype, quantity, team_id=None, **fields):
    body = {"product_id": product_id, "type": mtype, "quantity": quantity, **fields}
    return client.post("/api/stock/movement", json=body, headers=auth(user, team_id))


class TestHealthAndAuth:
    def test_health_is_public(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_missing_authorization(self, client):
        response = client.get("/api/products")

        assert response.status_code == 401
        assert response.json() == {"error": "Missing Authorization header"}

    def test_expired_token(self, client):
        response = client.get("/api/products", headers=auth("expired"))

        assert response.status_code == 401
        assert response.json() == {"error": "Token expired"}

    def test_invalid_token(self, client):
        response = client.get("/api/teams", headers=auth("garbage"))

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid token"}


class TestProducts:
    def test_list_without_team_is_empty(self, client):
        response = client.get("/api/products", headers=auth("loner"))

        assert response.status_code == 200
        assert response.json() == []

    def test_create_without_team_is_rejected(self, client):
        response = client.post("/api/products", json={"name": "Gin"}, headers=auth("loner"))

        assert response.status_code == 400
        assert "team" in response.json()["error"]

    def test_create_starts_with_zero_stock(self, client):
        _create_team(client, "alice")

        product = _create_product(client, "alice")

        assert product["stock"]["quantity"] == 0
        assert product["created_by"] == "alice"
        listed = client.get("/api/products", headers=auth("alice")).json()
        assert [p["id"] for p in listed] == [product["id"]]

    def test_update_and_delete(self, client):
        _create_team(client, "alice")
        product = _create_product(client, "alice")

        updated = client.put(
            f"/api/products/{product['id']}",
            json={"name": "Vodka 1L Premium", "min_stock_level": 2},
            headers=auth("alice"),
        )
        assert updated.status_code == 200
        assert updated.json()["name"] == "Vodka 1L Premium"

        deleted = client.delete(f"/api/products/{product['id']}", headers=auth("alice"))
        assert deleted.status_code == 200
        assert client.get(f"/api/products/{product['id']}", headers=auth("alice")).status_code == 404

    def test_other_team_product_is_forbidden(self, client):
        _create_team(client, "alice")
        _create_team(client, "mallory", name="Other")
        product = _create_product(client, "alice")

        response = client.put(f"/api/products/{product['id']}", json={"name": "Mine"}, headers=auth("mallory"))

        assert response.status_code == 403
        assert client.delete(f"/api/products/{product['id']}", headers=auth("mallory")).status_code == 403

    def test_validation_errors_use_error_shape(self, client):
        _create_team(client, "alice")

        response = client.post("/api/products", json={"min_stock_level": 1}, headers=auth("alice"))

        assert response.status_code == 400
        assert "name" in response.json()["error"]


class TestStock:
    def test_vodka_flow(self, client):
        _create_team(client, "alice")
        vodka = _create_product(client, "alice")

        assert _move(client, "alice", vodka["id"], "entrada", 20, reason="compra").status_code == 200
        assert _move(client, "alice", vodka["id"], "saida", 17, reason="venda").status_code == 200

        alerts = client.get("/api/stock/alerts", headers=auth("alice")).json()
        assert alerts["low_stock"][0]["current_quantity"] == 3
        assert alerts["summary"]["low_stock_count"] == 1
        assert alerts["summary"]["total_movements_today"] == 2

        loss = _move(client, "alice", vodka["id"], "perda", 1, reason="quebra")
        assert loss.json()["signed_quantity"] == -1

        levels = client.get("/api/stock", headers=auth("alice")).json()
        assert levels[0]["quantity"] == 2

        history = client.get("/api/stock/movements", headers=auth("alice")).json()
        assert [(m["type"], m["quantity"]) for m in history] == [("perda", 1), ("saida", 17), ("entrada", 20)]
        assert history[0]["product_name"] == "Vodka 1L"

    def test_invalid_quantity(self, client):
        _create_team(client, "alice")
        vodka = _create_product(client, "alice")

        response = _move(client, "alice", vodka["id"], "entrada", -3)

        assert response.status_code == 400
        assert response.json() == {"error": "Quantity must be a positive number"}

    def test_movement_without_team_is_forbidden(self, client):
        response = _move(client, "loner", 1, "entrada", 1)

        assert response.status_code == 403

    def test_movement_on_other_team_product_is_not_found(self, client):
        _create_team(client, "alice")
        _create_team(client, "mallory", name="Other")
        vodka = _create_product(client, "alice")

        response = _move(client, "mallory", vodka["id"], "entrada", 1)

        assert response.status_code == 404
        assert response.json() == {"error": "Product not found"}

    def test_history_limit_is_clamped(self, client):
        _create_team(client, "alice")
        vodka = _create_product(client, "alice")
        for _ in range(3):
            _move(client, "alice", vodka["id"], "entrada", 1)

        assert len(client.get("/api/stock/movements?limit=0", headers=auth("alice")).json()) == 1
        assert len(client.get("/api/stock/movements?limit=9999", headers=auth("alice")).json()) == 3

    def test_stock_count(self, client):
        _create_team(client, "alice")
        vodka = _create_product(client, "alice")
        _move(client, "alice", vodka["id"], "entrada", 10)

        response = client.post(
            "/api/stock/count",
            json={"items": [{"product_id": vodka["id"], "counted_quantity": 8}]},
            headers=auth("alice"),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["adjusted"] == 1
        assert body["movements"][0]["direction"] == "out"
        assert client.get("/api/stock", headers=auth("alice")).json()[0]["quantity"] == 8

    def test_alerts_use_preference_window(self, client):
        client.post("/api/users/preferences", json={"alert_expiry_days": 2}, headers=auth("alice"))
        _create_team(client, "alice")

        summary = client.get("/api/stock/alerts", headers=auth("alice")).json()["summary"]

        assert summary["expiry_alert_days"] == 2


class TestTeamsAndPermissions:
    def test_restricted_member(self, client):
        team_id = _create_team(client, "alice")
        member = client.post(f"/api/teams/{team_id}/members", json={"user_id": "bob"}, headers=auth("alice")).json()
        routes = client.put(
            f"/api/teams/{team_id}/members/{member['id']}/routes",
            json={"allowed_routes": ["products"]},
            headers=auth("alice"),
        )
        assert routes.json()["allowed_routes"] == ["products"]

        assert client.get("/api/products", headers=auth("bob")).status_code == 200
        denied = client.get("/api/stock/movements", headers=auth("bob"))
        assert denied.status_code == 403
        assert denied.json() == {"error": "You do not have access to 'movements'"}

        current = client.get("/api/teams/current", headers=auth("bob")).json()
        assert current["team"]["id"] == team_id
        assert current["routes"]["products"] is True
        assert current["routes"]["settings"] is True
        assert current["routes"]["reports"] is False

        members = client.get(f"/api/teams/{team_id}/members", headers=auth("bob"))
        assert members.status_code == 403
        assert members.json() == {"error": "You do not have access to 'teams'"}

    def test_non_owner_cannot_add_members(self, client):
        team_id = _create_team(client, "alice")
        client.post(f"/api/teams/{team_id}/members", json={"user_id": "bob"}, headers=auth("alice"))

        response = client.post(f"/api/teams/{team_id}/members", json={"user_id": "carol"}, headers=auth("bob"))

        assert response.status_code == 403

    def test_duplicate_member_conflicts(self, client):
        team_id = _create_team(client, "alice")
        client.post(f"/api/teams/{team_id}/members", json={"user_id": "bob"}, headers=auth("alice"))

        response = client.post(f"/api/teams/{team_id}/members", json={"user_id": "bob"}, headers=auth("alice"))

        assert response.status_code == 409
        assert response.json() == {"error": "User is already a member"}

    def test_team_header_selects_team(self, client):
        shared = _create_team(client, "alice", name="Shared")
        _create_product(client, "alice", name="Gin")
        client.post(f"/api/teams/{shared}/members", json={"user_id": "bob"}, headers=auth("alice"))
        _create_team(client, "bob", name="Bob's")

        default_view = client.get("/api/products", headers=auth("bob")).json()
        shared_view = client.get("/api/products", headers=auth("bob", shared)).json()

        assert default_view == []
        assert [p["name"] for p in shared_view] == ["Gin"]

    def test_join_by_custom_id(self, client):
        team_id = _create_team(client, "alice")
        code = client.post("/api/users/profile", json={}, headers=auth("alice")).json()["custom_id"]

        joined = client.post("/api/teams/join", json={"owner_custom_id": code.lower()}, headers=auth("bob"))
        assert joined.status_code == 200
        assert joined.json()["team_id"] == team_id

        again = client.post("/api/teams/join", json={"owner_custom_id": code}, headers=auth("bob"))
        assert again.status_code == 409
        assert again.json() == {"error": "You are already a member of this team"}

        own = client.post("/api/teams/join", json={"owner_custom_id": code}, headers=auth("alice"))
        assert own.status_code == 400

    def test_list_teams_and_members(self, client):
        team_id = _create_team(client, "alice")
        client.post(f"/api/teams/{team_id}/members", json={"user_id": "bob"}, headers=auth("alice"))

        teams = client.get("/api/teams", headers=auth("bob")).json()
        members = client.get(f"/api/teams/{team_id}/members", headers=auth("bob")).json()

        assert [(t["id"], t["role"]) for t in teams] == [(team_id, "member")]
        assert [m["user_id"] for m in members] == ["alice", "bob"]
        assert client.get(f"/api/teams/{team_id}/members", headers=auth("mallory")).status_code == 403


class TestUsers:
    def test_profile_creation_is_idempotent(self, client):
        first = client.post("/api/users/profile", json={}, headers=auth("alice")).json()
        second = client.post("/api/users/profile", json={}, headers=auth("alice")).json()

        assert first["success"] is True
        assert first["custom_id"] == second["custom_id"]

    def test_profile_not_found_then_created(self, client):
        assert client.get("/api/users/profile", headers=auth("alice")).status_code == 404

        client.post("/api/users/profile", json={"custom_id": "bar12345"}, headers=auth("alice"))
        profile = client.get("/api/users/profile", headers=auth("alice")).json()

        assert profile["custom_id"] == "BAR12345"

    def test_lookup(self, client):
        client.post("/api/users/profile", json={"custom_id": "BAR12345"}, headers=auth("alice"))
        client.put("/api/users/profile", json={"display_name": "Alice"}, headers=auth("alice"))

        found = client.get("/api/users/lookup/bar12345", headers=auth("bob")).json()

        assert found == {"user_id": "alice", "display_name": "Alice"}

    def test_preferences_update_without_fields(self, client):
        client.post("/api/users/preferences", json={}, headers=auth("alice"))

        response = client.put("/api/users/preferences", json={}, headers=auth("alice"))

        assert response.status_code == 400
        assert response.json() == {"error": "No fields to update"}


class TestReports:
    def test_stock_report_is_pdf(self, client):
        _create_team(client, "alice")
        _create_product(client, "alice")

        response = client.get("/api/reports/stock.pdf", headers=auth("alice"))

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")

    def test_movements_report_rejects_bad_date(self, client):
        _create_team(client, "alice")

        response = client.get("/api/reports/movements.pdf?date_from=yesterday", headers=auth("alice"))

        assert response.status_code == 400

    def test_losses_report(self, client):
        _create_team(client, "alice")
        vodka = _create_product(client, "alice")
        _move(client, "alice", vodka["id"], "perda", 1, reason="quebra")

        response = client.get("/api/reports/losses.pdf", headers=auth("alice"))

        assert response.content.startswith(b"%PDF")


class TestUnexpectedErrors:
    @pytest.fixture()
    def lenient_client(self, client):
        return TestClient(app, raise_server_exceptions=False)

    def test_database_failure_returns_json(self, lenient_client, monkeypatch):
        lenient_client.post("/api/teams", json={"name": "Bar"}, headers=auth("alice"))

        def broken(db, team_id):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(products_routes, "get_stock_with_levels", broken)
        response = lenient_client.get("/api/products", headers=auth("alice"))

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == {"error": "Database error"}

    def test_unexpected_exception_returns_json(self, lenient_client, monkeypatch):
        lenient_client.post("/api/teams", json={"name": "Bar"}, headers=auth("alice"))

        def broken(db, team_id):
            raise RuntimeError("boom")

        monkeypatch.setattr(products_routes, "get_stock_with_levels", broken)
        response = lenient_client.get("/api/products", headers=auth("alice"))

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
