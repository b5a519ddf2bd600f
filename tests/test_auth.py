import pytest

from elegance.api import routes_auth
from elegance.core.security import Role, hash_password
from elegance.db.models import User


@pytest.fixture
def registered(db):
    user = User(email="buyer@example.com", name="Buyer", password_hash=hash_password("s3cret-pass"), role=Role.CUSTOMER)
    db.add(user); db.commit(); db.refresh(user)
    return user


def test_register(client):
    resp = client.post("/api/auth/register", json={"name": "Salem", "email": "New@Example.com", "password": "longenough"})
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["email"] == "new@example.com"
    assert data["role"] == "customer"
    assert "passwordHash" not in data

    dup = client.post("/api/auth/register", json={"name": "Again", "email": "new@example.com", "password": "longenough"})
    assert dup.status_code == 409
    assert dup.json()["error"]["code"] == "EMAIL_TAKEN"


def test_register_race_on_unique_email(client, registered, monkeypatch):
    # the pre-check misses, as when another request inserts between check and commit
    monkeypatch.setattr(routes_auth, "email_registered", lambda db, email: False)

    resp = client.post("/api/auth/register", json={"name": "Twin", "email": "buyer@example.com", "password": "longenough"})

    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "EMAIL_TAKEN"


def test_register_short_password(client):
    resp = client.post("/api/auth/register", json={"email": "x@example.com", "password": "short"})
    assert resp.status_code == 422


def test_login_and_me(client, registered):
    resp = client.post("/api/auth/login", json={"email": "buyer@example.com", "password": "s3cret-pass"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["tokenType"] == "bearer"
    assert data["user"]["id"] == registered.id

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['accessToken']}"})
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "buyer@example.com"


def test_login_wrong_password(client, registered):
    resp = client.post("/api/auth/login", json={"email": "buyer@example.com", "password": "nope-nope"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "UNAUTHORIZED"


def test_inactive_user_token_rejected(client, db, customer, auth_headers):
    headers = auth_headers(customer)
    customer.is_active = False
    db.commit()
    assert client.get("/api/auth/me", headers=headers).status_code == 401


class TestCatalog:
    def test_public_listing(self, client, perfume):
        resp = client.get("/api/perfumes")
        assert resp.status_code == 200
        perfumes = resp.json()["data"]["perfumes"]
        assert [p["id"] for p in perfumes] == [perfume.id]
        assert perfumes[0]["category"] == "Hombre"

        one = client.get(f"/api/perfumes/{perfume.id}")
        assert one.json()["data"]["perfume"]["stock"] == 10

    def test_filter_by_category(self, client, perfume):
        resp = client.get("/api/perfumes", params={"category": "Mujer"})
        assert resp.json()["data"]["perfumes"] == []

    def test_missing_perfume(self, client):
        resp = client.get("/api/perfumes/9999")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "PERFUME_NOT_FOUND"

    def test_customer_cannot_create(self, client, customer, auth_headers):
        body = {"name": "Light Blue", "brand": "D&G", "description": "Citrus", "price": 59990, "stock": 5, "category": "Mujer"}
        resp = client.post("/api/perfumes", json=body, headers=auth_headers(customer))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "FORBIDDEN"

    def test_admin_creates_and_restocks(self, client, admin, auth_headers):
        headers = auth_headers(admin)
        body = {"name": "Light Blue", "brand": "D&G", "description": "Citrus", "price": 59990, "stock": 5, "category": "Mujer"}
        resp = client.post("/api/perfumes", json=body, headers=headers)
        assert resp.status_code == 201
        created = resp.json()["data"]["perfume"]
        assert created["isActive"] is True
        assert created["image"]

        restocked = client.post(f"/api/perfumes/{created['id']}/restock", json={"quantity": 3}, headers=headers)
        assert restocked.status_code == 200
        assert restocked.json()["data"]["perfume"]["stock"] == 8

    def test_restock_unknown(self, client, admin, auth_headers):
        resp = client.post("/api/perfumes/9999/restock", json={"quantity": 3}, headers=auth_headers(admin))
        assert resp.status_code == 404

    def test_admin_soft_deletes(self, client, admin, auth_headers, perfume, db):
        resp = client.delete(f"/api/perfumes/{perfume.id}", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.json()["data"]["perfume"]["isActive"] is False

        assert client.get(f"/api/perfumes/{perfume.id}").status_code == 404
        assert client.get("/api/perfumes").json()["data"]["perfumes"] == []
        assert client.delete(f"/api/perfumes/{perfume.id}", headers=auth_headers(admin)).status_code == 404

        db.refresh(perfume)
        assert perfume.is_active is False

    def test_customer_cannot_delete(self, client, customer, auth_headers, perfume):
        resp = client.delete(f"/api/perfumes/{perfume.id}", headers=auth_headers(customer))
        assert resp.status_code == 403
