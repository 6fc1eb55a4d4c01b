from bson import ObjectId

import config
from conftest import make_product, make_user
from database import db


def test_register_login_me(client):
    res = client.post("/api/auth/register", json={"name": "Meera", "email": "Meera@ShopKart.in", "password": "secret123"})
    assert res.status_code == 201
    assert res.json()["user"]["email"] == "meera@shopkart.in"
    assert res.json()["user"]["role"] == "customer"
    assert "password_hash" not in res.json()["user"]

    login = client.post("/api/auth/login", json={"email": "meera@shopkart.in", "password": "secret123"})
    token = login.json()["token"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["name"] == "Meera"


def test_duplicate_email(client):
    payload = {"name": "Meera", "email": "meera@shopkart.in", "password": "secret123"}
    client.post("/api/auth/register", json=payload)
    res = client.post("/api/auth/register", json=payload)
    assert res.status_code == 400
    assert res.json() == {"message": "Email already registered"}


def test_bad_credentials(client):
    make_user(email="ravi@shopkart.in", password="right-pass")
    res = client.post("/api/auth/login", json={"email": "ravi@shopkart.in", "password": "wrong-pass"})
    assert res.status_code == 401
    assert res.json() == {"message": "Invalid credentials"}


def test_invalid_token(client):
    res = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert res.status_code == 401
    assert res.json() == {"message": "Invalid token"}


def test_validation_errors_use_message(client):
    res = client.post("/api/auth/register", json={"name": "X", "email": "nope", "password": "secret123"})
    assert res.status_code == 400
    assert res.json()["message"].startswith("email")


def test_profile_and_addresses(client, customer):
    headers = customer[1]
    assert client.put("/api/auth/profile", json={"name": "Asha R"}, headers=headers).json()["name"] == "Asha R"

    address = {"name": "Asha", "phone": "9123456780", "street": "1 Park St", "city": "Kolkata", "state": "WB", "pincode": "700016"}
    assert client.post("/api/auth/address", json=address, headers=headers).json() == [address]
    assert client.delete("/api/auth/address/0", headers=headers).json() == []
    assert client.delete("/api/auth/address/0", headers=headers).status_code == 404


def test_dashboard(client, admin, customer, category_id):
    headers = customer[1]
    address = {"name": "A", "phone": "9123456780", "street": "S", "city": "C", "state": "S", "pincode": "1"}
    for price in (600, 100):
        client.post("/api/cart/add", json={"product_id": make_product(category_id, price=price)}, headers=headers)
        client.post("/api/orders", json={"shipping_address": address, "payment_method": "cod"}, headers=headers)
    cancelled = db["order"].find_one({"total_amount": 140})
    client.put(f"/api/orders/{cancelled['_id']}/cancel", headers=headers)

    body = client.get("/api/admin/dashboard", headers=admin[1]).json()
    assert body["stats"] == {
        "total_users": 2,
        "total_products": 2,
        "total_orders": 2,
        "total_revenue": 600,
        "pending_orders": 1,
    }
    assert len(body["recent_orders"]) == 2
    assert client.get("/api/admin/dashboard", headers=headers).status_code == 403


def test_users_and_roles(client, admin, customer):
    user_id, headers = customer
    users = client.get("/api/admin/users", headers=admin[1]).json()
    assert {u["role"] for u in users} == {"admin", "customer"}
    assert all("password_hash" not in u for u in users)

    promoted = client.put(f"/api/admin/users/{user_id}/role", json={"role": "seller"}, headers=admin[1])
    assert promoted.json()["role"] == "seller"
    assert client.put(f"/api/admin/users/{user_id}/role", json={"role": "king"}, headers=admin[1]).status_code == 400
    assert client.put("/api/admin/users/64b7f0c2a1b2c3d4e5f60718/role", json={"role": "seller"}, headers=admin[1]).status_code == 404


def test_seed_resets_demo_data(client, customer):
    res = client.post("/api/admin/seed")
    assert res.status_code == 200
    stats = res.json()["stats"]
    assert stats["categories"] == 5
    assert db["product"].count_documents({}) == stats["products"]
    assert db["user"].count_documents({}) == stats["users"]
    assert db["user"].find_one({"_id": ObjectId(customer[0])}) is None

    login = client.post("/api/auth/login", json={"email": config.ADMIN_EMAIL, "password": config.ADMIN_PASSWORD})
    assert login.json()["user"]["role"] == "admin"
    assert len(client.get("/api/products/featured/list").json()) == 4


def test_health(client):
    body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["database"] == "connected"
