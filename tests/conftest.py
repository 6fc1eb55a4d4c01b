import mongomock
import pytest

import database

# every module reads the handle at import time, so swap it in first
database.db = mongomock.MongoClient()["shopkart_test"]

from fastapi.testclient import TestClient  # noqa: E402

import assistant  # noqa: E402
import config  # noqa: E402
import main  # noqa: E402
import payments  # noqa: E402
from auth import create_access_token, hash_password  # noqa: E402
from database import create_document, db  # noqa: E402
from schemas import Category, Product, User  # noqa: E402

TEST_SECRET = "test_secret"


class _Orders:
    def __init__(self, gateway):
        self.gateway = gateway
        self.orders = {}

    def create(self, data=None, **kwargs):
        if self.gateway.fail:
            raise RuntimeError("gateway down")
        self.gateway.calls.append(("order.create", data))
        order = {"id": "order_TEST123", "amount": data["amount"], "currency": data["currency"]}
        self.orders[order["id"]] = order
        return order

    def fetch(self, order_id, data=None, **kwargs):
        if self.gateway.fail:
            raise RuntimeError("gateway down")
        self.gateway.calls.append(("order.fetch", order_id))
        return self.orders[order_id]


class _PaymentLinks:
    def __init__(self, gateway):
        self.gateway = gateway
        self.links = {}

    def create(self, data=None, **kwargs):
        if self.gateway.fail:
            raise RuntimeError("gateway down")
        self.gateway.calls.append(("payment_link.create", data))
        link_id = f"plink_{len(self.links) + 1}"
        link = {**data, "id": link_id, "short_url": f"https://rzp.io/i/{link_id}", "status": "created", "created_at": 1700000000, "expire_by": 0}
        self.links[link_id] = link
        return link

    def fetch(self, link_id, data=None, **kwargs):
        if self.gateway.fail:
            raise RuntimeError("gateway down")
        self.gateway.calls.append(("payment_link.fetch", link_id))
        return self.links[link_id]

    def pay(self, link_id):
        self.links[link_id]["status"] = "paid"


class FakeGateway:
    """Records what the app asks the payment gateway to do."""

    def __init__(self):
        self.calls = []
        self.fail = False
        self.order = _Orders(self)
        self.payment_link = _PaymentLinks(self)


@pytest.fixture(autouse=True)
def clean_db(monkeypatch):
    monkeypatch.setattr(config, "RAZORPAY_API_SECRET", TEST_SECRET)
    monkeypatch.setattr(config, "RAZORPAY_API_KEY", "rzp_test_key")
    database.ensure_indexes()
    yield
    for name in db.list_collection_names():
        db.drop_collection(name)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(gateway):
    main.app.dependency_overrides[payments.get_gateway] = lambda: gateway
    main.app.dependency_overrides[assistant.get_llm] = lambda: None
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def make_user(role="customer", name="Asha Rao", email=None, password="secret123"):
    user = User(
        name=name,
        email=email or f"{role}{db['user'].count_documents({})}@shopkart.in",
        password_hash=hash_password(password),
        phone="9123456780",
        role=role,
    )
    user_id = create_document("user", user)
    token = create_access_token({"sub": user_id, "role": role})
    return user_id, {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer():
    return make_user()


@pytest.fixture
def admin():
    return make_user("admin", name="Admin")


@pytest.fixture
def category_id():
    return create_document("category", Category(name="Mobiles", slug="mobiles"))


def make_product(category_id, name="Phone", price=100.0, stock=10, **extra):
    fields = {"description": f"{name} description", "original_price": price, "images": [f"https://img/{name}.jpg"]}
    fields.update(extra)
    return create_document("product", Product(name=name, price=price, stock=stock, category_id=category_id, **fields))


def stock_of(product_id):
    from bson import ObjectId
    return db["product"].find_one({"_id": ObjectId(product_id)})["stock"]
