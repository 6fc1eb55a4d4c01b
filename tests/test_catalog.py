import pytest
from bson import ObjectId

import catalog
from conftest import make_product, make_user
from database import db
from errors import Conflict


def test_list_products_paginates(client, category_id):
    for i in range(20):
        make_product(category_id, name=f"Item {i}", price=10 + i)

    res = client.get("/api/products", params={"page": 2, "limit": 12, "sort": "price_low"})
    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 20
    assert body["total_pages"] == 2
    assert body["current_page"] == 2
    assert [p["price"] for p in body["products"]] == [22 + i for i in range(8)]


def test_default_page_size_is_twelve(client, category_id):
    for i in range(13):
        make_product(category_id, name=f"Item {i}")
    body = client.get("/api/products").json()
    assert len(body["products"]) == 12
    assert body["total_pages"] == 2


def test_sort_orders(client, category_id):
    for price, rating in ((300, 4.1), (100, 4.9), (200, 3.5)):
        make_product(category_id, name=f"P{price}", price=price, rating=rating)

    low = [p["price"] for p in client.get("/api/products?sort=price_low").json()["products"]]
    high = [p["price"] for p in client.get("/api/products?sort=price_high").json()["products"]]
    rated = [p["rating"] for p in client.get("/api/products?sort=rating").json()["products"]]
    assert low == sorted(low)
    assert high == sorted(high, reverse=True)
    assert rated == [4.9, 4.1, 3.5]


def test_default_sort_puts_featured_first(client, category_id):
    make_product(category_id, name="Plain")
    make_product(category_id, name="Star", is_featured=True)
    names = [p["name"] for p in client.get("/api/products").json()["products"]]
    assert names[0] == "Star"


def test_filters(client, category_id):
    make_product(category_id, name="Galaxy S24", price=900, brand="Samsung")
    make_product(category_id, name="Pixel 8", price=700, brand="Google")
    make_product(category_id, name="Old Phone", price=50, brand="Nokia", is_active=False)

    search = client.get("/api/products", params={"search": "samsung"}).json()
    assert [p["name"] for p in search["products"]] == ["Galaxy S24"]

    priced = client.get("/api/products", params={"minPrice": 600, "maxPrice": 800}).json()
    assert [p["name"] for p in priced["products"]] == ["Pixel 8"]

    assert client.get("/api/products", params={"search": "old"}).json()["total"] == 0


def test_search_is_literal(client, category_id):
    make_product(category_id, name="Case (black)")
    assert client.get("/api/products", params={"search": "(black"}).json()["total"] == 1


def test_filter_by_category_and_seller(client, category_id):
    seller_id, _ = make_user("seller")
    make_product(category_id, name="Mine", seller_id=seller_id)
    make_product(category_id, name="Theirs")

    by_seller = client.get("/api/products", params={"seller": seller_id}).json()
    assert [p["name"] for p in by_seller["products"]] == ["Mine"]
    assert client.get("/api/products", params={"category": category_id}).json()["total"] == 2
    assert client.get("/api/products", params={"category": "nope"}).json()["total"] == 0


def test_get_product_resolves_category_and_discount(client, category_id):
    product_id = make_product(category_id, price=750, original_price=1000)
    body = client.get(f"/api/products/{product_id}").json()
    assert body["id"] == product_id
    assert body["category"] == {"id": category_id, "name": "Mobiles", "slug": "mobiles"}
    assert body["discount"] == 25


def test_get_missing_product(client):
    res = client.get("/api/products/64b7f0c2a1b2c3d4e5f60718")
    assert res.status_code == 404
    assert res.json() == {"message": "Product not found"}
    assert client.get("/api/products/not-an-id").status_code == 400


def test_featured_list_caps_at_eight(client, category_id):
    for i in range(10):
        make_product(category_id, name=f"F{i}", is_featured=True)
    make_product(category_id, name="Hidden", is_featured=True, is_active=False)
    featured = client.get("/api/products/featured/list").json()
    assert len(featured) == 8
    assert "Hidden" not in [p["name"] for p in featured]


def test_review_once_per_user(client, category_id, customer):
    user_id, headers = customer
    product_id = make_product(category_id)

    first = client.post(f"/api/products/{product_id}/review", json={"rating": 4, "comment": "Good"}, headers=headers)
    assert first.status_code == 200
    assert first.json()["num_reviews"] == 1
    assert first.json()["rating"] == 4
    assert first.json()["reviews"][0]["name"] == "Asha Rao"

    again = client.post(f"/api/products/{product_id}/review", json={"rating": 1}, headers=headers)
    assert again.status_code == 400
    assert again.json()["message"] == "Already reviewed"
    body = client.get(f"/api/products/{product_id}").json()
    assert body["num_reviews"] == 1
    assert body["rating"] == 4


def test_concurrent_second_review_is_rejected(client, category_id, customer, monkeypatch):
    user_id, headers = customer
    product_id = make_product(category_id)
    # read before the first review lands, as a racing request would
    stale = catalog.find_product(product_id)
    client.post(f"/api/products/{product_id}/review", json={"rating": 4}, headers=headers)

    monkeypatch.setattr(catalog, "find_product", lambda _: stale)
    user = db["user"].find_one({"_id": ObjectId(user_id)})
    with pytest.raises(Conflict):
        catalog.add_review(product_id, user, 1, None)
    assert db["product"].find_one({"_id": ObjectId(product_id)})["num_reviews"] == 1


def test_rating_is_mean_of_reviews(client, category_id, customer):
    product_id = make_product(category_id)
    _, other = make_user(name="Vikram")
    client.post(f"/api/products/{product_id}/review", json={"rating": 5}, headers=customer[1])
    res = client.post(f"/api/products/{product_id}/review", json={"rating": 2}, headers=other)
    assert res.json()["num_reviews"] == 2
    assert res.json()["rating"] == 3.5


def test_review_requires_login(client, category_id):
    product_id = make_product(category_id)
    assert client.post(f"/api/products/{product_id}/review", json={"rating": 5}).status_code == 401


def test_create_and_update_product_roles(client, category_id, customer):
    payload = {"name": "Tab", "description": "A tablet", "price": 500, "original_price": 600, "category_id": category_id, "stock": 3}
    assert client.post("/api/products", json=payload, headers=customer[1]).status_code == 403

    seller_id, seller = make_user("seller")
    created = client.post("/api/products", json=payload, headers=seller)
    assert created.status_code == 201
    product = created.json()
    assert product["seller_id"] == seller_id
    assert product["discount"] == 17

    updated = client.put(f"/api/products/{product['id']}", json={"price": 450}, headers=seller)
    assert updated.json()["price"] == 450

    _, rival = make_user("seller", name="Rival")
    assert client.put(f"/api/products/{product['id']}", json={"price": 1}, headers=rival).status_code == 403


def test_create_product_needs_existing_category(client, admin):
    payload = {"name": "Tab", "description": "A tablet", "price": 5, "original_price": 6, "category_id": "64b7f0c2a1b2c3d4e5f60718"}
    res = client.post("/api/products", json=payload, headers=admin[1])
    assert res.status_code == 400


def test_deactivate_product_hides_it(client, category_id, admin):
    product_id = make_product(category_id)
    assert client.delete(f"/api/admin/products/{product_id}", headers=admin[1]).status_code == 200
    assert client.get("/api/products").json()["total"] == 0
    assert client.get(f"/api/products/{product_id}").json()["is_active"] is False


def test_categories(client, admin):
    created = client.post("/api/categories", json={"name": "Home  Furniture", "description": "Decor"}, headers=admin[1])
    assert created.status_code == 201
    assert created.json()["slug"] == "home-furniture"

    dup = client.post("/api/categories", json={"name": "home furniture"}, headers=admin[1])
    assert dup.status_code == 409

    assert client.get("/api/categories/home-furniture").json()["name"] == "Home  Furniture"
    assert client.get("/api/categories/nothing").status_code == 404

    renamed = client.put(f"/api/categories/{created.json()['id']}", json={"name": "Living Room"}, headers=admin[1])
    assert renamed.json()["slug"] == "living-room"

    client.put(f"/api/categories/{created.json()['id']}", json={"is_active": False}, headers=admin[1])
    assert client.get("/api/categories").json() == []


def test_category_writes_are_admin_only(client, customer):
    assert client.post("/api/categories", json={"name": "Toys"}, headers=customer[1]).status_code == 403
    assert client.post("/api/categories", json={"name": "Toys"}).status_code == 401
