"""
Cart store: one cart document per user, always read back against the
current catalog.
"""
from datetime import datetime, timezone
from typing import List

from bson import ObjectId

from database import db, to_object_id
from errors import NotFound, ValidationFailed

PRODUCT_FIELDS = ("name", "price", "original_price", "images", "stock", "is_active")


def _find_cart(user_id: str):
    return db["cart"].find_one({"user_id": user_id})


def resolve_lines(cart) -> List[dict]:
    """Cart lines joined with their current product documents, unknown products dropped."""
    if not cart:
        return []
    items = cart.get("items", [])
    oids = [ObjectId(i["product_id"]) for i in items if ObjectId.is_valid(i["product_id"])]
    products = {str(p["_id"]): p for p in db["product"].find({"_id": {"$in": oids}})} if oids else {}
    lines = []
    for item in items:
        product = products.get(item["product_id"])
        if product is None:
            continue
        lines.append({"product": product, "quantity": int(item["quantity"])})
    return lines


def present_cart(cart) -> dict:
    lines = resolve_lines(cart)
    items = []
    for line in lines:
        product = line["product"]
        entry = {k: product.get(k) for k in PRODUCT_FIELDS}
        entry["id"] = str(product["_id"])
        items.append({"product": entry, "quantity": line["quantity"]})
    return {
        "id": str(cart["_id"]) if cart else None,
        "items": items,
        "items_total": sum(line["product"].get("price", 0) * line["quantity"] for line in lines),
        "item_count": sum(line["quantity"] for line in lines),
    }


def _save(cart: dict):
    db["cart"].update_one(
        {"_id": cart["_id"]},
        {"$set": {"items": cart["items"], "updated_at": datetime.now(timezone.utc)}},
    )


def get_cart(user_id: str) -> dict:
    return present_cart(_find_cart(user_id))


def add_item(user_id: str, product_id: str, quantity: int = 1) -> dict:
    if quantity < 1:
        raise ValidationFailed("Quantity must be positive")
    product = db["product"].find_one({"_id": to_object_id(product_id, "product id"), "is_active": True})
    if not product:
        raise NotFound("Product not found")
    product_id = str(product["_id"])

    now = datetime.now(timezone.utc)
    # upsert so that concurrent first adds still end with a single cart
    db["cart"].update_one(
        {"user_id": user_id},
        {"$setOnInsert": {"user_id": user_id, "items": [], "created_at": now}},
        upsert=True,
    )
    cart = _find_cart(user_id)
    for item in cart["items"]:
        if item["product_id"] == product_id:
            item["quantity"] += quantity
            break
    else:
        cart["items"].append({"product_id": product_id, "quantity": quantity})
    _save(cart)
    return get_cart(user_id)


def set_quantity(user_id: str, product_id: str, quantity: int) -> dict:
    cart = _find_cart(user_id)
    if not cart:
        raise NotFound("Cart not found")
    if quantity <= 0:
        cart["items"] = [i for i in cart["items"] if i["product_id"] != product_id]
    else:
        for item in cart["items"]:
            if item["product_id"] == product_id:
                item["quantity"] = quantity
    _save(cart)
    return get_cart(user_id)


def remove_item(user_id: str, product_id: str) -> dict:
    cart = _find_cart(user_id)
    if not cart:
        return present_cart(None)
    cart["items"] = [i for i in cart["items"] if i["product_id"] != product_id]
    _save(cart)
    return get_cart(user_id)


def clear_cart(user_id: str):
    db["cart"].delete_one({"user_id": user_id})
