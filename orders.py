"""
Checkout and order lifecycle.

Orders are written from the caller's cart. Every line is copied into the
order at current catalog prices, so later product edits never change an
existing order. Stock is reserved with a conditional decrement, which means
two checkouts racing for the last unit cannot both succeed.
"""
import random
import string
import time
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

import config
from cart import clear_cart, resolve_lines
from database import db, create_document, serialize_doc, to_object_id
from errors import Forbidden, InvalidState, NotFound, ValidationFailed
from schemas import ORDER_STATUSES, Order, OrderItem, ShippingAddress

CANCELLABLE = ("pending", "confirmed")
FORWARD = ("pending", "confirmed", "shipped", "delivered")
GATEWAY_IDS = ("razorpay_order_id", "razorpay_payment_id", "razorpay_payment_link_id")


def generate_tracking_id() -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"SK{int(time.time() * 1000)}{suffix}"


def compute_totals(lines: List[dict], discount: float = 0) -> dict:
    items_total = sum(line["product"].get("price", 0) * line["quantity"] for line in lines)
    shipping_charge = 0 if items_total >= config.FREE_SHIPPING_THRESHOLD else config.SHIPPING_CHARGE
    return {
        "items_total": items_total,
        "shipping_charge": shipping_charge,
        "discount": discount,
        "total_amount": items_total + shipping_charge - discount,
    }


def load_checkout_cart(user_id: str):
    """Return (cart document, lines for active products) or raise when there is nothing to buy."""
    cart = db["cart"].find_one({"user_id": user_id})
    lines = [line for line in resolve_lines(cart) if line["product"].get("is_active", True)]
    if not lines:
        raise InvalidState("Cart is empty")
    return cart, lines


def snapshot_items(lines: List[dict]) -> List[OrderItem]:
    items = []
    for line in lines:
        product = line["product"]
        images = product.get("images") or []
        items.append(OrderItem(
            product_id=str(product["_id"]),
            name=product.get("name", ""),
            image=images[0] if images else "",
            price=float(product.get("price", 0)),
            quantity=line["quantity"],
        ))
    return items


def _restore_stock(items):
    for item in items:
        db["product"].update_one({"_id": ObjectId(item["product_id"])}, {"$inc": {"stock": item["quantity"]}})


def reserve_stock(items: List[OrderItem]):
    taken = []
    for item in items:
        res = db["product"].update_one(
            {"_id": ObjectId(item.product_id), "stock": {"$gte": item.quantity}},
            {"$inc": {"stock": -item.quantity}},
        )
        if res.modified_count == 0:
            _restore_stock(taken)
            raise InvalidState(f"Insufficient stock for {item.name}")
        taken.append({"product_id": item.product_id, "quantity": item.quantity})


def place_order(
    user_id: str,
    shipping_address,
    payment_method: Optional[str],
    payment_status: str = "pending",
    status: str = "pending",
    razorpay_order_id: Optional[str] = None,
    razorpay_payment_id: Optional[str] = None,
    razorpay_payment_link_id: Optional[str] = None,
    paid_amount: Optional[float] = None,
) -> dict:
    """Write an order from the user's cart.

    ``paid_amount`` is what the gateway collected. When given, the cart total
    must still equal it, otherwise nothing is written.
    """
    if not shipping_address:
        raise ValidationFailed("Shipping address is required")
    if not payment_method:
        raise ValidationFailed("Payment method is required")
    if isinstance(shipping_address, dict):
        try:
            shipping_address = ShippingAddress(**shipping_address)
        except PydanticValidationError:
            raise ValidationFailed("Invalid shipping address")

    _, lines = load_checkout_cart(user_id)
    items = snapshot_items(lines)
    totals = compute_totals(lines)
    if paid_amount is not None and round(totals["total_amount"] * 100) != round(paid_amount * 100):
        raise InvalidState("Order total does not match the amount paid")

    order = Order(
        user_id=user_id,
        items=items,
        shipping_address=shipping_address,
        payment_method=payment_method,
        payment_status=payment_status,
        status=status,
        tracking_id=generate_tracking_id(),
        razorpay_order_id=razorpay_order_id,
        razorpay_payment_id=razorpay_payment_id,
        razorpay_payment_link_id=razorpay_payment_link_id,
        **totals,
    )
    doc = order.model_dump()
    # gateway ids carry sparse unique indexes, so unset ones stay out of the document
    for key in GATEWAY_IDS:
        if doc[key] is None:
            del doc[key]

    reserve_stock(items)
    try:
        order_id = create_document("order", doc)
    except Exception:
        _restore_stock([i.model_dump() for i in items])
        raise
    clear_cart(user_id)

    logger.info("Order {} placed by {} ({} {}, total {})", order.tracking_id, user_id, payment_method, payment_status, order.total_amount)
    return serialize_doc(db["order"].find_one({"_id": ObjectId(order_id)}))


def list_user_orders(user_id: str) -> List[dict]:
    return [serialize_doc(o) for o in db["order"].find({"user_id": user_id}).sort("created_at", -1)]


def list_all_orders() -> List[dict]:
    docs = list(db["order"].find().sort("created_at", -1))
    user_ids = [ObjectId(o["user_id"]) for o in docs if ObjectId.is_valid(o.get("user_id", ""))]
    users = {
        str(u["_id"]): {"id": str(u["_id"]), "name": u.get("name"), "email": u.get("email")}
        for u in db["user"].find({"_id": {"$in": user_ids}})
    } if user_ids else {}
    result = []
    for doc in docs:
        out = serialize_doc(doc)
        out["user"] = users.get(doc.get("user_id"))
        result.append(out)
    return result


def _find_order(order_id: str) -> dict:
    doc = db["order"].find_one({"_id": to_object_id(order_id, "order id")})
    if not doc:
        raise NotFound("Order not found")
    return doc


def get_order(order_id: str, user: dict) -> dict:
    doc = _find_order(order_id)
    if doc["user_id"] != str(user["_id"]) and user.get("role") != "admin":
        raise Forbidden("Not authorized")
    return serialize_doc(doc)


def _mark_cancelled(doc: dict, reason: str):
    now = datetime.now(timezone.utc)
    # the status guard keeps a double cancel from restoring stock twice
    res = db["order"].update_one(
        {"_id": doc["_id"], "status": {"$in": list(CANCELLABLE)}},
        {"$set": {"status": "cancelled", "cancelled_at": now, "cancel_reason": reason, "updated_at": now}},
    )
    if res.modified_count == 0:
        raise InvalidState("Cannot cancel this order")
    _restore_stock(doc["items"])
    logger.info("Order {} cancelled: {}", doc.get("tracking_id"), reason)


def cancel_order(order_id: str, user: dict, reason: Optional[str] = None) -> dict:
    doc = _find_order(order_id)
    if doc["user_id"] != str(user["_id"]):
        raise Forbidden("Not authorized")
    if doc["status"] not in CANCELLABLE:
        raise InvalidState("Cannot cancel this order")
    _mark_cancelled(doc, reason or "Cancelled by user")
    return serialize_doc(db["order"].find_one({"_id": doc["_id"]}))


def update_status(order_id: str, status: str) -> dict:
    if status not in ORDER_STATUSES:
        raise ValidationFailed("Invalid status")
    doc = _find_order(order_id)
    current = doc["status"]
    if status == current:
        return serialize_doc(doc)

    if status == "cancelled":
        if current not in CANCELLABLE:
            raise InvalidState(f"Cannot change status from {current} to {status}")
        _mark_cancelled(doc, "Cancelled by admin")
    else:
        if current not in FORWARD or FORWARD.index(status) < FORWARD.index(current):
            raise InvalidState(f"Cannot change status from {current} to {status}")
        now = datetime.now(timezone.utc)
        update = {"status": status, "updated_at": now}
        if status == "delivered":
            update["delivered_at"] = now
        db["order"].update_one({"_id": doc["_id"]}, {"$set": update})
        logger.info("Order {} moved {} -> {}", doc.get("tracking_id"), current, status)
    return serialize_doc(db["order"].find_one({"_id": doc["_id"]}))
