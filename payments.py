"""
Razorpay integration.

Two checkout paths use the gateway. In the first, a gateway order is opened
for the cart total, the client pays, and the signed callback is verified
before the local order is written. In the second, the gateway hosts a
shareable payment link. The gateway's redirect after payment is what
reconciles that link into a local order.
"""
import json
import re
import time
from functools import lru_cache
from typing import Optional

import razorpay
from loguru import logger
from pymongo.errors import DuplicateKeyError
from razorpay.errors import SignatureVerificationError

import config
from database import db
from errors import InvalidState, SecurityViolation, UpstreamFailure, ValidationFailed
from orders import compute_totals, load_checkout_cart, place_order


@lru_cache(maxsize=1)
def get_gateway() -> razorpay.Client:
    return razorpay.Client(auth=(config.RAZORPAY_API_KEY, config.RAZORPAY_API_SECRET))


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def _signed(message: str, signature: str, secret: str) -> bool:
    utility = razorpay.Client(auth=(config.RAZORPAY_API_KEY, secret)).utility
    try:
        return utility.verify_signature(message, signature or "", secret)
    except SignatureVerificationError:
        return False


def verify_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    return _signed(f"{order_id}|{payment_id}", signature, secret)


def verify_link_signature(link_id: str, reference_id: str, status: str, payment_id: str, signature: str, secret: str) -> bool:
    return _signed(f"{link_id}|{reference_id}|{status}|{payment_id}", signature, secret)


def normalize_phone(phone: Optional[str]) -> str:
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) != 10 or len(set(digits)) == 1:
        return config.FALLBACK_PHONE
    return digits


def truncate_description(text: str) -> str:
    limit = config.PAYMENT_DESCRIPTION_MAX
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def _call(action: str, fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        logger.error("Razorpay {} failed: {}", action, e)
        raise UpstreamFailure(f"{action} failed")


# ----------------------- Checkout order -----------------------

def create_gateway_order(gateway, user: dict, shipping_address: Optional[dict]) -> dict:
    _, lines = load_checkout_cart(str(user["_id"]))
    totals = compute_totals(lines)

    gateway_order = _call("Payment initialization", gateway.order.create, data={
        "amount": to_minor_units(totals["total_amount"]),
        "currency": config.CURRENCY,
        "receipt": f"SK_{int(time.time() * 1000)}",
        "payment_capture": 1,
        "notes": {
            "userId": str(user["_id"]),
            "customerName": user.get("name", ""),
            "customerEmail": user.get("email", ""),
        },
    })
    logger.info("Gateway order {} opened for {} ({})", gateway_order["id"], user["_id"], totals["total_amount"])

    return {
        "order_id": gateway_order["id"],
        "amount": totals["total_amount"],
        "currency": config.CURRENCY,
        "key_id": config.RAZORPAY_API_KEY,
        "name": config.STORE_NAME,
        "description": "Order Payment",
        "prefill": {
            "name": user.get("name", ""),
            "email": user.get("email", ""),
            "contact": (shipping_address or {}).get("phone", ""),
        },
    }


def verify_payment(gateway, user: dict, order_id: str, payment_id: str, signature: str, shipping_address) -> dict:
    if not verify_signature(order_id, payment_id, signature, config.RAZORPAY_API_SECRET):
        logger.warning("Payment signature mismatch for gateway order {}", order_id)
        raise SecurityViolation("Invalid payment signature")
    if db["order"].find_one({"razorpay_order_id": order_id}):
        logger.warning("Gateway order {} verified again", order_id)
        raise InvalidState("Payment already processed")

    gateway_order = _call("Payment verification", gateway.order.fetch, order_id)
    try:
        order = place_order(
            str(user["_id"]),
            shipping_address,
            "online",
            payment_status="paid",
            status="confirmed",
            razorpay_order_id=order_id,
            razorpay_payment_id=payment_id,
            paid_amount=gateway_order["amount"] / 100,
        )
    except DuplicateKeyError:
        raise InvalidState("Payment already processed")
    return {"success": True, "order": order}


# ----------------------- Payment links -----------------------

def _link_request(amount: float, description: str, customer: dict, user: dict, notes: dict) -> dict:
    return {
        "amount": to_minor_units(amount),
        "currency": config.CURRENCY,
        "accept_partial": False,
        "description": description,
        "customer": {
            "name": customer.get("name") or user.get("name", ""),
            "email": customer.get("email") or user.get("email", ""),
            "contact": normalize_phone(customer.get("phone")),
        },
        "notify": {"sms": True, "email": True},
        "reminder_enable": True,
        "notes": notes,
        "callback_url": f"{config.API_URL}/api/payment/link-success",
        "callback_method": "get",
    }


def create_payment_link(gateway, user: dict, amount: Optional[float], description: Optional[str], customer: Optional[dict]) -> dict:
    if not amount or amount <= 0:
        raise ValidationFailed("Valid amount is required")
    description = truncate_description(description or f"Payment for {config.STORE_NAME} Order")
    request = _link_request(amount, description, customer or {}, user, {
        "userId": str(user["_id"]),
        "generatedBy": user.get("name", ""),
        "type": "payment_link",
    })
    link = _call("Payment link generation", gateway.payment_link.create, request)
    logger.info("Payment link {} issued for {} ({})", link["id"], user["_id"], amount)
    return {
        "success": True,
        "payment_link": link["short_url"],
        "payment_link_id": link["id"],
        "amount": amount,
        "description": description,
    }


def create_cart_payment_link(gateway, user: dict, shipping_address: Optional[dict], customer: Optional[dict]) -> dict:
    cart, lines = load_checkout_cart(str(user["_id"]))
    totals = compute_totals(lines)

    names = ", ".join(f"{line['product'].get('name')} ({line['quantity']}x)" for line in lines)
    description = truncate_description(f"{config.STORE_NAME} Order: {names}")

    customer = dict(customer or {})
    if not customer.get("phone"):
        customer["phone"] = (shipping_address or {}).get("phone")
    request = _link_request(totals["total_amount"], description, customer, user, {
        "userId": str(user["_id"]),
        "cartId": str(cart["_id"]),
        "shippingAddress": json.dumps(shipping_address or {}),
        "type": "cart_payment_link",
    })
    link = _call("Cart payment link generation", gateway.payment_link.create, request)
    logger.info("Cart payment link {} issued for {} ({})", link["id"], user["_id"], totals["total_amount"])
    return {
        "success": True,
        "payment_link": link["short_url"],
        "payment_link_id": link["id"],
        "amount": totals["total_amount"],
        "items_total": totals["items_total"],
        "shipping_charge": totals["shipping_charge"],
        "description": description,
        "item_count": len(lines),
    }


def payment_link_status(gateway, link_id: str) -> dict:
    link = _call("Payment link status", gateway.payment_link.fetch, link_id)
    return {
        "success": True,
        "status": link.get("status"),
        "amount": link.get("amount", 0) / 100,
        "currency": link.get("currency"),
        "description": link.get("description"),
        "short_url": link.get("short_url"),
        "created_at": link.get("created_at"),
        "expire_by": link.get("expire_by"),
    }


def reconcile_payment_link(gateway, link_id: str, payment_id: str) -> Optional[dict]:
    """Turn a paid cart payment link into a local order, once.

    The gateway's copy of the link is the source of truth: it must be paid,
    and the cart must still add up to what was charged.
    """
    existing = db["order"].find_one({"razorpay_payment_link_id": link_id})
    if existing:
        return None

    link = _call("Payment link status", gateway.payment_link.fetch, link_id)
    if link.get("status") != "paid":
        logger.warning("Payment link {} reported paid but gateway says {}", link_id, link.get("status"))
        raise InvalidState("Payment link is not paid")
    notes = link.get("notes") or {}
    if notes.get("type") != "cart_payment_link":
        return None

    try:
        shipping_address = json.loads(notes.get("shippingAddress") or "{}")
    except ValueError:
        shipping_address = {}
    try:
        order = place_order(
            notes["userId"],
            shipping_address,
            "online",
            payment_status="paid",
            status="confirmed",
            razorpay_payment_id=payment_id,
            razorpay_payment_link_id=link_id,
            paid_amount=link.get("amount", 0) / 100,
        )
    except (ValidationFailed, InvalidState) as e:
        logger.warning("Payment link {} paid but not reconciled: {}", link_id, e.detail)
        return None
    except DuplicateKeyError:
        return None
    return order
