"""
Shopping assistant.

Answers a fixed set of shopping questions from canned text. When an OpenAI
key is configured, the chat model answers instead. Any failure there falls
back to the canned responder. Nothing is remembered between calls.
"""
from functools import lru_cache
from typing import Optional

from loguru import logger
from openai import OpenAI

import config
from database import db
from errors import ValidationFailed

SYSTEM_PROMPT = f"""You are {config.STORE_NAME}'s helpful AI shopping assistant. You help customers with:
- Finding products and recommendations
- Order tracking and status
- Return and refund policies
- Payment and delivery information
- General shopping queries

Be friendly, helpful, and concise. If you don't know something, say so politely.

Store Policies:
- Free delivery on orders above ₹{config.FREE_SHIPPING_THRESHOLD}
- 7-day easy returns on most products
- Cash on Delivery available
- Secure online payments via UPI, Cards, Net Banking

Always be helpful and guide customers to make informed purchases."""

# checked in order, first match wins
RULES = [
    ("product_search", ("looking for", "find", "search", "show me")),
    ("delivery", ("delivery", "shipping")),
    ("returns", ("return", "refund", "exchange")),
    ("payment", ("payment", "pay", "cod")),
    ("greeting", ("hello", "hi", "hey")),
]

CANNED = {
    "order_tracking": (
        "To track your order, please login and visit 'My Orders' section. "
        "You can also share your order ID and I'll help you track it."
    ),
    "delivery": (
        "🚚 Delivery Information:\n"
        f"- Free delivery on orders above ₹{config.FREE_SHIPPING_THRESHOLD}\n"
        "- Standard delivery: 3-5 business days\n"
        "- Express delivery available in select cities\n"
        "- Track your order in real-time from 'My Orders'"
    ),
    "returns": (
        "↩️ Return Policy:\n"
        "- 7-day easy returns on most products\n"
        "- Items must be unused and in original packaging\n"
        "- Refund processed within 5-7 business days\n"
        "- Some categories like innerwear are non-returnable\n\n"
        "To initiate a return, go to 'My Orders' and select the item."
    ),
    "payment": (
        "💳 Payment Options:\n"
        "- Cash on Delivery (COD)\n"
        "- UPI (GPay, PhonePe, Paytm)\n"
        "- Credit/Debit Cards\n"
        "- Net Banking\n"
        "- EMI available on select products\n\n"
        "All payments are 100% secure!"
    ),
    "greeting": (
        f"Hello! 👋 Welcome to {config.STORE_NAME}! I'm your shopping assistant. How can I help you today?\n\n"
        "I can help with:\n"
        "- Finding products\n"
        "- Order tracking\n"
        "- Returns & refunds\n"
        "- Payment queries"
    ),
    "default": (
        "I'm here to help! You can ask me about:\n"
        "- Product recommendations\n"
        "- Order tracking\n"
        "- Delivery & shipping\n"
        "- Returns & refunds\n"
        "- Payment options\n\n"
        "What would you like to know?"
    ),
}


def rupees(amount) -> str:
    amount = float(amount)
    return str(int(amount)) if amount.is_integer() else f"{amount:.2f}"


def classify(message: str) -> str:
    text = message.lower()
    if "order" in text and any(w in text for w in ("track", "status", "where")):
        return "order_tracking"
    for intent, keywords in RULES:
        if any(k in text for k in keywords):
            return intent
    return "default"


def _recent_orders_reply(user_id: str) -> Optional[str]:
    orders = list(db["order"].find({"user_id": user_id}).sort("created_at", -1).limit(3))
    if not orders:
        return None
    lines = "\n".join(
        f"Order #{o.get('tracking_id')}: {o.get('status', '').upper()} - ₹{rupees(o.get('total_amount', 0))}" for o in orders
    )
    return f"Here are your recent orders:\n{lines}\n\nNeed help with a specific order?"


def fallback_response(message: str, user_id: Optional[str] = None) -> str:
    intent = classify(message)
    if intent == "order_tracking" and user_id:
        reply = _recent_orders_reply(user_id)
        if reply:
            return reply
    if intent == "product_search":
        names = ", ".join(c.get("name") for c in db["category"].find({"is_active": True}))
        return (
            f"I can help you find products! We have: {names}. What are you looking for specifically? "
            "You can also use the search bar above to find products."
        )
    return CANNED[intent]


@lru_cache(maxsize=1)
def get_llm() -> Optional[OpenAI]:
    if not config.OPENAI_API_KEY:
        return None
    return OpenAI(api_key=config.OPENAI_API_KEY)


def _llm_response(llm: OpenAI, message: str) -> str:
    products = db["product"].find({"is_active": True}, {"name": 1, "price": 1}).limit(20)
    context = ", ".join(f"{p.get('name')} - ₹{rupees(p.get('price', 0))}" for p in products)
    completion = llm.chat.completions.create(
        model=config.OPENAI_MODEL,
        messages=[
            {"role": "system", "content": f"{SYSTEM_PROMPT}\n\nAvailable products: {context}"},
            {"role": "user", "content": message},
        ],
        max_tokens=300,
        temperature=0.7,
    )
    return completion.choices[0].message.content


def respond(message: Optional[str], user_id: Optional[str] = None, llm: Optional[OpenAI] = None) -> str:
    if not message or not message.strip():
        raise ValidationFailed("Message is required")
    if llm is not None:
        try:
            return _llm_response(llm, message)
        except Exception as e:
            logger.warning("Assistant model failed, using canned replies: {}", e)
    return fallback_response(message, user_id)
