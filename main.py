import sys
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from fastapi import FastAPI, Depends, Query
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from loguru import logger
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import assistant
import cart
import catalog
import config
import orders
import payments
from auth import (
    create_access_token,
    get_current_user,
    get_optional_user,
    hash_password,
    public_user,
    require_admin,
    require_seller,
    verify_password,
)
from database import db, create_document, ensure_indexes, serialize_doc, to_object_id
from errors import Forbidden, InvalidState, NotFound, Unauthorized, ValidationFailed
from schemas import ROLES, PaymentMethod, ShippingAddress, Specification, User
from seed import seed_demo_data

logger.remove()
logger.add(sys.stderr, level=config.LOG_LEVEL)

app = FastAPI(title="ShopKart API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup():
    ensure_indexes()


# Errors are always {"message": ...}
@app.exception_handler(StarletteHTTPException)
async def http_error(request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(Exception)
async def server_error(request, exc: Exception):
    logger.exception("Unhandled error on {} {}", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Server error"})


# Health checks
@app.get("/")
def root():
    return {"message": "ShopKart API running"}


@app.get("/api/health")
def health():
    response = {"status": "ok", "message": "ShopKart API is running", "database": "not configured", "collections": []}
    if db is not None:
        try:
            response["collections"] = db.list_collection_names()
            response["database"] = "connected"
        except Exception as e:
            response["database"] = f"error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
class RegisterPayload(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


class ProfilePayload(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None


def _auth_response(doc: dict):
    token = create_access_token({"sub": str(doc["_id"]), "role": doc.get("role", "customer")})
    return {"token": token, "user": public_user(doc)}


@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterPayload):
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise ValidationFailed("Email already registered")
    user = User(
        name=payload.name,
        email=email,
        password_hash=hash_password(payload.password),
        phone=payload.phone,
        role="customer",
    )
    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        raise ValidationFailed("Email already registered")
    return _auth_response(db["user"].find_one({"_id": ObjectId(user_id)}))


@app.post("/api/auth/login")
def login(payload: LoginPayload):
    doc = db["user"].find_one({"email": payload.email.lower()})
    if not doc or not verify_password(payload.password, doc.get("password_hash", "")):
        raise Unauthorized("Invalid credentials")
    if not doc.get("is_active", True):
        raise Unauthorized("Account disabled")
    return _auth_response(doc)


@app.get("/api/auth/me")
def me(user: dict = Depends(get_current_user)):
    return public_user(user)


@app.put("/api/auth/profile")
def update_profile(payload: ProfilePayload, user: dict = Depends(get_current_user)):
    update = payload.model_dump(exclude_none=True)
    if update:
        db["user"].update_one({"_id": ObjectId(user["_id"])}, {"$set": {**update, "updated_at": datetime.now(timezone.utc)}})
    return public_user(db["user"].find_one({"_id": ObjectId(user["_id"])}))


@app.post("/api/auth/address", status_code=201)
def add_address(payload: ShippingAddress, user: dict = Depends(get_current_user)):
    db["user"].update_one({"_id": ObjectId(user["_id"])}, {"$push": {"addresses": payload.model_dump()}})
    return public_user(db["user"].find_one({"_id": ObjectId(user["_id"])}))["addresses"]


@app.delete("/api/auth/address/{index}")
def remove_address(index: int, user: dict = Depends(get_current_user)):
    addresses = user.get("addresses", [])
    if index < 0 or index >= len(addresses):
        raise NotFound("Address not found")
    addresses.pop(index)
    db["user"].update_one({"_id": ObjectId(user["_id"])}, {"$set": {"addresses": addresses}})
    return addresses


# ----------------------- Products -----------------------
class ProductPayload(BaseModel):
    name: str = Field(..., min_length=1)
    description: str
    price: float = Field(..., ge=0)
    original_price: float = Field(..., ge=0)
    category_id: str
    images: List[str] = []
    stock: int = Field(0, ge=0)
    brand: str = ""
    specifications: List[Specification] = []
    is_featured: bool = False


class ProductUpdatePayload(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    category_id: Optional[str] = None
    images: Optional[List[str]] = None
    stock: Optional[int] = Field(None, ge=0)
    brand: Optional[str] = None
    specifications: Optional[List[Specification]] = None
    is_featured: Optional[bool] = None
    is_active: Optional[bool] = None


class ReviewPayload(BaseModel):
    rating: float = Field(..., ge=1, le=5)
    comment: Optional[str] = None


def _check_owner(product: dict, user: dict):
    if user.get("role") != "admin" and product.get("seller_id") != str(user["_id"]):
        raise Forbidden("Not authorized")


@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    sort: Optional[str] = None,
    seller: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=100),
):
    return catalog.list_products(category, search, min_price, max_price, sort, seller, page, limit)


@app.get("/api/products/featured/list")
def featured_products():
    return catalog.featured_products()


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    return catalog.get_product(product_id)


@app.post("/api/products", status_code=201)
def create_product(payload: ProductPayload, user: dict = Depends(require_seller)):
    return catalog.create_product(payload.model_dump(), user)


@app.put("/api/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdatePayload, user: dict = Depends(require_seller)):
    _check_owner(catalog.find_product(product_id), user)
    return catalog.update_product(product_id, payload.model_dump(exclude_none=True))


@app.post("/api/products/{product_id}/review")
def add_review(product_id: str, payload: ReviewPayload, user: dict = Depends(get_current_user)):
    return catalog.add_review(product_id, user, payload.rating, payload.comment)


# ----------------------- Categories -----------------------
class CategoryPayload(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    image: Optional[str] = None


class CategoryUpdatePayload(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    is_active: Optional[bool] = None


@app.get("/api/categories")
def list_categories():
    return catalog.list_categories()


@app.get("/api/categories/{slug}")
def get_category(slug: str):
    return catalog.get_category_by_slug(slug)


@app.post("/api/categories", status_code=201, dependencies=[Depends(require_admin)])
def create_category(payload: CategoryPayload):
    return catalog.create_category(payload.name, payload.description, payload.image)


@app.put("/api/categories/{category_id}", dependencies=[Depends(require_admin)])
def update_category(category_id: str, payload: CategoryUpdatePayload):
    return catalog.update_category(category_id, payload.model_dump(exclude_none=True))


# ----------------------- Cart -----------------------
class CartAddPayload(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class CartUpdatePayload(BaseModel):
    product_id: str
    quantity: int


@app.get("/api/cart")
def get_cart(user: dict = Depends(get_current_user)):
    return cart.get_cart(user["_id"])


@app.post("/api/cart/add")
def add_to_cart(payload: CartAddPayload, user: dict = Depends(get_current_user)):
    return cart.add_item(user["_id"], payload.product_id, payload.quantity)


@app.put("/api/cart/update")
def update_cart(payload: CartUpdatePayload, user: dict = Depends(get_current_user)):
    return cart.set_quantity(user["_id"], payload.product_id, payload.quantity)


@app.delete("/api/cart/remove/{product_id}")
def remove_from_cart(product_id: str, user: dict = Depends(get_current_user)):
    return cart.remove_item(user["_id"], product_id)


@app.delete("/api/cart/clear")
def clear_cart(user: dict = Depends(get_current_user)):
    cart.clear_cart(user["_id"])
    return {"message": "Cart cleared"}


# ----------------------- Orders -----------------------
class OrderCreatePayload(BaseModel):
    shipping_address: Optional[ShippingAddress] = None
    payment_method: Optional[PaymentMethod] = None


class CancelPayload(BaseModel):
    reason: Optional[str] = None


class StatusPayload(BaseModel):
    status: str


@app.post("/api/orders", status_code=201)
def create_order(payload: OrderCreatePayload, user: dict = Depends(get_current_user)):
    return orders.place_order(user["_id"], payload.shipping_address, payload.payment_method)


@app.get("/api/orders/my-orders")
def my_orders(user: dict = Depends(get_current_user)):
    return orders.list_user_orders(user["_id"])


@app.get("/api/orders/admin/all", dependencies=[Depends(require_admin)])
def all_orders():
    return orders.list_all_orders()


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user: dict = Depends(get_current_user)):
    return orders.get_order(order_id, user)


@app.put("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, payload: Optional[CancelPayload] = None, user: dict = Depends(get_current_user)):
    return orders.cancel_order(order_id, user, payload.reason if payload else None)


@app.put("/api/orders/{order_id}/status", dependencies=[Depends(require_admin)])
def update_order_status(order_id: str, payload: StatusPayload):
    return orders.update_status(order_id, payload.status)


# ----------------------- Payment -----------------------
class CustomerInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class CreatePaymentOrderPayload(BaseModel):
    shipping_address: Optional[ShippingAddress] = None


class VerifyPaymentPayload(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
    shipping_address: Optional[ShippingAddress] = None


class PaymentLinkPayload(BaseModel):
    amount: Optional[float] = None
    description: Optional[str] = None
    customer_info: Optional[CustomerInfo] = None


class CartPaymentLinkPayload(BaseModel):
    shipping_address: Optional[ShippingAddress] = None
    customer_info: Optional[CustomerInfo] = None


def _dump(model: Optional[BaseModel]) -> Optional[dict]:
    return model.model_dump() if model is not None else None


@app.post("/api/payment/create-order")
def create_payment_order(payload: CreatePaymentOrderPayload, user: dict = Depends(get_current_user), gateway=Depends(payments.get_gateway)):
    return payments.create_gateway_order(gateway, user, _dump(payload.shipping_address))


@app.post("/api/payment/verify")
def verify_payment(payload: VerifyPaymentPayload, user: dict = Depends(get_current_user), gateway=Depends(payments.get_gateway)):
    return payments.verify_payment(
        gateway,
        user,
        payload.razorpay_order_id,
        payload.razorpay_payment_id,
        payload.razorpay_signature,
        payload.shipping_address,
    )


@app.post("/api/payment/generate-link")
def generate_payment_link(payload: PaymentLinkPayload, user: dict = Depends(get_current_user), gateway=Depends(payments.get_gateway)):
    return payments.create_payment_link(gateway, user, payload.amount, payload.description, _dump(payload.customer_info))


@app.post("/api/payment/generate-cart-link")
def generate_cart_payment_link(payload: CartPaymentLinkPayload, user: dict = Depends(get_current_user), gateway=Depends(payments.get_gateway)):
    return payments.create_cart_payment_link(gateway, user, _dump(payload.shipping_address), _dump(payload.customer_info))


@app.get("/api/payment/link-status/{link_id}", dependencies=[Depends(get_current_user)])
def payment_link_status(link_id: str, gateway=Depends(payments.get_gateway)):
    return payments.payment_link_status(gateway, link_id)


def _link_callback(link_id: str, payment_id: str, signed_link_id: str, reference_id: str, status: str, signature: str, gateway):
    failed = f"{config.CLIENT_URL}/payment-failed?reason="
    if status != "paid":
        return RedirectResponse(failed + "payment_failed")
    signed = payments.verify_link_signature(
        signed_link_id,
        reference_id,
        status,
        payment_id,
        signature,
        config.RAZORPAY_API_SECRET,
    )
    if not signed or signed_link_id != link_id:
        logger.warning("Payment link {} callback with bad signature", link_id)
        return RedirectResponse(failed + "signature_mismatch")
    try:
        payments.reconcile_payment_link(gateway, link_id, payment_id)
    except InvalidState:
        return RedirectResponse(failed + "payment_failed")
    except Exception:
        logger.exception("Payment link {} reconciliation failed", link_id)
        return RedirectResponse(failed + "server_error")
    return RedirectResponse(f"{config.CLIENT_URL}/payment-success?payment_id={payment_id}&link_id={link_id}")


# the gateway redirects here after a link payment; link ids are only known once issued
@app.get("/api/payment/link-success")
def payment_link_callback(
    razorpay_payment_id: str = "",
    razorpay_payment_link_id: str = "",
    razorpay_payment_link_reference_id: str = "",
    razorpay_payment_link_status: str = "",
    razorpay_signature: str = "",
    gateway=Depends(payments.get_gateway),
):
    return _link_callback(
        razorpay_payment_link_id,
        razorpay_payment_id,
        razorpay_payment_link_id,
        razorpay_payment_link_reference_id,
        razorpay_payment_link_status,
        razorpay_signature,
        gateway,
    )


@app.get("/api/payment/link-success/{link_id}")
def payment_link_success(
    link_id: str,
    razorpay_payment_id: str = "",
    razorpay_payment_link_id: str = "",
    razorpay_payment_link_reference_id: str = "",
    razorpay_payment_link_status: str = "",
    razorpay_signature: str = "",
    gateway=Depends(payments.get_gateway),
):
    return _link_callback(
        link_id,
        razorpay_payment_id,
        razorpay_payment_link_id,
        razorpay_payment_link_reference_id,
        razorpay_payment_link_status,
        razorpay_signature,
        gateway,
    )


@app.get("/api/payment/key")
def payment_key():
    return {"key": config.RAZORPAY_API_KEY}


# ----------------------- Chatbot -----------------------
class ChatPayload(BaseModel):
    message: Optional[str] = None


@app.post("/api/chatbot")
def chatbot(payload: ChatPayload, user: Optional[dict] = Depends(get_optional_user), llm=Depends(assistant.get_llm)):
    user_id = user["_id"] if user else None
    return {"response": assistant.respond(payload.message, user_id, llm)}


# ----------------------- Admin -----------------------
class RolePayload(BaseModel):
    role: str


@app.get("/api/admin/dashboard", dependencies=[Depends(require_admin)])
def admin_dashboard():
    revenue = db["order"].aggregate([
        {"$match": {"status": {"$ne": "cancelled"}}},
        {"$group": {"_id": None, "total": {"$sum": "$total_amount"}}},
    ])
    revenue_total = 0
    for r in revenue:
        revenue_total = r.get("total", 0)
    recent = db["order"].find().sort("created_at", -1).limit(5)
    return {
        "stats": {
            "total_users": db["user"].count_documents({}),
            "total_products": db["product"].count_documents({"is_active": True}),
            "total_orders": db["order"].count_documents({}),
            "total_revenue": revenue_total,
            "pending_orders": db["order"].count_documents({"status": "pending"}),
        },
        "recent_orders": [serialize_doc(o) for o in recent],
    }


@app.get("/api/admin/users", dependencies=[Depends(require_admin)])
def list_users():
    return [public_user(u) for u in db["user"].find().sort("created_at", -1)]


@app.put("/api/admin/users/{user_id}/role", dependencies=[Depends(require_admin)])
def update_user_role(user_id: str, payload: RolePayload):
    if payload.role not in ROLES:
        raise ValidationFailed("Invalid role")
    oid = to_object_id(user_id, "user id")
    res = db["user"].update_one({"_id": oid}, {"$set": {"role": payload.role, "updated_at": datetime.now(timezone.utc)}})
    if res.matched_count == 0:
        raise NotFound("User not found")
    return public_user(db["user"].find_one({"_id": oid}))


@app.delete("/api/admin/products/{product_id}")
def deactivate_product(product_id: str, user: dict = Depends(require_seller)):
    _check_owner(catalog.find_product(product_id), user)
    return catalog.deactivate_product(product_id)


@app.post("/api/admin/seed")
def seed():
    return seed_demo_data()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
