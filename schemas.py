"""
Database Schemas for ShopKart

Each Pydantic model represents a MongoDB collection. Collection name is the lowercase of the class name.
Embedded models (addresses, reviews, line items) have no collection of their own.
"""
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, EmailStr
from datetime import datetime

Role = Literal["customer", "seller", "admin"]
PaymentMethod = Literal["cod", "online", "upi"]
PaymentStatus = Literal["pending", "paid", "failed"]
OrderStatus = Literal["pending", "confirmed", "shipped", "delivered", "cancelled"]

ROLES = ("customer", "seller", "admin")
ORDER_STATUSES = ("pending", "confirmed", "shipped", "delivered", "cancelled")


class ShippingAddress(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., min_length=1)


# Users collection
class User(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password_hash: str = Field(..., min_length=10)
    phone: Optional[str] = None
    role: Role = "customer"
    addresses: List[ShippingAddress] = []
    is_active: bool = True


# Categories collection
class Category(BaseModel):
    name: str = Field(..., min_length=1)
    slug: str
    description: Optional[str] = None
    image: Optional[str] = None
    is_active: bool = True


class Review(BaseModel):
    user_id: str
    name: str
    rating: float = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    created_at: Optional[datetime] = None


class Specification(BaseModel):
    key: str
    value: str


# Products collection
class Product(BaseModel):
    name: str = Field(..., min_length=1)
    description: str
    price: float = Field(..., ge=0)
    original_price: float = Field(..., ge=0)
    category_id: str
    images: List[str] = []
    stock: int = Field(0, ge=0)
    rating: float = Field(0, ge=0, le=5)
    num_reviews: int = Field(0, ge=0)
    reviews: List[Review] = []
    specifications: List[Specification] = []
    brand: str = ""
    seller_id: Optional[str] = None
    is_active: bool = True
    is_featured: bool = False


# Carts collection: one per user
class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class Cart(BaseModel):
    user_id: str
    items: List[CartItem] = []


# Orders collection
class OrderItem(BaseModel):
    product_id: str
    name: str
    image: str = ""
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class Order(BaseModel):
    user_id: str
    items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod = "cod"
    payment_status: PaymentStatus = "pending"
    items_total: float = Field(..., ge=0)
    shipping_charge: float = Field(0, ge=0)
    discount: float = Field(0, ge=0)
    total_amount: float = Field(..., ge=0)
    status: OrderStatus = "pending"
    tracking_id: str
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_payment_link_id: Optional[str] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
