"""
Catalog: products, categories and reviews.
"""
import math
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

import config
from database import db, create_document, serialize_doc, to_object_id
from errors import Conflict, NotFound, ValidationFailed
from schemas import Category, Product, Review

SORT_OPTIONS = {
    "price_low": [("price", 1)],
    "price_high": [("price", -1)],
    "rating": [("rating", -1)],
    "newest": [("created_at", -1)],
}
DEFAULT_SORT = [("is_featured", -1), ("created_at", -1)]


def slugify(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def discount_percent(price: float, original_price: float) -> int:
    if not original_price:
        return 0
    return round((original_price - price) / original_price * 100)


def _categories_by_id(ids) -> Dict[str, dict]:
    oids = [ObjectId(i) for i in set(ids) if i and ObjectId.is_valid(i)]
    if not oids:
        return {}
    found = db["category"].find({"_id": {"$in": oids}})
    return {str(c["_id"]): {"id": str(c["_id"]), "name": c.get("name"), "slug": c.get("slug")} for c in found}


def present_product(doc: dict, categories: Optional[Dict[str, dict]] = None) -> dict:
    out = serialize_doc(doc)
    out["discount"] = discount_percent(doc.get("price", 0), doc.get("original_price", 0))
    if categories is not None:
        out["category"] = categories.get(doc.get("category_id"))
    return out


# ----------------------- Products -----------------------

def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort: Optional[str] = None,
    seller: Optional[str] = None,
    page: int = 1,
    limit: int = config.DEFAULT_PAGE_SIZE,
) -> dict:
    if page < 1 or limit < 1:
        raise ValidationFailed("page and limit must be positive")

    query: dict = {"is_active": True}
    if category:
        query["category_id"] = category
    if seller:
        query["seller_id"] = seller
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"name": pattern}, {"description": pattern}, {"brand": pattern}]
    if min_price is not None or max_price is not None:
        price_filter = {}
        if min_price is not None:
            price_filter["$gte"] = float(min_price)
        if max_price is not None:
            price_filter["$lte"] = float(max_price)
        query["price"] = price_filter

    total = db["product"].count_documents(query)
    cursor = (
        db["product"]
        .find(query)
        .sort(SORT_OPTIONS.get(sort, DEFAULT_SORT))
        .skip((page - 1) * limit)
        .limit(limit)
    )
    docs = list(cursor)
    categories = _categories_by_id(d.get("category_id") for d in docs)
    return {
        "products": [present_product(d, categories) for d in docs],
        "total": total,
        "total_pages": math.ceil(total / limit),
        "current_page": page,
    }


def find_product(product_id: str) -> dict:
    doc = db["product"].find_one({"_id": to_object_id(product_id, "product id")})
    if not doc:
        raise NotFound("Product not found")
    return doc


def get_product(product_id: str) -> dict:
    doc = find_product(product_id)
    out = present_product(doc, _categories_by_id([doc.get("category_id")]))

    reviewer_ids = [ObjectId(r["user_id"]) for r in doc.get("reviews", []) if ObjectId.is_valid(r.get("user_id", ""))]
    names = {str(u["_id"]): u.get("name") for u in db["user"].find({"_id": {"$in": reviewer_ids}})} if reviewer_ids else {}
    for review in out.get("reviews", []):
        review["name"] = names.get(review.get("user_id")) or review.get("name")
    return out


def featured_products() -> List[dict]:
    docs = list(db["product"].find({"is_active": True, "is_featured": True}).limit(config.FEATURED_LIMIT))
    categories = _categories_by_id(d.get("category_id") for d in docs)
    return [present_product(d, categories) for d in docs]


def _check_category(category_id: str):
    if not db["category"].find_one({"_id": to_object_id(category_id, "category id")}):
        raise ValidationFailed("Category does not exist")


def create_product(data: dict, seller: dict) -> dict:
    _check_category(data["category_id"])
    product = Product(**{**data, "seller_id": str(seller["_id"])})
    product_id = create_document("product", product)
    return get_product(product_id)


def update_product(product_id: str, data: dict) -> dict:
    oid = to_object_id(product_id, "product id")
    update = {k: v for k, v in data.items() if v is not None}
    if "category_id" in update:
        _check_category(update["category_id"])
    update["updated_at"] = datetime.now(timezone.utc)
    res = db["product"].update_one({"_id": oid}, {"$set": update})
    if res.matched_count == 0:
        raise NotFound("Product not found")
    return get_product(product_id)


def deactivate_product(product_id: str) -> dict:
    oid = to_object_id(product_id, "product id")
    res = db["product"].update_one(
        {"_id": oid},
        {"$set": {"is_active": False, "updated_at": datetime.now(timezone.utc)}},
    )
    if res.matched_count == 0:
        raise NotFound("Product not found")
    return {"deactivated": True}


def add_review(product_id: str, user: dict, rating: float, comment: Optional[str]) -> dict:
    doc = find_product(product_id)
    user_id = str(user["_id"])
    reviews = doc.get("reviews", [])
    if any(r.get("user_id") == user_id for r in reviews):
        raise Conflict("Already reviewed", status_code=400)

    review = Review(
        user_id=user_id,
        name=user.get("name", ""),
        rating=rating,
        comment=comment,
        created_at=datetime.now(timezone.utc),
    )
    reviews = reviews + [review.model_dump()]
    num_reviews = len(reviews)
    avg = sum(r["rating"] for r in reviews) / num_reviews
    res = db["product"].update_one(
        {"_id": doc["_id"], "reviews.user_id": {"$ne": user_id}},
        {
            "$push": {"reviews": review.model_dump()},
            "$set": {"num_reviews": num_reviews, "rating": avg, "updated_at": datetime.now(timezone.utc)},
        },
    )
    if res.modified_count == 0:
        raise Conflict("Already reviewed", status_code=400)
    return get_product(product_id)


# ----------------------- Categories -----------------------

def list_categories() -> List[dict]:
    return [serialize_doc(c) for c in db["category"].find({"is_active": True})]


def get_category_by_slug(slug: str) -> dict:
    doc = db["category"].find_one({"slug": slug})
    if not doc:
        raise NotFound("Category not found")
    return serialize_doc(doc)


def create_category(name: str, description: Optional[str] = None, image: Optional[str] = None) -> dict:
    slug = slugify(name)
    if db["category"].find_one({"slug": slug}):
        raise Conflict("Category already exists")
    category = Category(name=name, slug=slug, description=description, image=image)
    try:
        category_id = create_document("category", category)
    except DuplicateKeyError:
        raise Conflict("Category already exists")
    return serialize_doc(db["category"].find_one({"_id": ObjectId(category_id)}))


def update_category(category_id: str, data: dict) -> dict:
    oid = to_object_id(category_id, "category id")
    update = {k: v for k, v in data.items() if v is not None}
    if "name" in update:
        update["slug"] = slugify(update["name"])
        clash = db["category"].find_one({"slug": update["slug"], "_id": {"$ne": oid}})
        if clash:
            raise Conflict("Category already exists")
    update["updated_at"] = datetime.now(timezone.utc)
    res = db["category"].update_one({"_id": oid}, {"$set": update})
    if res.matched_count == 0:
        raise NotFound("Category not found")
    return serialize_doc(db["category"].find_one({"_id": oid}))
