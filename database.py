"""
Database helpers

A single pymongo database handle shared by the whole app, plus the small
helpers every route uses to write and read documents. ``db`` stays ``None``
when DATABASE_URL / DATABASE_NAME are not configured.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from loguru import logger
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

import config
from errors import ValidationFailed

db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    client = MongoClient(config.DATABASE_URL)
    db = client[config.DATABASE_NAME]


def _collection(name: str):
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db[name]


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    now = datetime.now(timezone.utc)
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = _collection(collection_name).insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
    cursor = _collection(collection_name).find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(value: Any, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except Exception:
        raise ValidationFailed(f"Invalid {label}")


def _plain(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """JSON-ready copy of a stored document: ``_id`` becomes ``id``."""
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = doc.pop("_id")
    return _plain(doc)


def ensure_indexes():
    if db is None:
        return
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["category"].create_index([("slug", ASCENDING)], unique=True)
    db["cart"].create_index([("user_id", ASCENDING)], unique=True)
    db["order"].create_index([("tracking_id", ASCENDING)], unique=True)
    for key in ("razorpay_order_id", "razorpay_payment_id", "razorpay_payment_link_id"):
        db["order"].create_index([(key, ASCENDING)], unique=True, sparse=True)
    logger.info("Database indexes ensured")
