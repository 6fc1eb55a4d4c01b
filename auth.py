from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

import config
from database import db
from errors import Forbidden, Unauthorized

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
auth_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_minutes: int = config.TOKEN_EXPIRE_MIN):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALG)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        return False


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def public_user(doc: dict) -> dict:
    """User document without credentials, with a string id."""
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "email": doc.get("email"),
        "phone": doc.get("phone"),
        "role": doc.get("role", "customer"),
        "addresses": doc.get("addresses", []),
    }


def _user_from_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALG])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise Unauthorized("Invalid token")
    except JWTError:
        raise Unauthorized("Invalid token")

    if not ObjectId.is_valid(user_id):
        raise Unauthorized("Invalid token")
    user = db["user"].find_one({"_id": ObjectId(user_id)})
    if not user or not user.get("is_active", True):
        raise Unauthorized("User not found")
    user["_id"] = str(user["_id"])
    return user


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)) -> dict:
    if credentials is None:
        raise Unauthorized("Not authenticated")
    return _user_from_token(credentials.credentials)


async def get_optional_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)) -> Optional[dict]:
    if credentials is None:
        return None
    try:
        return _user_from_token(credentials.credentials)
    except Unauthorized:
        return None


async def require_admin(user: dict = Depends(get_current_user)):
    if user.get("role") != "admin":
        raise Forbidden("Admin only")
    return user


async def require_seller(user: dict = Depends(get_current_user)):
    if user.get("role") not in ("seller", "admin"):
        raise Forbidden("Seller or admin only")
    return user
