"""
Password hashing and bearer-token sessions.

Tokens are opaque random strings stored in the "session" collection with an
expiry; the Authorization header carries them as "Bearer <token>".
"""
import os
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header
from passlib.context import CryptContext

from database import create_document, get_db, to_object_id, utcnow
from errors import Forbidden, Unauthorized
from schemas import Session

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
TOKEN_TTL_DAYS = int(os.getenv("TOKEN_TTL_DAYS", "30"))
RESET_TOKEN_TTL_MINUTES = int(os.getenv("RESET_TOKEN_TTL_MINUTES", "60"))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def issue_token(user_id: str, purpose: str = "auth") -> str:
    if purpose == "reset":
        ttl = timedelta(minutes=RESET_TOKEN_TTL_MINUTES)
    else:
        ttl = timedelta(days=TOKEN_TTL_DAYS)
    token = secrets.token_hex(32)
    create_document("session", Session(token=token, user_id=user_id, purpose=purpose, expires_at=utcnow() + ttl))
    return token


def resolve_token(token: str, purpose: str = "auth") -> Optional[dict]:
    """Return the session for a live token, or None."""
    session = get_db()["session"].find_one({"token": token, "purpose": purpose})
    if not session:
        return None
    if session["expires_at"] <= utcnow():
        get_db()["session"].delete_one({"_id": session["_id"]})
        return None
    return session


def revoke_sessions(user_id: str, purpose: Optional[str] = None, keep_token: Optional[str] = None):
    query = {"user_id": user_id}
    if purpose:
        query["purpose"] = purpose
    if keep_token:
        query["token"] = {"$ne": keep_token}
    get_db()["session"].delete_many(query)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


def get_current_user(authorization: Optional[str] = Header(default=None, alias="Authorization")) -> dict:
    token = bearer_token(authorization)
    if not token:
        raise Unauthorized("Not authorized, no token")
    session = resolve_token(token)
    if not session:
        raise Unauthorized("Not authorized, token invalid")
    user = get_db()["user"].find_one({"_id": to_object_id(session["user_id"])})
    if not user:
        raise Unauthorized("Not authorized, token invalid")
    user["token"] = token
    return user


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise Forbidden("Admin access required")
    return user
