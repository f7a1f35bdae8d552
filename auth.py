import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import DuplicateKeyError

from database import create_document, get_db, to_object_id, to_str_id, utcnow
from errors import Conflict, NotFound, Unauthorized, ValidationError
from responses import ok
from schemas import Address, PrescriptionRecord, User
from security import get_current_user, hash_password, issue_token, resolve_token, revoke_sessions, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])
users_router = APIRouter(prefix="/api/users", tags=["users"])

PRIVATE_FIELDS = ("password_hash", "token")


# ---------- Request models ----------
class RegisterRequest(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[Address] = None
    date_of_birth: Optional[datetime] = None
    medical_conditions: Optional[List[str]] = None
    allergies: Optional[List[str]] = None
    prescriptions: Optional[List[PrescriptionRecord]] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(..., min_length=6)


# ---------- Helpers ----------
def public_user(doc: dict) -> dict:
    d = to_str_id(doc)
    for field in PRIVATE_FIELDS:
        d.pop(field, None)
    return d


def unique_strings(values: List[str]) -> List[str]:
    seen = []
    for v in values:
        v = v.strip()
        if v and v not in seen:
            seen.append(v)
    return seen


def register_user(payload: RegisterRequest, role: str = "user") -> dict:
    users = get_db()["user"]
    email = payload.email.lower()
    if users.find_one({"email": email}):
        raise Conflict("User already exists with this email")
    user = User(
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        phone=payload.phone,
        role=role,
    )
    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        raise Conflict("User already exists with this email")
    return users.find_one({"_id": to_object_id(user_id)})


def update_profile(user: dict, payload: ProfileUpdate) -> dict:
    update = payload.model_dump(exclude_unset=True)
    for field in ("medical_conditions", "allergies"):
        if update.get(field) is not None:
            update[field] = unique_strings(update[field])
    update = {k: v for k, v in update.items() if v is not None}
    update["updated_at"] = utcnow()
    users = get_db()["user"]
    users.update_one({"_id": user["_id"]}, {"$set": update})
    return users.find_one({"_id": user["_id"]})


def set_password(user_id, new_password: str):
    get_db()["user"].update_one(
        {"_id": to_object_id(user_id)},
        {"$set": {"password_hash": hash_password(new_password), "updated_at": utcnow()}},
    )


# ---------- Auth Endpoints ----------
@router.post("/register", status_code=201)
def register(payload: RegisterRequest):
    user = register_user(payload)
    token = issue_token(str(user["_id"]))
    return ok("User registered successfully", {"user": public_user(user), "token": token})


@router.post("/login")
def login(payload: LoginRequest):
    user = get_db()["user"].find_one({"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise Unauthorized("Invalid credentials")
    token = issue_token(str(user["_id"]))
    return ok("Login successful", {"user": public_user(user), "token": token})


@router.get("/me")
def me(user: dict = Depends(get_current_user)):
    return ok("User profile retrieved successfully", public_user(user))


@router.put("/profile")
def auth_update_profile(payload: ProfileUpdate, user: dict = Depends(get_current_user)):
    return ok("Profile updated successfully", public_user(update_profile(user, payload)))


@router.put("/change-password")
def change_password(payload: ChangePasswordRequest, user: dict = Depends(get_current_user)):
    if not verify_password(payload.current_password, user.get("password_hash", "")):
        raise ValidationError("Current password is incorrect")
    set_password(user["_id"], payload.new_password)
    revoke_sessions(str(user["_id"]), keep_token=user.get("token"))
    return ok("Password changed successfully")


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordRequest):
    user = get_db()["user"].find_one({"email": payload.email.lower()})
    if not user:
        raise NotFound("User not found")
    reset_token = issue_token(str(user["_id"]), purpose="reset")
    # no mailer yet, the token goes back to the caller
    return ok("Password reset email sent", {"reset_token": reset_token})


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest):
    session = resolve_token(payload.token, purpose="reset")
    if not session:
        raise ValidationError("Invalid or expired reset token")
    user = get_db()["user"].find_one({"_id": to_object_id(session["user_id"])})
    if not user:
        raise NotFound("User not found")
    set_password(user["_id"], payload.new_password)
    revoke_sessions(session["user_id"])
    logger.info("Password reset for user %s", session["user_id"])
    return ok("Password reset successfully")


# ---------- User profile Endpoints ----------
@users_router.get("/profile")
def get_profile(user: dict = Depends(get_current_user)):
    return ok("Profile retrieved successfully", public_user(user))


@users_router.put("/profile")
def users_update_profile(payload: ProfileUpdate, user: dict = Depends(get_current_user)):
    return ok("Profile updated successfully", public_user(update_profile(user, payload)))
