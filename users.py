import re
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, EmailStr, Field

from activity import create_log
from auth import (Token, get_admin_user, get_current_active_user, get_password_hash, get_user_by_email,
                  token_for_user, verify_password)
from database import (Database, create_document, delete_document, get_db, get_document, paginate,
                      serialize_document, update_document, utcnow)
from schemas import Role, User as UserSchema, UserStatus

logger = structlog.get_logger()

router = APIRouter(tags=["auth"])
admin_router = APIRouter(prefix="/api/admin/users", tags=["admin"])

PRIVATE_FIELDS = ("hashedPassword",)


class RegisterPayload(BaseModel):
    name: str
    email: EmailStr
    password: str


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


class AdminUserIn(BaseModel):
    name: str
    email: EmailStr
    password: str
    role: Role = 'user'
    status: UserStatus = 'active'


class AdminUserUpdate(BaseModel):
    id: str = Field(..., alias="_id", min_length=1)
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    status: Optional[UserStatus] = None
    verified: Optional[bool] = None
    balance: Optional[float] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    avatar_url: Optional[str] = Field(None, alias="avatarUrl")
    phone: Optional[str] = None


def public_user(user: dict) -> dict:
    return serialize_document(user, exclude=PRIVATE_FIELDS)


def check_password_strength(password: str):
    if len(password) < 8:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")
    if not re.search(r"[A-Z]", password):
        raise HTTPException(status_code=400, detail="Password must contain an uppercase letter")
    if not re.search(r"\d", password):
        raise HTTPException(status_code=400, detail="Password must contain a digit")


# Authentication
@router.post("/api/auth/register", status_code=201)
def register(payload: RegisterPayload, db: Database = Depends(get_db)):
    name = payload.name.strip()
    if len(name) < 2:
        raise HTTPException(status_code=400, detail="Name must be at least 2 characters")
    check_password_strength(payload.password)
    if get_user_by_email(db, payload.email):
        raise HTTPException(status_code=400, detail="Email already registered")

    user_doc = UserSchema(name=name, email=payload.email.lower(), hashed_password=get_password_hash(payload.password))
    user_id = create_document(db, "users", user_doc)
    user = get_document(db, "users", user_id)
    create_log(db, "info", "user", f"New user registered: {user['email']}", user_id=user_id, user_name=name)
    return {"success": True, "user": public_user(user), "token": token_for_user(user)}


def _login(db: Database, email: str, password: str, request: Optional[Request]) -> dict:
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.get("hashedPassword", "")):
        reason = "user_not_found" if not user else "invalid_password"
        create_log(db, "warning", "auth", f"Failed login attempt: {email}", request=request,
                   details={"email": email, "reason": reason})
        raise HTTPException(status_code=400, detail="Incorrect email or password")
    if user.get("status", "active") != "active":
        raise HTTPException(status_code=403, detail="Account is not active")

    db["users"].update_one({"_id": user["_id"]}, {"$set": {"lastLogin": utcnow()}})
    create_log(db, "info", "auth", f"User logged in: {user['email']}", user_id=str(user["_id"]),
               user_name=user.get("name"), request=request, details={"role": user.get("role")})
    return user


@router.post("/api/auth/login")
def login(payload: LoginPayload, request: Request, db: Database = Depends(get_db)):
    user = _login(db, payload.email, payload.password, request)
    token = token_for_user(user)
    return {
        "success": True,
        "user": {"id": str(user["_id"]), "email": user["email"], "name": user["name"], "role": user.get("role", "user")},
        "token": token,
        "access_token": token,
        "token_type": "bearer",
    }


@router.post("/api/auth/token", response_model=Token)
def login_form(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Database = Depends(get_db)):
    user = _login(db, form_data.username, form_data.password, request)
    return Token(access_token=token_for_user(user))


@router.get("/api/auth/me")
def me(current_user: dict = Depends(get_current_active_user)):
    return {"success": True, "user": public_user(current_user)}


# Profile
def profile_or_403(db: Database, user_id: str, current_user: dict) -> dict:
    if str(current_user["_id"]) != user_id and current_user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Not allowed to access this profile")
    user = get_document(db, "users", user_id, label="user id")
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/api/users/{user_id}")
def read_profile(user_id: str, db: Database = Depends(get_db), current_user: dict = Depends(get_current_active_user)):
    return {"success": True, "data": public_user(profile_or_403(db, user_id, current_user))}


@router.put("/api/users/{user_id}")
def update_profile(user_id: str, body: ProfileUpdate, db: Database = Depends(get_db),
                   current_user: dict = Depends(get_current_active_user)):
    profile_or_403(db, user_id, current_user)
    updates = body.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
    if "name" in updates:
        updates["name"] = updates["name"].strip()
    if "email" in updates:
        updates["email"] = updates["email"].lower()
        clash = db["users"].find_one({"email": updates["email"]})
        if clash and str(clash["_id"]) != user_id:
            raise HTTPException(status_code=400, detail="Email already registered")

    user = update_document(db, "users", user_id, updates)
    logger.info("Profile updated", user_id=user_id, fields=sorted(updates))
    return {"success": True, "message": "Profile updated", "data": public_user(user)}


# Admin
@admin_router.get("")
def admin_list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    role: Optional[Role] = None,
    status: Optional[UserStatus] = None,
    search: Optional[str] = None,
    db: Database = Depends(get_db),
    _: dict = Depends(get_admin_user),
):
    query: dict = {}
    if role:
        query["role"] = role
    if status:
        query["status"] = status
    if search:
        pattern = re.compile(re.escape(search), re.IGNORECASE)
        query["$or"] = [{"name": pattern}, {"email": pattern}]

    total = db["users"].count_documents(query)
    users = db["users"].find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)

    everyone = list(db["users"].find({}, {"role": 1, "status": 1}))
    stats = {
        "total": len(everyone),
        "users": sum(1 for u in everyone if u.get("role") == "user"),
        "admins": sum(1 for u in everyone if u.get("role") == "admin"),
        "active": sum(1 for u in everyone if u.get("status", "active") == "active"),
        "suspended": sum(1 for u in everyone if u.get("status") == "suspended"),
        "banned": sum(1 for u in everyone if u.get("status") == "banned"),
    }
    return {
        "success": True,
        "data": {"users": [public_user(u) for u in users], "stats": stats, "pagination": paginate(page, limit, total)},
    }


@admin_router.post("", status_code=201)
def admin_create_user(body: AdminUserIn, db: Database = Depends(get_db), admin: dict = Depends(get_admin_user)):
    if get_user_by_email(db, body.email):
        raise HTTPException(status_code=400, detail="Email already registered")
    user_doc = UserSchema(
        name=body.name.strip(),
        email=body.email.lower(),
        hashed_password=get_password_hash(body.password),
        role=body.role,
        status=body.status,
    )
    user_id = create_document(db, "users", user_doc)
    create_log(db, "info", "admin", f"User created: {user_doc.email}", user_id=str(admin["_id"]),
               user_name=admin.get("name"))
    return {"success": True, "data": public_user(get_document(db, "users", user_id)), "message": "User created"}


@admin_router.put("")
def admin_update_user(body: AdminUserUpdate, db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    user_id = body.id
    updates = body.model_dump(exclude_unset=True, exclude_none=True, exclude={"id"})
    if "email" in updates:
        updates["email"] = updates["email"].lower()
        clash = db["users"].find_one({"email": updates["email"]})
        if clash and str(clash["_id"]) != str(user_id):
            raise HTTPException(status_code=400, detail="Email already registered")

    user = update_document(db, "users", user_id, updates)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "data": public_user(user), "message": "User updated"}


@admin_router.delete("")
def admin_delete_user(id: str = Query(...), db: Database = Depends(get_db), admin: dict = Depends(get_admin_user)):
    deleted = delete_document(db, "users", id)
    if deleted is None:
        raise HTTPException(status_code=404, detail="User not found")
    create_log(db, "warning", "admin", f"User deleted: {deleted['email']}", user_id=str(admin["_id"]),
               user_name=admin.get("name"))
    return {"success": True, "message": "User deleted"}
