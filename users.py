import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from pymongo.database import Database

import config
from database import create_document, delete_by_id, get_by_id, get_db, parse_object_id, serialize_doc, update_by_id
from errors import Conflict, InvalidInput
from query import build_filter, keyword_filter, parse_direction, parse_filters, parse_pagination
from schemas import Envelope, PageEnvelope, TokenPayload, User, UserCreate, UserUpdate
from security import (
    get_current_user,
    hash_password,
    require_owner_or_roles,
    require_roles,
    require_same_user,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

USER_FILTER_FIELDS = ("role", "isBlocked", "userName", "email", "phone")


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    user = serialize_doc(doc)
    # Never send password hash
    user.pop("passwordHash", None)
    return user


def _update_user(db: Database, user_id: str, payload: UserUpdate) -> Dict[str, Any]:
    updates = payload.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
    updates.pop("confirmPassword", None)
    if not updates:
        raise InvalidInput("At least one field (userName, email, password, phone, profileImage) is required for update")

    user = get_by_id(db, "user", user_id, "User")
    if "email" in updates:
        updates["email"] = updates["email"].lower()
        if db["user"].find_one({"email": updates["email"], "_id": {"$ne": user["_id"]}}):
            raise Conflict("Email already exists")
    if "password" in updates:
        updates["passwordHash"] = hash_password(updates.pop("password"))
    return update_by_id(db, "user", user["_id"], updates, "User")


@router.get("", response_model=PageEnvelope, response_model_exclude_none=True)
def list_users(
    request: Request,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(require_roles(*config.STAFF_ROLES)),
):
    params = request.query_params
    pagination = parse_pagination(params.get("page"), params.get("limit"), default_limit=5)
    query = build_filter(parse_filters(params.multi_items(), USER_FILTER_FIELDS))
    query.update(keyword_filter(params.get("keyword"), ("userName", "email")))

    total = db["user"].count_documents(query)
    cursor = (
        db["user"]
        .find(query, {"passwordHash": 0})
        .sort("createdAt", parse_direction(params.get("sort")))
        .skip(pagination.skip)
        .limit(pagination.limit)
    )
    return PageEnvelope(
        message="Users fetched successfully",
        page=pagination.page,
        limit=pagination.limit,
        total=total,
        total_pages=pagination.total_pages(total),
        data=[public_user(d) for d in cursor],
    )


@router.post("", status_code=201, response_model=Envelope, response_model_exclude_none=True)
def create_user(
    payload: UserCreate,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(require_roles(*config.STAFF_ROLES)),
):
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise Conflict("Email already exists")
    user = User(
        user_name=payload.user_name,
        email=email,
        password_hash=hash_password(payload.password),
        phone=payload.phone,
        role=payload.role,
        profile_image=payload.profile_image or "default.jpg",
    )
    doc = create_document(db, "user", user)
    logger.info("User %s created user %s with role %s", current_user.id, doc["_id"], payload.role)
    return Envelope(message="User created successfully", data=public_user(doc))


@router.get("/my-profile", response_model=Envelope, response_model_exclude_none=True)
def get_my_profile(db: Database = Depends(get_db), current_user: TokenPayload = Depends(get_current_user)):
    user = get_by_id(db, "user", current_user.id, "User")
    return Envelope(message="User fetched successfully", data=public_user(user))


@router.put("/my-profile", response_model=Envelope, response_model_exclude_none=True)
def update_my_profile(
    payload: UserUpdate,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(get_current_user),
):
    user = _update_user(db, current_user.id, payload)
    return Envelope(message="User updated successfully", data=public_user(user))


@router.get("/{user_id}", response_model=Envelope, response_model_exclude_none=True)
def get_user(
    user_id: str,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(require_owner_or_roles(*config.STAFF_ROLES)),
):
    user = get_by_id(db, "user", user_id, "User")
    return Envelope(message="User fetched successfully", data=public_user(user))


@router.put("/{user_id}", response_model=Envelope, response_model_exclude_none=True)
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(require_same_user),
):
    user = _update_user(db, user_id, payload)
    return Envelope(message="User updated successfully", data=public_user(user))


@router.delete("/{user_id}", response_model=Envelope, response_model_exclude_none=True)
def delete_user(
    user_id: str,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(require_owner_or_roles(*config.STAFF_ROLES)),
):
    user = delete_by_id(db, "user", user_id, "User")
    logger.info("User %s deleted user %s", current_user.id, user_id)
    return Envelope(message="User deleted successfully", data=public_user(user))


@router.put("/{user_id}/block", response_model=Envelope, response_model_exclude_none=True)
def toggle_block_user(
    user_id: str,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(require_roles(*config.STAFF_ROLES)),
):
    oid = parse_object_id(user_id, "User ID")
    user = get_by_id(db, "user", user_id, "User")
    user = update_by_id(db, "user", oid, {"isBlocked": not user.get("isBlocked", False)}, "User")
    state = "blocked" if user["isBlocked"] else "unblocked"
    logger.info("User %s %s user %s", current_user.id, state, user_id)
    return Envelope(message=f"User {state} successfully", data=public_user(user))
