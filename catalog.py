"""
Categories, subcategories and brands.

All three share the same contract: a unique 3-32 character name, a unique
slug normalized from the client-supplied slug text, hard deletes, and writes
restricted to staff.
"""
import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Request
from pymongo.database import Database
from slugify import slugify

import config
from database import create_document, delete_by_id, get_by_id, get_db, populate, serialize_doc, update_by_id
from errors import Conflict, InvalidInput, NotFound
from query import parse_direction, parse_pagination
from schemas import (
    Brand,
    BrandCreate,
    BrandUpdate,
    Category,
    CategoryCreate,
    CategoryUpdate,
    Envelope,
    PageEnvelope,
    SubCategory,
    SubCategoryCreate,
    SubCategoryUpdate,
    TokenPayload,
)
from security import require_roles

logger = logging.getLogger(__name__)

staff_only = require_roles(*config.STAFF_ROLES)

categories = APIRouter(prefix="/api/categories", tags=["categories"])
subcategories = APIRouter(prefix="/api/subcategories", tags=["subcategories"])
brands = APIRouter(prefix="/api/brands", tags=["brands"])


def ensure_unique(db: Database, collection: str, field: str, value: str, label: str, exclude_id: Optional[ObjectId] = None) -> None:
    query: Dict[str, Any] = {field: value}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if db[collection].find_one(query):
        raise Conflict(f"{label} {field} already exists")


def ensure_category(db: Database, category_id: str) -> None:
    get_by_id(db, "category", category_id, "Category")


def _list_named(db: Database, request: Request, collection: str, label: str) -> PageEnvelope:
    params = request.query_params
    pagination = parse_pagination(params.get("page"), params.get("limit"))
    total = db[collection].count_documents({})
    cursor = (
        db[collection]
        .find({})
        .sort("name", parse_direction(params.get("sort")))
        .skip(pagination.skip)
        .limit(pagination.limit)
    )
    docs = [serialize_doc(d) for d in cursor]
    if collection == "subcategory":
        docs = populate(db, docs, "category", "category")
    return PageEnvelope(
        message=f"{label} fetched successfully",
        page=pagination.page,
        limit=pagination.limit,
        total=total,
        total_pages=pagination.total_pages(total),
        data=docs,
    )


def _update_named(db: Database, collection: str, label: str, doc_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    if not updates:
        raise InvalidInput("At least one field is required for update")
    existing = get_by_id(db, collection, doc_id, label)
    if "name" in updates:
        ensure_unique(db, collection, "name", updates["name"], label, exclude_id=existing["_id"])
    if "slug" in updates:
        updates["slug"] = slugify(updates["slug"])
        ensure_unique(db, collection, "slug", updates["slug"], label, exclude_id=existing["_id"])
    return update_by_id(db, collection, existing["_id"], updates, label)


# ---------------
# Categories
# ---------------

@categories.post("", status_code=201, response_model=Envelope, response_model_exclude_none=True)
def create_category(payload: CategoryCreate, db: Database = Depends(get_db), current_user: TokenPayload = Depends(staff_only)):
    slug = slugify(payload.slug)
    ensure_unique(db, "category", "name", payload.name, "Category")
    ensure_unique(db, "category", "slug", slug, "Category")
    category = Category(name=payload.name, slug=slug, image=payload.image or "")
    doc = create_document(db, "category", category)
    logger.info("Category %s created by %s", doc["_id"], current_user.id)
    return Envelope(message="Category created successfully", data=serialize_doc(doc))


@categories.get("", response_model=PageEnvelope, response_model_exclude_none=True)
def list_categories(request: Request, db: Database = Depends(get_db)):
    return _list_named(db, request, "category", "Categories")


@categories.get("/{category_id}", response_model=Envelope, response_model_exclude_none=True)
def get_category(category_id: str, db: Database = Depends(get_db)):
    category = serialize_doc(get_by_id(db, "category", category_id, "Category"))
    category["subCategories"] = [
        serialize_doc(s) for s in db["subcategory"].find({"category": category_id}, {"category": 0})
    ]
    return Envelope(message="Category fetched successfully", data=category)


@categories.put("/{category_id}", response_model=Envelope, response_model_exclude_none=True)
def update_category(
    category_id: str,
    payload: CategoryUpdate,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(staff_only),
):
    updates = payload.model_dump(by_alias=True, exclude_none=True)
    doc = _update_named(db, "category", "Category", category_id, updates)
    return Envelope(message="Category updated successfully", data=serialize_doc(doc))


@categories.delete("/{category_id}", response_model=Envelope, response_model_exclude_none=True)
def delete_category(category_id: str, db: Database = Depends(get_db), current_user: TokenPayload = Depends(staff_only)):
    doc = delete_by_id(db, "category", category_id, "Category")
    logger.info("Category %s deleted by %s", category_id, current_user.id)
    return Envelope(message="Category deleted successfully", data=serialize_doc(doc))


# ---------------
# Sub categories
# ---------------

@subcategories.post("", status_code=201, response_model=Envelope, response_model_exclude_none=True)
def create_subcategory(payload: SubCategoryCreate, db: Database = Depends(get_db), current_user: TokenPayload = Depends(staff_only)):
    ensure_category(db, payload.category)
    slug = slugify(payload.slug)
    ensure_unique(db, "subcategory", "name", payload.name, "Sub Category")
    ensure_unique(db, "subcategory", "slug", slug, "Sub Category")
    sub = SubCategory(name=payload.name, slug=slug, category=payload.category)
    doc = create_document(db, "subcategory", sub)
    logger.info("Sub category %s created by %s", doc["_id"], current_user.id)
    return Envelope(message="Sub Category created successfully", data=serialize_doc(doc))


@subcategories.get("", response_model=PageEnvelope, response_model_exclude_none=True)
def list_subcategories(request: Request, db: Database = Depends(get_db)):
    return _list_named(db, request, "subcategory", "Sub Categories")


@subcategories.get("/{subcategory_id}", response_model=Envelope, response_model_exclude_none=True)
def get_subcategory(subcategory_id: str, db: Database = Depends(get_db)):
    doc = serialize_doc(get_by_id(db, "subcategory", subcategory_id, "Sub Category"))
    doc = populate(db, [doc], "category", "category")[0]
    return Envelope(message="Sub Category fetched successfully", data=doc)


@subcategories.put("/{subcategory_id}", response_model=Envelope, response_model_exclude_none=True)
def update_subcategory(
    subcategory_id: str,
    payload: SubCategoryUpdate,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(staff_only),
):
    updates = payload.model_dump(by_alias=True, exclude_none=True)
    if "category" in updates:
        ensure_category(db, updates["category"])
    doc = _update_named(db, "subcategory", "Sub Category", subcategory_id, updates)
    return Envelope(message="Sub Category updated successfully", data=serialize_doc(doc))


@subcategories.delete("/{subcategory_id}", response_model=Envelope, response_model_exclude_none=True)
def delete_subcategory(subcategory_id: str, db: Database = Depends(get_db), current_user: TokenPayload = Depends(staff_only)):
    doc = delete_by_id(db, "subcategory", subcategory_id, "Sub Category")
    logger.info("Sub category %s deleted by %s", subcategory_id, current_user.id)
    return Envelope(message="Sub Category deleted successfully", data=serialize_doc(doc))


# ---------------
# Brands
# ---------------

@brands.post("", status_code=201, response_model=Envelope, response_model_exclude_none=True)
def create_brand(payload: BrandCreate, db: Database = Depends(get_db), current_user: TokenPayload = Depends(staff_only)):
    slug = slugify(payload.slug)
    ensure_unique(db, "brand", "name", payload.name, "Brand")
    ensure_unique(db, "brand", "slug", slug, "Brand")
    brand = Brand(name=payload.name, slug=slug, image=payload.image or "")
    doc = create_document(db, "brand", brand)
    logger.info("Brand %s created by %s", doc["_id"], current_user.id)
    return Envelope(message="Brand created successfully", data=serialize_doc(doc))


@brands.get("", response_model=PageEnvelope, response_model_exclude_none=True)
def list_brands(request: Request, db: Database = Depends(get_db)):
    return _list_named(db, request, "brand", "Brands")


@brands.get("/{brand_id}", response_model=Envelope, response_model_exclude_none=True)
def get_brand(brand_id: str, db: Database = Depends(get_db)):
    doc = get_by_id(db, "brand", brand_id, "Brand")
    return Envelope(message="Brand fetched successfully", data=serialize_doc(doc))


@brands.put("/{brand_id}", response_model=Envelope, response_model_exclude_none=True)
def update_brand(
    brand_id: str,
    payload: BrandUpdate,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(staff_only),
):
    updates = payload.model_dump(by_alias=True, exclude_none=True)
    doc = _update_named(db, "brand", "Brand", brand_id, updates)
    return Envelope(message="Brand updated successfully", data=serialize_doc(doc))


@brands.delete("/{brand_id}", response_model=Envelope, response_model_exclude_none=True)
def delete_brand(brand_id: str, db: Database = Depends(get_db), current_user: TokenPayload = Depends(staff_only)):
    doc = delete_by_id(db, "brand", brand_id, "Brand")
    logger.info("Brand %s deleted by %s", brand_id, current_user.id)
    return Envelope(message="Brand deleted successfully", data=serialize_doc(doc))
