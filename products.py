import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from pymongo.database import Database
from slugify import slugify

import config
from catalog import ensure_unique
from database import (
    create_document,
    delete_by_id,
    find_existing_ids,
    get_by_id,
    get_db,
    parse_object_id,
    populate,
    serialize_doc,
    update_by_id,
)
from errors import InvalidInput, NotFound
from pricing import apply_pricing, remove_review, update_review, upsert_review
from query import build_filter, keyword_filter, parse_filters, parse_pagination, parse_projection, parse_sort
from schemas import Envelope, PageEnvelope, Product, ProductCreate, ProductUpdate, ReviewRequest, TokenPayload
from security import get_current_user, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

staff_only = require_roles(*config.STAFF_ROLES)

PRODUCT_FILTER_FIELDS = (
    "price",
    "priceAfterDiscount",
    "sale",
    "quantity",
    "sold",
    "ratings",
    "numOfReviews",
    "category",
    "brand",
    "subCategory",
    "colors",
    "title",
    "slug",
)
REFERENCES = (("category", "category"), ("brand", "brand"), ("subCategory", "subcategory"))


def check_references(
    db: Database,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    sub_category: Optional[List[str]] = None,
) -> None:
    """Every referenced category, brand and sub category must exist."""
    if category is not None:
        get_by_id(db, "category", category, "Category")
    if brand is not None:
        get_by_id(db, "brand", brand, "Brand")
    if sub_category:
        for sub_id in sub_category:
            parse_object_id(sub_id, "Sub Category ID")
        found = find_existing_ids(db, "subcategory", sub_category)
        if set(found) != set(sub_category):
            raise NotFound("One or more Sub Categories not found")


def populate_product(db: Database, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    for field, collection in REFERENCES:
        docs = populate(db, docs, field, collection)
    return docs


def _save_reviews(db: Database, product: Dict[str, Any]) -> Dict[str, Any]:
    updates = {
        "reviews": product.get("reviews", []),
        "ratings": product["ratings"],
        "numOfReviews": product["numOfReviews"],
    }
    return update_by_id(db, "product", product["_id"], updates, "Product")


@router.post("", status_code=201, response_model=Envelope, response_model_exclude_none=True)
def create_product(payload: ProductCreate, db: Database = Depends(get_db), current_user: TokenPayload = Depends(staff_only)):
    ensure_unique(db, "product", "title", payload.title, "Product")
    check_references(db, payload.category, payload.brand, payload.sub_category)
    data = payload.model_dump(by_alias=True, exclude_none=True)
    data["slug"] = slugify(data.get("slug") or payload.title)
    apply_pricing(data)
    doc = create_document(db, "product", Product.model_validate(data))
    logger.info("Product %s created by %s", doc["_id"], current_user.id)
    return Envelope(message="Product created successfully", data=serialize_doc(doc))


@router.get("", response_model=PageEnvelope, response_model_exclude_none=True)
def list_products(request: Request, db: Database = Depends(get_db)):
    params = request.query_params
    pagination = parse_pagination(params.get("page"), params.get("limit"))
    query = build_filter(parse_filters(params.multi_items(), PRODUCT_FILTER_FIELDS))
    query.update(keyword_filter(params.get("keyword"), ("title", "description")))

    total = db["product"].count_documents(query)
    cursor = (
        db["product"]
        .find(query, parse_projection(params.get("fields")))
        .sort(parse_sort(params.get("sort")))
        .skip(pagination.skip)
        .limit(pagination.limit)
    )
    docs = populate_product(db, [serialize_doc(d) for d in cursor])
    return PageEnvelope(
        message="Products fetched successfully",
        page=pagination.page,
        limit=pagination.limit,
        total=total,
        total_pages=pagination.total_pages(total),
        data=docs,
    )


@router.get("/{product_id}", response_model=Envelope, response_model_exclude_none=True)
def get_product(product_id: str, db: Database = Depends(get_db)):
    doc = serialize_doc(get_by_id(db, "product", product_id, "Product"))
    return Envelope(message="Product fetched successfully", data=populate_product(db, [doc])[0])


@router.put("/{product_id}", response_model=Envelope, response_model_exclude_none=True)
def update_product(
    product_id: str,
    payload: ProductUpdate,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(staff_only),
):
    updates = payload.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
    if not updates:
        raise InvalidInput("At least one field is required for update")
    product = get_by_id(db, "product", product_id, "Product")
    if "title" in updates:
        ensure_unique(db, "product", "title", updates["title"], "Product", exclude_id=product["_id"])
    check_references(db, updates.get("category"), updates.get("brand"), updates.get("subCategory"))
    if "slug" in updates or "title" in updates:
        updates["slug"] = slugify(updates.get("slug") or updates["title"])
    apply_pricing(updates, product)
    doc = update_by_id(db, "product", product["_id"], updates, "Product")
    return Envelope(message="Product updated successfully", data=serialize_doc(doc))


@router.delete("/{product_id}", response_model=Envelope, response_model_exclude_none=True)
def delete_product(product_id: str, db: Database = Depends(get_db), current_user: TokenPayload = Depends(staff_only)):
    doc = delete_by_id(db, "product", product_id, "Product")
    logger.info("Product %s deleted by %s", product_id, current_user.id)
    return Envelope(message="Product deleted successfully", data=serialize_doc(doc))


# ---------------
# Reviews
# ---------------

@router.post("/{product_id}/rate", response_model=Envelope, response_model_exclude_none=True)
def rate_product(
    product_id: str,
    payload: ReviewRequest,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(get_current_user),
):
    product = get_by_id(db, "product", product_id, "Product")
    upsert_review(product, current_user.id, current_user.user_name, payload.rating, payload.comment)
    doc = _save_reviews(db, product)
    return Envelope(message="Product rated successfully", data=serialize_doc(doc))


@router.put("/{product_id}/rate", response_model=Envelope, response_model_exclude_none=True)
def update_rating(
    product_id: str,
    payload: ReviewRequest,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(get_current_user),
):
    product = get_by_id(db, "product", product_id, "Product")
    update_review(product, current_user.id, payload.rating, payload.comment)
    doc = _save_reviews(db, product)
    return Envelope(message="Rating updated successfully", data=serialize_doc(doc))


@router.delete("/{product_id}/rate", response_model=Envelope, response_model_exclude_none=True)
def delete_rating(
    product_id: str,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(get_current_user),
):
    product = get_by_id(db, "product", product_id, "Product")
    remove_review(product, current_user.id)
    doc = _save_reviews(db, product)
    return Envelope(message="Rating deleted successfully", data=serialize_doc(doc))
