from typing import Optional

from fastapi import APIRouter, Body, Depends
from pymongo.database import Database

import cart as carts
from database import get_db, populate, serialize_doc
from schemas import AddToCartInput, CheckoutInput, Envelope, TokenPayload
from security import get_current_user

cart_router = APIRouter(prefix="/api/cart", tags=["cart"])
order_router = APIRouter(prefix="/api/orders", tags=["orders"])

PRODUCT_SUMMARY = ("title", "slug", "imageCover", "price", "priceAfterDiscount")


def with_products(db: Database, doc: dict) -> dict:
    doc = serialize_doc(doc)
    doc["items"] = populate(db, doc.get("items", []), "product", "product", PRODUCT_SUMMARY)
    return doc


# Cart

@cart_router.get("", response_model=Envelope, response_model_exclude_none=True)
def get_cart(db: Database = Depends(get_db), current_user: TokenPayload = Depends(get_current_user)):
    cart = carts.get_cart(db, current_user.id)
    return Envelope(message="Cart fetched successfully", data=with_products(db, cart))


@cart_router.post("", response_model=Envelope, response_model_exclude_none=True)
def add_to_cart(
    item: AddToCartInput,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(get_current_user),
):
    cart = carts.add_to_cart(db, current_user.id, item.product_id, item.quantity)
    return Envelope(message="Product added to cart", data=serialize_doc(cart))


@cart_router.delete("/{product_id}", response_model=Envelope, response_model_exclude_none=True)
def remove_from_cart(
    product_id: str,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(get_current_user),
):
    cart = carts.remove_from_cart(db, current_user.id, product_id)
    return Envelope(message="Product removed from cart", data=serialize_doc(cart))


@cart_router.put("/{product_id}/decrease", response_model=Envelope, response_model_exclude_none=True)
def decrease_quantity(
    product_id: str,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(get_current_user),
):
    cart = carts.decrease_in_cart(db, current_user.id, product_id)
    return Envelope(message="Product quantity decreased", data=serialize_doc(cart))


# Orders

@order_router.post("", status_code=201, response_model=Envelope, response_model_exclude_none=True)
def create_order(
    payload: Optional[CheckoutInput] = Body(default=None),
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(get_current_user),
):
    payment_method = payload.payment_method if payload else None
    order = carts.checkout(db, current_user.id, payment_method)
    return Envelope(message="Order created successfully", data=serialize_doc(order))


@order_router.get("", response_model=Envelope, response_model_exclude_none=True)
def get_my_orders(db: Database = Depends(get_db), current_user: TokenPayload = Depends(get_current_user)):
    orders = db["order"].find({"user": current_user.id}).sort("createdAt", -1)
    return Envelope(message="Orders fetched successfully", data=[with_products(db, o) for o in orders])


@order_router.delete("/{order_id}", response_model=Envelope, response_model_exclude_none=True)
def remove_order(
    order_id: str,
    db: Database = Depends(get_db),
    current_user: TokenPayload = Depends(get_current_user),
):
    order = carts.cancel_order(db, order_id, current_user.id)
    return Envelope(message="Order removed successfully", data=serialize_doc(order))
