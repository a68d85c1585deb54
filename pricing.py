"""
Product pricing and rating aggregation.

All functions work on a product document (a plain dict as stored in MongoDB)
and only ever touch that one document.
"""
from typing import Any, Dict, Optional

from errors import InvalidInput, NotFound


def derive_discounted_price(price: float, sale: Optional[float] = None) -> float:
    if not sale or sale <= 0:
        return price
    return price - price * sale / 100


def apply_pricing(updates: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Set ``priceAfterDiscount`` on ``updates`` when they touch price or sale.

    Whichever of the two is missing from ``updates`` is taken from the stored
    product, so a sale-only update still prices from the existing price.
    """
    if existing is not None and "price" not in updates and "sale" not in updates:
        return updates
    existing = existing or {}
    price = updates.get("price", existing.get("price", 0))
    sale = updates.get("sale", existing.get("sale", 0))
    updates["priceAfterDiscount"] = derive_discounted_price(price, sale)
    return updates


def _check_rating(rating: float) -> None:
    if rating is None or not 1 <= rating <= 5:
        raise InvalidInput("Rating must be between 1 and 5")


def recompute_ratings(product: Dict[str, Any]) -> Dict[str, Any]:
    reviews = product.get("reviews") or []
    product["numOfReviews"] = len(reviews)
    product["ratings"] = sum(r["rating"] for r in reviews) / len(reviews) if reviews else 0
    return product


def find_review(product: Dict[str, Any], reviewer_id: str) -> Optional[Dict[str, Any]]:
    for review in product.get("reviews") or []:
        if str(review.get("user")) == reviewer_id:
            return review
    return None


def upsert_review(
    product: Dict[str, Any],
    reviewer_id: str,
    reviewer_name: str,
    rating: float,
    comment: Optional[str] = None,
) -> bool:
    """Add or replace ``reviewer_id``'s review. Returns True when one was appended."""
    _check_rating(rating)
    existing = find_review(product, reviewer_id)
    if existing is not None:
        existing["rating"] = rating
        if comment:
            existing["comment"] = comment
        created = False
    else:
        product.setdefault("reviews", []).append(
            {"user": reviewer_id, "name": reviewer_name, "rating": rating, "comment": comment}
        )
        created = True
    recompute_ratings(product)
    return created


def update_review(product: Dict[str, Any], reviewer_id: str, rating: float, comment: Optional[str] = None) -> Dict[str, Any]:
    _check_rating(rating)
    existing = find_review(product, reviewer_id)
    if existing is None:
        raise NotFound("No rating found to update")
    existing["rating"] = rating
    if comment is not None:
        existing["comment"] = comment
    recompute_ratings(product)
    return existing


def remove_review(product: Dict[str, Any], reviewer_id: str) -> Dict[str, Any]:
    existing = find_review(product, reviewer_id)
    if existing is None:
        raise NotFound("Rating not found")
    product["reviews"] = [r for r in product["reviews"] if r is not existing]
    recompute_ratings(product)
    return existing
