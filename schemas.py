"""
Database Schemas

Each collection model below describes one MongoDB collection; the collection
name is the lowercase class name (``OtpRecord`` lives in ``otp``). Python
attributes are snake_case, stored documents and JSON bodies use camelCase.

Request and response models for the API follow the collection models.
"""

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

Role = Literal["admin", "user", "manager"]


class APIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


# -----------------
# Collections
# -----------------

class Category(APIModel):
    name: str = Field(..., min_length=3, max_length=32)
    slug: str = Field(..., description="Lowercase hyphenated identifier")
    image: str = ""


class SubCategory(APIModel):
    name: str = Field(..., min_length=3, max_length=32)
    slug: str
    category: str = Field(..., description="Parent category id")


class Brand(APIModel):
    name: str = Field(..., min_length=3, max_length=32)
    slug: str
    image: str = ""


class Review(APIModel):
    user: str = Field(..., description="Reviewer user id")
    name: str = Field(..., description="Reviewer display name snapshot")
    rating: float = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class Product(APIModel):
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=200)
    slug: str = ""
    quantity: int = Field(..., ge=0)
    sold: int = Field(0, ge=0)
    price: float = Field(..., ge=0, le=2_000_000)
    sale: float = Field(0, ge=0, le=100, description="Percent discount")
    price_after_discount: float = Field(..., ge=0)
    colors: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    image_cover: str
    category: str
    brand: Optional[str] = None
    sub_category: List[str] = Field(default_factory=list)
    reviews: List[Review] = Field(default_factory=list)
    ratings: float = Field(0, ge=0, le=5)
    num_of_reviews: int = 0


class User(APIModel):
    user_name: str = Field(..., min_length=2, max_length=20)
    email: EmailStr
    password_hash: str = Field(..., description="BCrypt hashed password")
    profile_image: str = "default.jpg"
    phone: Optional[str] = None
    role: Role = "user"
    is_blocked: bool = False


class CartItem(APIModel):
    product: str = Field(..., description="Product id")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price snapshot")


class Cart(APIModel):
    user: str
    items: List[CartItem] = Field(default_factory=list)
    total_price: float = 0


class Order(APIModel):
    user: str
    items: List[CartItem]
    total_price: float = Field(..., ge=0)
    payment_method: str = "cash"


class OtpRecord(APIModel):
    user: str
    otp: str = Field(..., description="HMAC-SHA256 digest of the code")
    expires_at: datetime


# -----------------
# Envelopes
# -----------------

class Envelope(APIModel):
    success: bool = True
    message: str
    data: Any = None
    errors: Any = None


class PageEnvelope(Envelope):
    page: int
    limit: int
    total: int
    total_pages: int


class TokenPayload(APIModel):
    id: str
    role: Role
    email: str
    user_name: str


# -----------------
# Catalog requests
# -----------------

class CategoryCreate(APIModel):
    name: str = Field(..., min_length=3, max_length=32)
    slug: str = Field(..., min_length=3, max_length=32)
    image: Optional[str] = None


class CategoryUpdate(APIModel):
    name: Optional[str] = Field(None, min_length=3, max_length=32)
    slug: Optional[str] = Field(None, min_length=3, max_length=32)
    image: Optional[str] = None


class BrandCreate(CategoryCreate):
    pass


class BrandUpdate(CategoryUpdate):
    pass


class SubCategoryCreate(APIModel):
    name: str = Field(..., min_length=3, max_length=32)
    slug: str = Field(..., min_length=3, max_length=32)
    category: str


class SubCategoryUpdate(APIModel):
    name: Optional[str] = Field(None, min_length=3, max_length=32)
    slug: Optional[str] = Field(None, min_length=3, max_length=32)
    category: Optional[str] = None


class ProductCreate(APIModel):
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=200)
    slug: Optional[str] = None
    quantity: int = Field(..., ge=0)
    price: float = Field(..., ge=0, le=2_000_000)
    sale: float = Field(0, ge=0, le=100)
    colors: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    image_cover: str = Field(..., min_length=1)
    category: str
    brand: Optional[str] = None
    sub_category: Optional[List[str]] = None


class ProductUpdate(APIModel):
    title: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, min_length=10, max_length=200)
    slug: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=0)
    price: Optional[float] = Field(None, ge=0, le=2_000_000)
    sale: Optional[float] = Field(None, ge=0, le=100)
    colors: Optional[List[str]] = None
    images: Optional[List[str]] = None
    image_cover: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    brand: Optional[str] = None
    sub_category: Optional[List[str]] = None


class ReviewRequest(APIModel):
    rating: float
    comment: Optional[str] = None


# -----------------
# Auth / user requests
# -----------------

class _PasswordConfirmation(APIModel):
    @model_validator(mode="after")
    def passwords_match(self):
        password = getattr(self, "password", None) or getattr(self, "new_password", None)
        if password is not None and password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class RegisterInput(_PasswordConfirmation):
    user_name: str = Field(..., min_length=3, max_length=20)
    email: EmailStr
    phone: str = Field(..., min_length=10, max_length=15, pattern=r"^\+?[0-9]+$")
    password: str = Field(..., min_length=6)
    confirm_password: str


class LoginInput(APIModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ForgotPasswordInput(APIModel):
    email: EmailStr


class VerifyOtpInput(APIModel):
    email: EmailStr
    otp: str = Field(..., min_length=1)


class ResetPasswordInput(_PasswordConfirmation):
    reset_token: str
    new_password: str = Field(..., min_length=6)
    confirm_password: str


class UserCreate(_PasswordConfirmation):
    user_name: str = Field(..., min_length=2, max_length=20)
    email: EmailStr
    password: str = Field(..., min_length=6)
    confirm_password: str
    phone: Optional[str] = Field(None, min_length=10, max_length=15, pattern=r"^\+?[0-9]+$")
    role: Role = "user"
    profile_image: Optional[str] = None


class UserUpdate(_PasswordConfirmation):
    user_name: Optional[str] = Field(None, min_length=2, max_length=20)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    confirm_password: Optional[str] = None
    phone: Optional[str] = Field(None, min_length=10, max_length=15, pattern=r"^\+?[0-9]+$")
    profile_image: Optional[str] = None


# -----------------
# Cart / order requests
# -----------------

class AddToCartInput(APIModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class CheckoutInput(APIModel):
    payment_method: str = Field("cash", min_length=1)
