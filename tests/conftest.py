import mongomock
import pytest
from fastapi.testclient import TestClient

from database import create_document, ensure_indexes, get_db
from main import app
from pricing import derive_discounted_price
from schemas import Category, Product, User
from security import create_access_token, hash_password

PASSWORD = "secret123"


@pytest.fixture
def db():
    database = mongomock.MongoClient().db
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, email, role="user", user_name="shopper", blocked=False):
    user = User(
        user_name=user_name,
        email=email,
        password_hash=hash_password(PASSWORD),
        phone="0123456789",
        role=role,
        is_blocked=blocked,
    )
    return create_document(db, "user", user)


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", role="admin", user_name="admin")


@pytest.fixture
def user(db):
    return make_user(db, "user@example.com")


@pytest.fixture
def other_user(db):
    return make_user(db, "other@example.com", user_name="other")


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def user_headers(user):
    return auth_headers(user)


@pytest.fixture
def category(db):
    return create_document(db, "category", Category(name="Shoes", slug="shoes"))


def make_product(db, category, title="Running Shoe", price=100.0, sale=0.0, **extra):
    product = Product(
        title=title,
        description="A comfortable everyday shoe",
        quantity=10,
        price=price,
        sale=sale,
        price_after_discount=derive_discounted_price(price, sale),
        image_cover="cover.jpg",
        category=str(category["_id"]),
        **extra,
    )
    return create_document(db, "product", product)


@pytest.fixture
def product(db, category):
    return make_product(db, category)
