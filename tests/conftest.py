import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import get_password_hash, token_for_user
from database import Database, create_document, get_document
from main import create_app

PASSWORD = "Secret123"


def make_user(db, email, name="Test User", role="user", status="active", **extra):
    user_id = create_document(db, "users", {
        "name": name,
        "email": email,
        "hashedPassword": get_password_hash(PASSWORD),
        "role": role,
        "status": status,
        "verified": False,
        "balance": 0,
        **extra,
    })
    return get_document(db, "users", user_id)


def make_account(db, **overrides):
    doc = {
        "title": "Valorant Immortal Hesabı",
        "description": "Tüm ajanlar açık",
        "game": "Valorant",
        "price": 100,
        "originalPrice": 100,
        "discountPercentage": 0,
        "isOnSale": False,
        "isFeatured": False,
        "isWeeklyDeal": False,
        "category": "FPS",
        "subcategory": "",
        "status": "available",
        "rank": "Immortal 3",
        "level": "156",
        "stock": 1,
    }
    doc.update(overrides)
    return get_document(db, "accounts", create_document(db, "accounts", doc))


def bearer(user):
    return {"Authorization": f"Bearer {token_for_user(user)}"}


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    yield Database(client, "hesapduragi_test")
    client.close()


@pytest.fixture
def app(db):
    return create_app(database=db)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", name="Site Admin", role="admin")


@pytest.fixture
def customer(db):
    return make_user(db, "ayse@example.com", name="Ayşe Yılmaz")


@pytest.fixture
def admin_headers(admin):
    return bearer(admin)


@pytest.fixture
def user_headers(customer):
    return bearer(customer)
