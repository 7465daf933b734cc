import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import Services, create_app
from repositories import Repositories
from schemas import Medicine, User


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        upload_dir=str(tmp_path / "uploads"),
        log_level="WARNING",
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["pharmacy_test"]


@pytest.fixture
def repos(db):
    return Repositories(db)


@pytest.fixture
def services(db, settings):
    return Services(db, settings)


@pytest.fixture
def client(db, settings):
    return TestClient(create_app(settings, db))


@pytest.fixture
def make_medicine(repos):
    def _make(name="Paracetamol", price=100.0, stock=10, discount_price=None, category="Pain Relief"):
        return repos.medicines.create(Medicine(
            name=name,
            usage="Fever and pain",
            price=price,
            discount_price=discount_price,
            stock=stock,
            category=category,
        ))
    return _make


@pytest.fixture
def make_user(repos):
    def _make(role="patient", email=None, name="Test User"):
        email = email or f"{role}{repos.users.collection.count_documents({})}@medshop.in"
        return repos.users.create(User(name=name, email=email, password_hash="x", role=role))
    return _make


@pytest.fixture
def auth_headers(services):
    def _headers(user_doc):
        return {"Authorization": f"Bearer {services.auth.create_token(user_doc)}"}
    return _headers


@pytest.fixture
def stock_of(repos):
    def _stock(medicine):
        return repos.medicines.find_by_id(medicine["_id"])["stock"]
    return _stock
