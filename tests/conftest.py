import os

# must be set before digilib.core.config is imported
os.environ["DIGILIB_DB"] = "sqlite://"
os.environ.setdefault("DIGILIB_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient

from digilib.core.database import Base, SessionLocal, engine
from digilib.core.security import hash_password
from digilib.main import app
from digilib.models.models import Book, Role, User, UserStatus
from digilib.services.members import generate_member_id

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def fresh_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make(email, role=Role.USER, status=UserStatus.ACTIVE, name=None):
        user = User(
            member_id=generate_member_id(db),
            name=name or email.split("@")[0],
            email=email,
            password_hash=hash_password(PASSWORD),
            role=role,
            status=status,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_book(db):
    def _make(title="Laskar Pelangi", copies=1, **fields):
        book = Book(title=title, author=fields.pop("author", "Andrea Hirata"),
                    copies_total=copies, stock=copies, **fields)
        db.add(book)
        db.commit()
        db.refresh(book)
        return book
    return _make


@pytest.fixture
def login(make_user):
    def _login(email, role=Role.USER):
        user = make_user(email, role=role)
        client = TestClient(app)
        r = client.post("/login", json={"email": email, "password": PASSWORD})
        assert r.status_code == 200
        return client, user
    return _login
