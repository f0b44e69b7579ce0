import pytest
from fastapi.testclient import TestClient

from digilib.core.errors import Conflict
from digilib.core.security import Actor
from digilib.main import app
from digilib.models.models import Role, Wishlist
from digilib.services import wishlist

client = TestClient(app)

LOAN = {"borrow_date": "2026-03-01T09:00:00", "return_date": "2026-03-15T09:00:00"}


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_register_and_login():
    r = client.post("/register", json={"name": "Siti", "email": "siti@example.com", "password": "rahasia1"})
    assert r.status_code == 201
    assert r.json()["member_id"] == "A0001"
    assert r.json()["role"] == "user"

    session = TestClient(app)
    r = session.post("/login", json={"email": "siti@example.com", "password": "wrong-pass"})
    assert r.status_code == 401
    r = session.post("/login", json={"email": "siti@example.com", "password": "rahasia1"})
    assert r.status_code == 200
    assert r.json()["last_login"] is not None

    r = session.get("/users/me")
    assert r.status_code == 200
    assert r.json()["email"] == "siti@example.com"

    session.post("/logout")
    assert session.get("/users/me").status_code == 401


def test_anonymous_requests_are_unauthorized():
    assert client.post("/loans", json={"book_id": 1, **LOAN}).status_code == 401
    assert client.get("/loans").status_code == 401
    assert client.get("/wishlist").status_code == 401
    assert client.get("/stats").status_code == 401


def test_loan_lifecycle_over_http(login):
    admin, _ = login("admin@example.com", role=Role.ADMIN)
    alice, alice_user = login("alice@example.com")
    bob, _ = login("bob@example.com")

    r = admin.post("/books", json={"title": "Bumi Manusia", "author": "Pramoedya Ananta Toer",
                                   "isbn": "9789799731234", "copies_total": 1})
    assert r.status_code == 201
    book_id = r.json()["id"]
    assert r.json()["stock"] == 1

    r = alice.post("/books", json={"title": "Nope", "author": "Nobody"})
    assert r.status_code == 403

    r = alice.post("/loans", json={"book_id": book_id, **LOAN})
    assert r.status_code == 201
    loan = r.json()
    assert loan["status"] == "PENDING"
    assert loan["book"]["id"] == book_id
    assert loan["user"]["id"] == alice_user.id

    r = alice.post("/loans", json={"book_id": book_id, **LOAN})
    assert r.status_code == 409

    r = alice.patch(f"/loans/{loan['id']}", json={"status": "APPROVED"})
    assert r.status_code == 403

    r = admin.patch(f"/loans/{loan['id']}", json={"status": "APPROVED"})
    assert r.status_code == 200
    assert r.json()["status"] == "APPROVED"
    assert client.get(f"/books/{book_id}").json()["stock"] == 0

    r = bob.post("/loans", json={"book_id": book_id, **LOAN})
    assert r.status_code == 400
    assert r.json()["detail"] == "Book is out of stock"

    r = alice.patch(f"/loans/{loan['id']}/cancel")
    assert r.status_code == 400

    r = bob.post(f"/loans/{loan['id']}/return",
                 json={"status": "RETURNED", "actual_return_date": "2026-03-10T10:00:00"})
    assert r.status_code == 403

    r = alice.post(f"/loans/{loan['id']}/return",
                   json={"status": "RETURNED", "actual_return_date": "2026-03-10T10:00:00"})
    assert r.status_code == 200
    assert r.json()["status"] == "RETURNED"
    assert r.json()["actual_return_date"] == "2026-03-10T10:00:00"
    assert client.get(f"/books/{book_id}").json()["stock"] == 1

    r = admin.get("/returns")
    assert [l["id"] for l in r.json()] == [loan["id"]]

    r = admin.patch(f"/returns/{loan['id']}", json={"status": "LATE"})
    assert r.status_code == 200
    assert r.json()["status"] == "LATE"
    assert client.get(f"/books/{book_id}").json()["stock"] == 1


def test_cancel_over_http(login, make_book):
    alice, alice_user = login("alice@example.com")
    bob, _ = login("bob@example.com")
    book = make_book(copies=1)

    loan_id = alice.post("/loans", json={"book_id": book.id, **LOAN}).json()["id"]
    assert bob.patch(f"/loans/{loan_id}/cancel").status_code == 403
    r = alice.patch(f"/loans/{loan_id}/cancel")
    assert r.status_code == 200
    assert alice.get(f"/loans?user_id={alice_user.id}").json() == []
    assert alice.patch(f"/loans/{loan_id}/cancel").status_code == 404


def test_update_missing_loan_is_not_found(login):
    admin, _ = login("admin@example.com", role=Role.ADMIN)
    r = admin.patch("/loans/4242", json={"status": "APPROVED"})
    assert r.status_code == 404
    assert r.json()["detail"] == "Loan not found"


def test_loan_listing_permissions(login, make_book):
    admin, _ = login("admin@example.com", role=Role.ADMIN)
    alice, alice_user = login("alice@example.com")
    bob, bob_user = login("bob@example.com")
    book = make_book(copies=3)
    alice.post("/loans", json={"book_id": book.id, **LOAN})

    assert alice.get("/loans").status_code == 403
    assert alice.get(f"/loans?user_id={bob_user.id}").status_code == 403
    assert len(alice.get(f"/loans?user_id={alice_user.id}").json()) == 1
    assert len(admin.get("/loans").json()) == 1
    assert admin.get("/loans?status=APPROVED").json() == []


def test_wishlist(login, make_book):
    alice, _ = login("alice@example.com")
    bob, _ = login("bob@example.com")
    book = make_book(title="Ronggeng Dukuh Paruk", author="Ahmad Tohari")

    r = alice.post("/wishlist", json={"book_id": book.id})
    assert r.status_code == 201
    item_id = r.json()["id"]
    assert alice.post("/wishlist", json={"book_id": book.id}).status_code == 409
    assert alice.post("/wishlist", json={"book_id": 999}).status_code == 404

    items = alice.get("/wishlist").json()
    assert items == [{"id": item_id, "book_id": book.id, "title": "Ronggeng Dukuh Paruk",
                      "author": "Ahmad Tohari", "cover_url": "/placeholder-book.jpg"}]
    assert bob.get("/wishlist").json() == []

    assert bob.delete(f"/wishlist/{item_id}").status_code == 404
    assert alice.delete(f"/wishlist/{item_id}").status_code == 204
    assert alice.get("/wishlist").json() == []


def test_deleted_member_session_is_rejected(login, make_book):
    admin, _ = login("admin@example.com", role=Role.ADMIN)
    alice, alice_user = login("alice@example.com")
    book = make_book(copies=2)

    assert admin.delete(f"/users/{alice_user.id}").json() == {"ok": True}
    r = alice.post("/loans", json={"book_id": book.id, **LOAN})
    assert r.status_code == 401
    assert alice.get("/users/me").status_code == 401

    r = admin.get("/reports")
    assert r.status_code == 200
    assert r.json()["loans"] == []


def test_deactivated_member_is_logged_out(login, make_book):
    admin, _ = login("admin@example.com", role=Role.ADMIN)
    bob, bob_user = login("bob@example.com")
    book = make_book(copies=1)

    r = admin.put(f"/users/{bob_user.id}", json={"name": "Bob", "role": "user", "status": "inactive"})
    assert r.status_code == 200
    assert bob.post("/loans", json={"book_id": book.id, **LOAN}).status_code == 401
    assert bob.get("/wishlist").status_code == 401


def test_loan_dates_with_utc_offset(login, make_book):
    alice, _ = login("alice@example.com")
    book = make_book(copies=1)

    r = alice.post("/loans", json={"book_id": book.id, "borrow_date": "2026-03-01T09:00:00Z",
                                   "return_date": "2026-03-15T09:00:00"})
    assert r.status_code == 201
    assert r.json()["borrow_date"] == "2026-03-01T09:00:00"

    r = alice.post("/loans", json={"book_id": book.id, "borrow_date": "2026-03-01T09:00:00+07:00",
                                   "return_date": "2026-03-01T01:00:00"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Return date must not be before borrow date"


def test_concurrent_wishlist_duplicate_is_conflict(db, make_user, make_book):
    alice = make_user("alice@example.com")
    book = make_book()
    # an unflushed row stands in for a concurrent request that inserted first
    db.add(Wishlist(user_id=alice.id, book_id=book.id))

    with pytest.raises(Conflict):
        wishlist.add_to_wishlist(db, Actor(id=alice.id, role=Role.USER), book.id)
    assert db.query(Wishlist).count() == 0
    assert len(wishlist.list_wishlist(db, Actor(id=alice.id, role=Role.USER))) == 0
